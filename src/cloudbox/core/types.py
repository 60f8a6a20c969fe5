"""Shared types for cloudbox.

This module defines enums used in request parameters.
"""

from __future__ import annotations

from enum import Enum


class ThumbnailSize(str, Enum):
    """Bounding box of a generated thumbnail."""

    XS = "xs"  # 32x32
    SMALL = "s"  # 64x64
    MEDIUM = "m"  # 128x128
    LARGE = "l"  # 640x480
    XL = "xl"  # 1024x768


class ThumbnailFormat(str, Enum):
    """Image format of a generated thumbnail."""

    JPEG = "jpeg"
    PNG = "png"
