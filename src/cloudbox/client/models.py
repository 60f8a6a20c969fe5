"""Typed values returned by the storage service.

This module provides:
- Metadata: File or folder metadata
- ShareLink: Share and media links
- ChunkedUploadState: Anchor of a resumable upload (upload_id, offset)
- Upserted, Deleted, DeltaEntry, DeltaPage: Incremental change pages
- LongPollResult: Outcome of a long-poll wait
- END_OF_SOURCE: Sentinel for an exhausted upload source
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Literal


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an RFC 1123 timestamp ("Sat, 21 Aug 2010 22:31:20 +0000")."""
    if not value:
        return None
    return parsedate_to_datetime(value)


@dataclass
class Metadata:
    """File or folder metadata from server."""

    path: str
    is_dir: bool = False
    bytes: int = 0
    size: str = ""
    rev: str | None = None
    revision: int | None = None
    modified: datetime | None = None
    client_mtime: datetime | None = None
    mime_type: str | None = None
    icon: str | None = None
    root: str | None = None
    hash: str | None = None
    thumb_exists: bool = False
    is_deleted: bool = False
    contents: list[Metadata] = field(default_factory=list)

    @property
    def name(self) -> str:
        """Last component of the path."""
        return self.path.rstrip("/").rsplit("/", 1)[-1]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Metadata:
        """Create from API response dictionary."""
        return cls(
            path=data["path"],
            is_dir=data.get("is_dir", False),
            bytes=data.get("bytes", 0),
            size=data.get("size", ""),
            rev=data.get("rev"),
            revision=data.get("revision"),
            modified=parse_timestamp(data.get("modified")),
            client_mtime=parse_timestamp(data.get("client_mtime")),
            mime_type=data.get("mime_type"),
            icon=data.get("icon"),
            root=data.get("root"),
            hash=data.get("hash"),
            thumb_exists=data.get("thumb_exists", False),
            is_deleted=data.get("is_deleted", False),
            contents=[cls.from_dict(c) for c in data.get("contents", [])],
        )


@dataclass
class ShareLink:
    """Public link to a file or folder."""

    url: str
    expires: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ShareLink:
        """Create from API response dictionary."""
        return cls(url=data["url"], expires=parse_timestamp(data.get("expires")))


@dataclass(frozen=True)
class ChunkedUploadState:
    """Position of a resumable upload.

    Attributes:
        upload_id: Session identity, fixed by the first chunk.
        offset: Bytes accepted by the server so far.
    """

    upload_id: str
    offset: int

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError(f"offset must be non-negative, got {self.offset}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChunkedUploadState:
        """Create from API response dictionary."""
        return cls(upload_id=data["upload_id"], offset=int(data["offset"]))


class EndOfSource(Enum):
    """Marker type for an exhausted upload source."""

    END_OF_SOURCE = "end_of_source"


END_OF_SOURCE = EndOfSource.END_OF_SOURCE

# Outcome of one chunk step: a new state, or the end-of-source marker
ChunkStep = ChunkedUploadState | Literal[EndOfSource.END_OF_SOURCE]


@dataclass(frozen=True)
class Upserted:
    """Entry was created or modified; carries its new metadata."""

    metadata: Metadata


@dataclass(frozen=True)
class Deleted:
    """Entry (and anything below it) was removed."""


Change = Upserted | Deleted


@dataclass(frozen=True)
class DeltaEntry:
    """One change of a delta page."""

    path: str
    change: Change

    @property
    def is_deleted(self) -> bool:
        """Check if this entry removes its path."""
        return isinstance(self.change, Deleted)


@dataclass
class DeltaPage:
    """One page of account changes.

    Attributes:
        cursor: Resume token for the next fetch.
        has_more: More pages are immediately available.
        reset: Drop all local state before applying entries.
        entries: Changes in the order they must be applied.
    """

    cursor: str
    has_more: bool
    reset: bool
    entries: list[DeltaEntry]


@dataclass(frozen=True)
class LongPollResult:
    """Outcome of a long-poll wait.

    Attributes:
        changed: The account changed during the wait.
        backoff: Seconds the server asks to wait before polling again.
    """

    changed: bool
    backoff: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LongPollResult:
        """Create from API response dictionary."""
        backoff = data.get("backoff")
        return cls(
            changed=bool(data["changes"]),
            backoff=float(backoff) if backoff is not None else None,
        )
