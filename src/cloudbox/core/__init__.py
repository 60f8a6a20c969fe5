"""Core module - Shared configuration, errors, cancellation and enums."""

from cloudbox.core.cancel import CancelToken
from cloudbox.core.config import DEFAULT_CHUNK_SIZE, DEFAULT_ROOT, ClientConfig
from cloudbox.core.errors import (
    AuthenticationError,
    CloudboxError,
    ConflictError,
    NotFoundError,
    OperationCancelled,
    ProtocolError,
    StateError,
    TransportFailure,
)
from cloudbox.core.types import ThumbnailFormat, ThumbnailSize

__all__ = [
    # Cancellation
    "CancelToken",
    # Config
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_ROOT",
    "ClientConfig",
    # Errors
    "AuthenticationError",
    "CloudboxError",
    "ConflictError",
    "NotFoundError",
    "OperationCancelled",
    "ProtocolError",
    "StateError",
    "TransportFailure",
    # Types
    "ThumbnailFormat",
    "ThumbnailSize",
]
