"""Shared types and dataclasses for the sync protocols.

This module provides:
- UploadPhase: Lifecycle of a resumable upload
- UploadProgress: Progress tracking dataclass
- UploadAnomaly: Unexpected values reported by the server during an upload
- OutcomeKind, Outcome: Result type for callers that prefer matching to catching
- Type aliases for callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Generic, TypeVar

from cloudbox.client.models import ChunkedUploadState
from cloudbox.core.errors import (
    OperationCancelled,
    ProtocolError,
    StateError,
    TransportFailure,
)

T = TypeVar("T")


class UploadPhase(Enum):
    """State of a resumable upload.

    NEW -> STARTED -> UPLOADING -> COMMITTING -> DONE, with FAILED and
    CANCELLED as terminal states reachable from any running phase.
    """

    NEW = auto()
    STARTED = auto()
    UPLOADING = auto()
    COMMITTING = auto()
    DONE = auto()
    FAILED = auto()
    CANCELLED = auto()


@dataclass
class UploadProgress:
    """Progress information for a resumable upload."""

    path: str
    offset: int
    total_size: int | None = None

    @property
    def percent(self) -> float | None:
        """Get progress percentage, or None when the size is unknown."""
        if self.total_size is None:
            return None
        if self.total_size == 0:
            return 100.0
        return (self.offset / self.total_size) * 100


# Type alias for progress callback
ProgressCallback = Callable[[UploadProgress], None]

# Type alias for durable state callback (persist to resume later)
StateCallback = Callable[[ChunkedUploadState], None]


@dataclass(frozen=True)
class UploadAnomaly:
    """A chunk response that disagreed with the session's own bookkeeping.

    Attributes:
        expected: State computed from the bytes sent.
        reported_upload_id: upload_id found in the response.
        reported_offset: offset found in the response.
    """

    expected: ChunkedUploadState
    reported_upload_id: str
    reported_offset: int


class OutcomeKind(Enum):
    """Classification of an operation result."""

    OK = auto()
    TRANSPORT_FAILURE = auto()
    PROTOCOL_ERROR = auto()
    STATE_ERROR = auto()
    CANCELLED = auto()


@dataclass
class Outcome(Generic[T]):
    """Value or classified failure of a core operation.

    Attributes:
        kind: What happened.
        value: The result when kind is OK.
        error: The exception otherwise.
    """

    kind: OutcomeKind
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        """Check if the operation succeeded."""
        return self.kind is OutcomeKind.OK

    def unwrap(self) -> T:
        """Return the value, re-raising the captured error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def capture(cls, func: Callable[..., T], *args: Any, **kwargs: Any) -> Outcome[T]:
        """Run func and classify its result.

        Only the library's own error kinds are captured; anything else is a
        bug and propagates.
        """
        try:
            return cls(OutcomeKind.OK, value=func(*args, **kwargs))
        except OperationCancelled as e:
            return cls(OutcomeKind.CANCELLED, error=e)
        except TransportFailure as e:
            return cls(OutcomeKind.TRANSPORT_FAILURE, error=e)
        except ProtocolError as e:
            return cls(OutcomeKind.PROTOCOL_ERROR, error=e)
        except StateError as e:
            return cls(OutcomeKind.STATE_ERROR, error=e)
