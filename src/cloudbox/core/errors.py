"""Error taxonomy for cloudbox.

- TransportFailure: the request never produced a response
- ProtocolError: the server answered with a non-success status
- StateError: a caller broke a sequencing precondition
- OperationCancelled: a CancelToken fired while the operation was running

None of these are recovered inside the library.
"""

from __future__ import annotations


class CloudboxError(Exception):
    """Base exception for cloudbox errors."""


class TransportFailure(CloudboxError):
    """Network or transport failure; wraps the original exception."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ProtocolError(CloudboxError):
    """Non-success HTTP status returned by the server.

    Attributes:
        status_code: HTTP status code of the response.
        body: Raw response body, kept for diagnostics.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: bytes = b"",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthenticationError(ProtocolError):
    """Authentication failed."""


class NotFoundError(ProtocolError):
    """Resource not found."""


class ConflictError(ProtocolError):
    """Revision conflict detected."""


class StateError(CloudboxError):
    """A sequencing precondition was violated by the caller."""


class OperationCancelled(CloudboxError):
    """The operation was cancelled through its CancelToken."""
