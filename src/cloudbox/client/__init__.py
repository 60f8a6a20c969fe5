"""Client module - HTTP client, models, local state and sync protocols."""

from cloudbox.client.api import HTTPClient
from cloudbox.client.models import (
    END_OF_SOURCE,
    ChunkedUploadState,
    Deleted,
    DeltaEntry,
    DeltaPage,
    LongPollResult,
    Metadata,
    ShareLink,
    Upserted,
)
from cloudbox.client.state import LocalState, UploadSession

__all__ = [
    "END_OF_SOURCE",
    "ChunkedUploadState",
    "Deleted",
    "DeltaEntry",
    "DeltaPage",
    "HTTPClient",
    "LocalState",
    "LongPollResult",
    "Metadata",
    "ShareLink",
    "UploadSession",
    "Upserted",
]
