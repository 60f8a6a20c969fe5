"""Incremental change pages.

This module provides:
- normalize_entry: Turn a raw [path, metadata|null] pair into a DeltaEntry
- fetch_delta: Fetch and normalize one page of account changes
- iter_delta: Follow has_more across pages
- apply_delta_page: Apply a page to an in-memory path index

The fetcher keeps no cursor of its own; persisting the cursor between runs
is up to the caller (see LocalState).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, MutableMapping, Sequence
from typing import TYPE_CHECKING, Any

from cloudbox.client.models import (
    Deleted,
    DeltaEntry,
    DeltaPage,
    Metadata,
    Upserted,
)
from cloudbox.core.errors import ProtocolError

if TYPE_CHECKING:
    from cloudbox.client.api import HTTPClient
    from cloudbox.core.cancel import CancelToken

logger = logging.getLogger(__name__)


def normalize_entry(raw: Any) -> DeltaEntry:
    """Map one raw delta pair to a typed entry.

    A null metadata element means the path was deleted. The entry path is
    always the first element, never the path inside the metadata.

    Raises:
        ProtocolError: If raw is not a [path, metadata|null] pair.
    """
    if (
        not isinstance(raw, Sequence)
        or isinstance(raw, (str, bytes))
        or len(raw) != 2
        or not isinstance(raw[0], str)
    ):
        raise ProtocolError(f"Malformed delta entry: {raw!r}")

    path, metadata = raw
    if metadata is None:
        return DeltaEntry(path=path, change=Deleted())
    if not isinstance(metadata, dict):
        raise ProtocolError(f"Malformed metadata for delta entry {path!r}")
    return DeltaEntry(path=path, change=Upserted(Metadata.from_dict(metadata)))


def parse_delta_page(data: dict[str, Any]) -> DeltaPage:
    """Build a DeltaPage from the raw response, keeping entry order and count."""
    try:
        return DeltaPage(
            cursor=data["cursor"],
            has_more=bool(data["has_more"]),
            reset=bool(data["reset"]),
            entries=[normalize_entry(raw) for raw in data["entries"]],
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed delta page: {e!r}") from e


def fetch_delta(
    client: HTTPClient,
    cursor: str = "",
    cancel: CancelToken | None = None,
) -> DeltaPage:
    """Fetch one page of changes since cursor.

    Args:
        client: HTTP client for server communication.
        cursor: Resume token from a previous page; empty for a full snapshot.
        cancel: Optional cancellation token.

    Returns:
        The normalized page.

    Raises:
        ProtocolError: On non-success status or malformed payload.
        TransportFailure: On network errors.
        OperationCancelled: If cancelled.
    """
    page = parse_delta_page(client.delta(cursor, cancel=cancel))
    logger.debug(
        "Delta page: %d entries, reset=%s, has_more=%s",
        len(page.entries),
        page.reset,
        page.has_more,
    )
    return page


def iter_delta(
    client: HTTPClient,
    cursor: str = "",
    cancel: CancelToken | None = None,
) -> Iterator[DeltaPage]:
    """Yield pages from cursor until the server reports no more.

    Each request uses the cursor of the page before it.
    """
    while True:
        page = fetch_delta(client, cursor, cancel=cancel)
        yield page
        if not page.has_more:
            return
        cursor = page.cursor


def _is_within(path: str, folder: str) -> bool:
    return path == folder or path.startswith(folder.rstrip("/") + "/")


def apply_delta_page(
    index: MutableMapping[str, Metadata],
    page: DeltaPage,
) -> None:
    """Apply a page to a path -> Metadata index, in entry order.

    Keys are lower-cased paths. A reset page clears the index first so its
    entries form a full snapshot. A deletion also drops everything below
    the deleted path.
    """
    if page.reset:
        logger.info("Delta reset: discarding %d local entries", len(index))
        index.clear()

    for entry in page.entries:
        key = entry.path.lower()
        if isinstance(entry.change, Deleted):
            for existing in [k for k in index if _is_within(k, key)]:
                del index[existing]
        else:
            index[key] = entry.change.metadata
