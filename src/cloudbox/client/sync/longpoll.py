"""Long-poll change notification.

This module provides:
- clamp_timeout: Force a wait into the range the server accepts
- wait_for_change: Block until the account changes or the wait elapses
- ChangeWatcher: Background loop of long-poll + delta fetch

Architecture:
    ChangeWatcher ─longpoll─► server
         │ changed
         └──► iter_delta(cursor) ─► on_page(page) ─► cursor advances

The long-poll only signals that something changed. The changes themselves
are always fetched with the delta call, starting from the caller's cursor.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from cloudbox.client.models import DeltaPage, LongPollResult
from cloudbox.client.sync.delta import iter_delta
from cloudbox.core.cancel import CancelToken
from cloudbox.core.errors import CloudboxError, OperationCancelled, ProtocolError

if TYPE_CHECKING:
    from cloudbox.client.api import HTTPClient

logger = logging.getLogger(__name__)

# Bounds of the long-poll wait accepted by the server (seconds)
MIN_LONGPOLL_TIMEOUT = 30
MAX_LONGPOLL_TIMEOUT = 480

DEFAULT_LONGPOLL_TIMEOUT = 30


def clamp_timeout(timeout: int) -> int:
    """Clamp a requested wait into [30, 480] seconds."""
    return max(MIN_LONGPOLL_TIMEOUT, min(MAX_LONGPOLL_TIMEOUT, int(timeout)))


def wait_for_change(
    client: HTTPClient,
    cursor: str,
    timeout: int = DEFAULT_LONGPOLL_TIMEOUT,
    cancel: CancelToken | None = None,
) -> LongPollResult:
    """Wait for a change to the account after cursor.

    The timeout is clamped before the request is made.

    Args:
        client: HTTP client for server communication.
        cursor: Cursor of the last delta page seen.
        timeout: Requested wait in seconds.
        cancel: Optional cancellation token; releases the wait at once.

    Returns:
        changed=True if the account changed, False if the wait elapsed.

    Raises:
        ProtocolError: On non-success status.
        TransportFailure: On network errors.
        OperationCancelled: If cancelled.
    """
    effective = clamp_timeout(timeout)
    if effective != timeout:
        logger.debug("Long-poll timeout %s clamped to %d", timeout, effective)
    data = client.longpoll_delta(cursor, effective, cancel=cancel)
    try:
        return LongPollResult.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed long-poll result: {e!r}") from e


class ChangeWatcher:
    """Background watcher delivering delta pages as the account changes.

    Errors are not retried: the loop ends and the error is handed to
    on_error. stop() cancels the in-flight long-poll.

    Usage:
        watcher = ChangeWatcher(client, cursor, on_page=state.apply_delta_page)
        watcher.start()
        # ...
        watcher.stop()
        save(watcher.cursor)
    """

    def __init__(
        self,
        client: HTTPClient,
        cursor: str,
        on_page: Callable[[DeltaPage], None],
        on_error: Callable[[CloudboxError], None] | None = None,
        timeout: int = DEFAULT_LONGPOLL_TIMEOUT,
    ) -> None:
        """Initialize the watcher.

        Args:
            client: HTTP client for server communication.
            cursor: Cursor to watch from (from a previous delta page).
            on_page: Called with every fetched page, in order.
            on_error: Called with the error that ended the loop.
            timeout: Long-poll wait in seconds (clamped).
        """
        self._client = client
        self._cursor = cursor
        self._on_page = on_page
        self._on_error = on_error
        self._timeout = clamp_timeout(timeout)

        self._cancel = CancelToken()
        self._thread: threading.Thread | None = None

    @property
    def cursor(self) -> str:
        """Cursor of the last page delivered."""
        return self._cursor

    @property
    def running(self) -> bool:
        """Check if the background thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the watcher in a background thread."""
        if self.running:
            logger.warning("ChangeWatcher already running")
            return

        self._cancel = CancelToken()
        self._thread = threading.Thread(
            target=self.run,
            name="ChangeWatcher",
            daemon=True,
        )
        self._thread.start()
        logger.info("ChangeWatcher started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the watcher, cancelling any request in flight."""
        self._cancel.cancel()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("ChangeWatcher stopped")

    def poll_once(self) -> LongPollResult:
        """Run one long-poll and deliver the pages of any change."""
        result = wait_for_change(
            self._client, self._cursor, self._timeout, cancel=self._cancel
        )
        if result.changed:
            for page in iter_delta(self._client, self._cursor, cancel=self._cancel):
                self._on_page(page)
                self._cursor = page.cursor
        return result

    def run(self) -> None:
        """Loop until stopped or an error occurs (blocking)."""
        while not self._cancel.cancelled:
            try:
                result = self.poll_once()
            except OperationCancelled:
                break
            except CloudboxError as e:
                logger.warning("ChangeWatcher error: %s", e)
                if self._on_error:
                    self._on_error(e)
                break

            if result.backoff:
                logger.debug("Server asked to back off %.0fs", result.backoff)
                if self._cancel.wait(result.backoff):
                    break
