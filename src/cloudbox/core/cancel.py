"""Cancellation signal shared by the core operations.

A CancelToken is handed to an upload, delta or long-poll call. Any thread
may call cancel(); the operation observes it before each request, between
slices of a chunk body, and while waiting for a response.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from cloudbox.core.errors import OperationCancelled


class CancelToken:
    """Thread-safe, one-shot cancellation flag with callbacks."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation and fire registered callbacks once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelled if cancellation was requested."""
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout; return True if cancelled."""
        return self._event.wait(timeout)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback fired on cancel.

        If the token is already cancelled the callback runs immediately.

        Returns:
            A function removing the callback again.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def remove() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return remove
        callback()
        return lambda: None
