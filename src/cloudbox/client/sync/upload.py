"""Resumable chunked upload.

This module provides:
- start_session / send_next_chunk / commit_chunked_upload: The three
  protocol steps, usable on their own to resume a persisted session
- ResumableUpload: State machine driving start -> chunk x N -> commit
- upload_resumable: One-call upload of a seekable byte source

Chunks go out strictly one after another. The upload_id captured from the
first response is the session identity for the whole upload and is the one
handed to commit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import IO, TYPE_CHECKING

from cloudbox.client.models import (
    END_OF_SOURCE,
    ChunkedUploadState,
    ChunkStep,
    Metadata,
)
from cloudbox.client.sync.types import (
    ProgressCallback,
    StateCallback,
    UploadAnomaly,
    UploadPhase,
    UploadProgress,
)
from cloudbox.core.config import DEFAULT_CHUNK_SIZE
from cloudbox.core.errors import OperationCancelled, StateError

if TYPE_CHECKING:
    from cloudbox.client.api import HTTPClient
    from cloudbox.core.cancel import CancelToken

logger = logging.getLogger(__name__)

AnomalyCallback = Callable[[UploadAnomaly], None]


def _read_up_to(source: IO[bytes], size: int) -> bytes:
    """Read size bytes, or fewer only at the end of the source."""
    parts: list[bytes] = []
    remaining = size
    while remaining > 0:
        block = source.read(remaining)
        if not block:
            break
        parts.append(block)
        remaining -= len(block)
    return b"".join(parts)


def _check_chunk_size(chunk_size: int) -> None:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")


def _reconcile(
    expected: ChunkedUploadState,
    reported: ChunkedUploadState,
    on_anomaly: AnomalyCallback | None,
) -> None:
    """Surface a server response that disagrees with the local bookkeeping."""
    if reported == expected:
        return
    anomaly = UploadAnomaly(
        expected=expected,
        reported_upload_id=reported.upload_id,
        reported_offset=reported.offset,
    )
    logger.warning(
        "Chunk response disagrees with session: expected %s@%d, got %s@%d",
        expected.upload_id,
        expected.offset,
        reported.upload_id,
        reported.offset,
    )
    if on_anomaly:
        on_anomaly(anomaly)


def start_session(
    client: HTTPClient,
    source: IO[bytes],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    cancel: CancelToken | None = None,
    on_anomaly: AnomalyCallback | None = None,
) -> ChunkedUploadState:
    """Open an upload session by sending the first chunk.

    Args:
        client: HTTP client for server communication.
        source: Seekable byte source positioned at its start.
        chunk_size: Maximum bytes per chunk.
        cancel: Optional cancellation token.
        on_anomaly: Called when the response offset disagrees with the bytes sent.

    Returns:
        State anchoring the session (upload_id, bytes sent).

    Raises:
        ProtocolError: On non-success status.
        TransportFailure: On network errors.
        OperationCancelled: If cancelled.
    """
    _check_chunk_size(chunk_size)
    data = _read_up_to(source, chunk_size)
    reported = client.put_chunk(data, 0, None, cancel=cancel)
    state = ChunkedUploadState(upload_id=reported.upload_id, offset=len(data))
    _reconcile(state, reported, on_anomaly)
    return state


def send_next_chunk(
    client: HTTPClient,
    source: IO[bytes],
    chunk_size: int,
    state: ChunkedUploadState | None,
    cancel: CancelToken | None = None,
    on_anomaly: AnomalyCallback | None = None,
) -> ChunkStep:
    """Send the chunk following state, or report the end of the source.

    Args:
        client: HTTP client for server communication.
        source: The source the session was started from.
        chunk_size: Maximum bytes per chunk.
        state: State returned by the previous start/chunk call.
        cancel: Optional cancellation token.
        on_anomaly: Called when the response disagrees with the session.

    Returns:
        The advanced state, or END_OF_SOURCE when nothing is left to send.

    Raises:
        StateError: If state is None.
        ProtocolError: On non-success status.
        TransportFailure: On network errors.
        OperationCancelled: If cancelled.
    """
    if state is None:
        raise StateError("send_next_chunk needs the state of a previous chunk")
    _check_chunk_size(chunk_size)

    source.seek(state.offset)
    data = _read_up_to(source, chunk_size)
    if not data:
        return END_OF_SOURCE

    reported = client.put_chunk(data, state.offset, state.upload_id, cancel=cancel)
    advanced = ChunkedUploadState(upload_id=state.upload_id, offset=state.offset + len(data))
    _reconcile(advanced, reported, on_anomaly)
    return advanced


def commit_chunked_upload(
    client: HTTPClient,
    path: str,
    filename: str,
    parent_revision: str | None,
    upload_id: str,
    cancel: CancelToken | None = None,
) -> Metadata:
    """Finalize a session under path/filename.

    upload_id must be the one captured when the session was started.
    """
    return client.commit_chunked_upload(
        path, filename, upload_id, parent_revision=parent_revision, cancel=cancel
    )


def destination_path(path: str, filename: str) -> str:
    """Absolute remote path of filename inside folder path."""
    return "/" + "/".join(p for p in (path.strip("/"), filename) if p)


def _measure(source: IO[bytes]) -> int | None:
    """Total size of a seekable source, leaving its position untouched."""
    try:
        if not source.seekable():
            return None
        position = source.tell()
        end = source.seek(0, 2)
        source.seek(position)
        return end
    except (AttributeError, OSError):
        return None


class ResumableUpload:
    """State machine for one resumable upload.

    Phases move NEW -> STARTED -> UPLOADING -> COMMITTING -> DONE. Calling a
    step from the wrong phase raises StateError, so a commit can only follow
    the end-of-source sentinel. Any failure moves the upload to FAILED (or
    CANCELLED) and is re-raised; last_state then holds the last state the
    server acknowledged, which is what ResumableUpload.resume() takes.

    Usage:
        with open("video.mp4", "rb") as f:
            upload = ResumableUpload(client, "/videos", "video.mp4", f)
            metadata = upload.run()
    """

    def __init__(
        self,
        client: HTTPClient,
        path: str,
        filename: str,
        source: IO[bytes],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        progress_callback: ProgressCallback | None = None,
        on_state: StateCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> None:
        """Initialize the upload.

        Args:
            client: HTTP client for server communication.
            path: Destination folder.
            filename: Destination file name.
            source: Seekable byte source, owned by the caller.
            chunk_size: Maximum bytes per chunk.
            progress_callback: Optional callback for progress updates.
            on_state: Called with every acknowledged state (for persistence).
            cancel: Optional cancellation token shared by all steps.
        """
        _check_chunk_size(chunk_size)
        self._client = client
        self._path = path
        self._filename = filename
        self._source = source
        self._chunk_size = chunk_size
        self._progress_callback = progress_callback
        self._on_state = on_state
        self._cancel = cancel

        self._phase = UploadPhase.NEW
        self._state: ChunkedUploadState | None = None
        self._upload_id: str | None = None
        self._total_size = _measure(source)
        self.anomalies: list[UploadAnomaly] = []

    @classmethod
    def resume(
        cls,
        client: HTTPClient,
        path: str,
        filename: str,
        source: IO[bytes],
        state: ChunkedUploadState,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        progress_callback: ProgressCallback | None = None,
        on_state: StateCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> ResumableUpload:
        """Continue a session from a previously persisted state.

        The next call to send_next_chunk() sends the bytes at state.offset,
        or reports the end of the source if everything was already sent.
        """
        upload = cls(
            client,
            path,
            filename,
            source,
            chunk_size=chunk_size,
            progress_callback=progress_callback,
            on_state=on_state,
            cancel=cancel,
        )
        upload._state = state
        upload._upload_id = state.upload_id
        upload._phase = UploadPhase.UPLOADING
        logger.info(
            "Resuming upload %s at offset %d", upload.destination, state.offset
        )
        return upload

    @property
    def phase(self) -> UploadPhase:
        """Current phase."""
        return self._phase

    @property
    def last_state(self) -> ChunkedUploadState | None:
        """Last state acknowledged by the server."""
        return self._state

    @property
    def upload_id(self) -> str | None:
        """Session id captured from the first chunk."""
        return self._upload_id

    @property
    def destination(self) -> str:
        """Destination path of the committed file."""
        return destination_path(self._path, self._filename)

    def _require(self, action: str, *phases: UploadPhase) -> None:
        if self._phase not in phases:
            allowed = ", ".join(p.name for p in phases)
            raise StateError(
                f"Cannot {action} in phase {self._phase.name} (needs {allowed})"
            )

    @contextmanager
    def _step(self) -> Iterator[None]:
        try:
            yield
        except OperationCancelled:
            self._phase = UploadPhase.CANCELLED
            logger.info("Upload of %s cancelled", self.destination)
            raise
        except Exception:
            self._phase = UploadPhase.FAILED
            raise

    def _accept(self, state: ChunkedUploadState) -> None:
        self._state = state
        if self._on_state:
            self._on_state(state)
        if self._progress_callback:
            self._progress_callback(UploadProgress(
                path=self.destination,
                offset=state.offset,
                total_size=self._total_size,
            ))

    def start(self) -> ChunkedUploadState:
        """Send the first chunk and capture the session id."""
        self._require("start", UploadPhase.NEW)
        with self._step():
            state = start_session(
                self._client,
                self._source,
                self._chunk_size,
                cancel=self._cancel,
                on_anomaly=self.anomalies.append,
            )
        self._upload_id = state.upload_id
        self._phase = UploadPhase.STARTED
        logger.info("Started upload %s (session %s)", self.destination, state.upload_id)
        self._accept(state)
        return state

    def send_next_chunk(self) -> ChunkStep:
        """Send the next chunk, or switch to COMMITTING at the end of the source."""
        self._require("send a chunk", UploadPhase.STARTED, UploadPhase.UPLOADING)
        with self._step():
            step = send_next_chunk(
                self._client,
                self._source,
                self._chunk_size,
                self._state,
                cancel=self._cancel,
                on_anomaly=self.anomalies.append,
            )
        if step is END_OF_SOURCE:
            self._phase = UploadPhase.COMMITTING
            return step

        self._phase = UploadPhase.UPLOADING
        logger.debug("Sent chunk of %s, offset now %d", self.destination, step.offset)
        self._accept(step)
        return step

    def commit(self, parent_revision: str | None = None) -> Metadata:
        """Finalize the upload with the session id captured at start."""
        self._require("commit", UploadPhase.COMMITTING)
        if self._upload_id is None:
            raise StateError(f"Cannot commit {self.destination}: no upload session")
        with self._step():
            metadata = commit_chunked_upload(
                self._client,
                self._path,
                self._filename,
                parent_revision,
                self._upload_id,
                cancel=self._cancel,
            )
        self._phase = UploadPhase.DONE
        logger.info("Committed %s (rev %s)", metadata.path, metadata.rev)
        return metadata

    def run(self, parent_revision: str | None = None) -> Metadata:
        """Drive the upload from its current phase to DONE."""
        if self._phase is UploadPhase.NEW:
            self.start()
        while self._phase is not UploadPhase.COMMITTING:
            self.send_next_chunk()
        return self.commit(parent_revision)


def upload_resumable(
    client: HTTPClient,
    path: str,
    filename: str,
    source: IO[bytes],
    progress: ProgressCallback | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    parent_revision: str | None = None,
    cancel: CancelToken | None = None,
) -> Metadata:
    """Upload a seekable source in chunks and commit it as path/filename.

    Any error aborts the upload at once; nothing is retried.

    Returns:
        Metadata of the committed file.
    """
    upload = ResumableUpload(
        client,
        path,
        filename,
        source,
        chunk_size=chunk_size,
        progress_callback=progress,
        cancel=cancel,
    )
    return upload.run(parent_revision)
