"""HTTP client for the storage service API.

This module provides:
- HTTPClient: Transport and response mapping for every endpoint
- File and folder operations (metadata, search, copy, move, delete)
- Share, media and thumbnail links
- Whole-file upload and download
- The raw calls used by the resumable upload and change sync protocols
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import Future
from typing import IO, Any, TypeVar
from urllib.parse import quote

import httpx

from cloudbox.client.models import ChunkedUploadState, Metadata, ShareLink
from cloudbox.core.cancel import CancelToken
from cloudbox.core.config import ClientConfig
from cloudbox.core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    OperationCancelled,
    ProtocolError,
    TransportFailure,
)
from cloudbox.core.types import ThumbnailFormat, ThumbnailSize

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Request bodies are streamed in slices so cancellation can stop a chunk mid-way
BODY_SLICE_SIZE = 64 * 1024

# Extra read time granted to a long-poll on top of the requested wait
LONGPOLL_READ_MARGIN = 90.0


def clean_path(path: str) -> str:
    """Strip surrounding slashes and percent-encode a service path."""
    return quote(path.strip("/"), safe="/")


def _join(*parts: str) -> str:
    return "/".join(p for p in parts if p)


def _sliced(data: bytes, cancel: CancelToken | None) -> Iterator[bytes]:
    view = memoryview(data)
    for start in range(0, len(data), BODY_SLICE_SIZE):
        if cancel is not None:
            cancel.raise_if_cancelled()
        yield bytes(view[start:start + BODY_SLICE_SIZE])


def _blocks(source: IO[bytes], cancel: CancelToken | None) -> Iterator[bytes]:
    while True:
        if cancel is not None:
            cancel.raise_if_cancelled()
        block = source.read(BODY_SLICE_SIZE)
        if not block:
            return
        yield block


def _remaining(source: IO[bytes]) -> int | None:
    """Bytes left between the current position and the end, if seekable."""
    try:
        if not source.seekable():
            return None
        position = source.tell()
        end = source.seek(0, 2)
        source.seek(position)
        return end - position
    except (AttributeError, OSError):
        return None


def decode(response: httpx.Response, parse: Callable[[Any], T]) -> T:
    """Decode a success response body with parse.

    Raises:
        ProtocolError: If the body is not JSON or does not have the expected shape.
    """
    try:
        return parse(response.json())
    except (ValueError, KeyError, TypeError) as e:
        raise ProtocolError(
            f"Malformed response to {response.request.method} "
            f"{response.request.url.path}: {e!r}",
            response.status_code,
            response.content,
        ) from e


def _identity(data: Any) -> Any:
    return data


def _mapping(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise TypeError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _discard(future: Future[httpx.Response]) -> None:
    """Close the response of an abandoned request once it arrives."""
    if not future.cancelled() and future.exception() is None:
        future.result().close()


class HTTPClient:
    """HTTP client for the storage service API.

    Requests made with a CancelToken run on their own daemon thread so the
    calling thread can be released as soon as the token fires, even while
    the server still holds the request open. An abandoned request never
    delays later ones.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            config: Server configuration (URLs, token, timeout).
            transport: Optional httpx transport (defaults to httpx's own).
        """
        self._config = config
        self._client = httpx.Client(
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers={"Authorization": f"Bearer {config.token}"},
            transport=transport,
        )

    @property
    def config(self) -> ClientConfig:
        """Configuration this client was built from."""
        return self._config

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> HTTPClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    # === Transport ===

    def _api(self, *parts: str) -> str:
        return _join(self._config.server_url, "1", *parts)

    def _content(self, *parts: str) -> str:
        return _join(str(self._config.content_url), "1", *parts)

    def _notify(self, *parts: str) -> str:
        return _join(str(self._config.notify_url), "1", *parts)

    def _rooted(self, path: str) -> str:
        return _join(self._config.root, clean_path(path))

    def _build(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Request:
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        return self._client.build_request(method, url, params=params or None, **kwargs)

    def _transmit(self, request: httpx.Request, stream: bool = False) -> httpx.Response:
        """Send a request, wrapping network errors as TransportFailure."""
        logger.debug("%s %s", request.method, request.url)
        try:
            return self._client.send(request, stream=stream)
        except httpx.RequestError as e:
            raise TransportFailure(
                f"{request.method} {request.url.path} failed: {e}", e
            ) from e

    def _exchange(
        self,
        request: httpx.Request,
        cancel: CancelToken,
        future: Future[httpx.Response],
    ) -> None:
        """Run one cancellable request; the token closes its response early."""
        try:
            response = self._transmit(request, stream=True)
            remove = cancel.add_callback(response.close)
            try:
                response.read()
            except httpx.RequestError as e:
                response.close()
                raise TransportFailure(
                    f"{request.method} {request.url.path} failed: {e}", e
                ) from e
            finally:
                remove()
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(response)

    def _send(
        self,
        request: httpx.Request,
        cancel: CancelToken | None = None,
    ) -> httpx.Response:
        """Send a request and map the response status.

        Raises:
            TransportFailure: On network errors.
            ProtocolError: On non-success status.
            OperationCancelled: If the token fires before the response is used.
        """
        if cancel is None:
            return self._handle_response(self._transmit(request))

        cancel.raise_if_cancelled()
        future: Future[httpx.Response] = Future()
        threading.Thread(
            target=self._exchange,
            args=(request, cancel, future),
            name="cloudbox-http",
            daemon=True,
        ).start()
        finished = threading.Event()
        future.add_done_callback(lambda _: finished.set())
        remove = cancel.add_callback(finished.set)
        try:
            finished.wait()
        finally:
            remove()

        if cancel.cancelled:
            future.add_done_callback(_discard)
            logger.debug("Cancelled %s %s", request.method, request.url.path)
            raise OperationCancelled(f"{request.method} {request.url.path} cancelled")
        return self._handle_response(future.result())

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.is_success:
            return response

        body = response.content
        detail = response.reason_phrase or "Unknown error"
        try:
            data = response.json()
            if isinstance(data, dict) and data.get("error"):
                detail = str(data["error"])
        except ValueError:
            pass

        status = response.status_code
        if status == 401:
            raise AuthenticationError("Invalid or expired token", status, body)
        if status == 404:
            raise NotFoundError(detail, status, body)
        if status == 409:
            raise ConflictError(detail, status, body)
        raise ProtocolError(detail, status, body)

    def request_json(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        cancel: CancelToken | None = None,
        parse: Callable[[Any], Any] = _identity,
        **kwargs: Any,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        This is the generic "send request, get typed response" entry point
        used by every operation below. parse turns the JSON into the typed
        result; a body it cannot handle raises ProtocolError.
        """
        response = self._send(self._build(method, url, params, **kwargs), cancel)
        return decode(response, parse)

    # === Metadata ===

    def get_metadata(
        self,
        path: str,
        hash: str | None = None,
        list_contents: bool = True,
        include_deleted: bool = False,
        rev: str | None = None,
        include_membership: bool | None = None,
        cancel: CancelToken | None = None,
    ) -> Metadata:
        """Get metadata for a file or folder.

        Args:
            path: Path to file or folder.
            hash: Hash of a previous folder listing.
            list_contents: Include the folder contents.
            include_deleted: Include deleted entries in the contents.
            rev: Specific revision of a file.
            include_membership: Include shared folder membership.

        Returns:
            File or folder metadata.

        Raises:
            NotFoundError: If the path does not exist.
        """
        metadata: Metadata = self.request_json(
            "GET",
            self._api("metadata", self._rooted(path)),
            params={
                "hash": hash,
                "list": list_contents,
                "include_deleted": include_deleted,
                "rev": rev,
                "include_membership": include_membership,
            },
            cancel=cancel,
            parse=Metadata.from_dict,
        )
        return metadata

    def search(
        self,
        query: str,
        path: str = "",
        cancel: CancelToken | None = None,
    ) -> list[Metadata]:
        """Search for entries whose name contains the query.

        Args:
            query: Search string.
            path: Folder to search in (default: root).

        Returns:
            Matching entries.
        """
        results: list[Metadata] = self.request_json(
            "GET",
            self._api("search", self._rooted(path)),
            params={"query": query},
            cancel=cancel,
            parse=lambda data: [Metadata.from_dict(m) for m in data],
        )
        return results

    # === Links ===

    def get_share(
        self,
        path: str,
        short_url: bool | None = None,
        cancel: CancelToken | None = None,
    ) -> ShareLink:
        """Create a public share link for a file or folder.

        Args:
            path: Path to share.
            short_url: Ask for a shortened URL.

        Returns:
            Share link.
        """
        link: ShareLink = self.request_json(
            "GET",
            self._api("shares", self._rooted(path)),
            params={"short_url": short_url},
            cancel=cancel,
            parse=ShareLink.from_dict,
        )
        return link

    def get_media(self, path: str, cancel: CancelToken | None = None) -> ShareLink:
        """Get a direct streaming link for a file."""
        link: ShareLink = self.request_json(
            "GET",
            self._api("media", self._rooted(path)),
            cancel=cancel,
            parse=ShareLink.from_dict,
        )
        return link

    def file_url(self, path: str) -> str:
        """URL a download of path would use."""
        return str(self._build("GET", self._content("files", self._rooted(path))).url)

    def upload_url(
        self,
        path: str,
        filename: str,
        parent_revision: str | None = None,
    ) -> str:
        """URL a streamed upload to path/filename would use."""
        request = self._build(
            "PUT",
            self._content("files_put", self._rooted(_join(path.strip("/"), filename))),
            params={"parent_rev": parent_revision},
        )
        return str(request.url)

    def thumbnail_url(
        self,
        path: str,
        size: ThumbnailSize = ThumbnailSize.SMALL,
        format: ThumbnailFormat = ThumbnailFormat.JPEG,
    ) -> str:
        """URL a thumbnail fetch of path would use."""
        return str(self._thumbnail_request(path, size, format).url)

    # === File operations ===

    def _fileop(
        self,
        op: str,
        cancel: CancelToken | None,
        **params: str,
    ) -> Metadata:
        metadata: Metadata = self.request_json(
            "POST",
            self._api("fileops", op),
            params={"root": self._config.root, **params},
            cancel=cancel,
            parse=Metadata.from_dict,
        )
        return metadata

    def delete(self, path: str, cancel: CancelToken | None = None) -> Metadata:
        """Delete a file or folder.

        Returns:
            Metadata of the deleted entry.
        """
        return self._fileop("delete", cancel, path=path)

    def copy(
        self,
        from_path: str,
        to_path: str,
        cancel: CancelToken | None = None,
    ) -> Metadata:
        """Copy a file or folder to a new location."""
        return self._fileop("copy", cancel, from_path=from_path, to_path=to_path)

    def move(
        self,
        from_path: str,
        to_path: str,
        cancel: CancelToken | None = None,
    ) -> Metadata:
        """Move a file or folder to a new location."""
        return self._fileop("move", cancel, from_path=from_path, to_path=to_path)

    def create_folder(self, path: str, cancel: CancelToken | None = None) -> Metadata:
        """Create a folder.

        Raises:
            ProtocolError: If something already exists at path (403).
        """
        return self._fileop("create_folder", cancel, path=path)

    # === Whole-file transfer ===

    def get_file(self, path: str, cancel: CancelToken | None = None) -> bytes:
        """Download a file into memory.

        Raises:
            NotFoundError: If file not found.
        """
        request = self._build("GET", self._content("files", self._rooted(path)))
        return self._send(request, cancel).content

    def download_to(
        self,
        path: str,
        target: IO[bytes],
        cancel: CancelToken | None = None,
    ) -> int:
        """Stream a file into a writable binary object.

        Args:
            path: Remote file path.
            target: Destination opened for binary writing.
            cancel: Checked between received blocks.

        Returns:
            Number of bytes written.
        """
        url = self._content("files", self._rooted(path))
        written = 0
        try:
            with self._client.stream("GET", url) as response:
                if not response.is_success:
                    response.read()
                    self._handle_response(response)
                for block in response.iter_bytes():
                    if cancel is not None:
                        cancel.raise_if_cancelled()
                    target.write(block)
                    written += len(block)
        except httpx.RequestError as e:
            raise TransportFailure(f"GET {path} failed: {e}", e) from e
        logger.debug("Downloaded %s (%d bytes)", path, written)
        return written

    def upload(
        self,
        path: str,
        filename: str,
        data: bytes,
        parent_revision: str | None = None,
        cancel: CancelToken | None = None,
    ) -> Metadata:
        """Upload a whole file as a multipart form.

        Args:
            path: Destination folder.
            filename: Destination file name.
            data: File content.
            parent_revision: Revision the upload replaces (conflict check).

        Returns:
            Metadata of the stored file.
        """
        metadata: Metadata = self.request_json(
            "POST",
            self._content("files", self._rooted(path)),
            params={"parent_rev": parent_revision},
            files={"file": (filename, data, "application/octet-stream")},
            cancel=cancel,
            parse=Metadata.from_dict,
        )
        return metadata

    def upload_stream(
        self,
        path: str,
        filename: str,
        source: IO[bytes],
        parent_revision: str | None = None,
        cancel: CancelToken | None = None,
    ) -> Metadata:
        """Upload a whole file by streaming the body of a PUT.

        The source is read in slices from its current position; a seekable
        source is sent with its length, anything else with chunked encoding.
        """
        headers = {"Content-Type": "application/octet-stream"}
        size = _remaining(source)
        if size is not None:
            headers["Content-Length"] = str(size)
        metadata: Metadata = self.request_json(
            "PUT",
            self.upload_url(path, filename, parent_revision),
            content=_blocks(source, cancel),
            headers=headers,
            cancel=cancel,
            parse=Metadata.from_dict,
        )
        return metadata

    # === Thumbnails ===

    def _thumbnail_request(
        self,
        path: str,
        size: ThumbnailSize,
        format: ThumbnailFormat,
    ) -> httpx.Request:
        return self._build(
            "GET",
            self._content("thumbnails", self._rooted(path)),
            params={"size": size.value, "format": format.value},
        )

    def get_thumbnail(
        self,
        path: str,
        size: ThumbnailSize = ThumbnailSize.SMALL,
        format: ThumbnailFormat = ThumbnailFormat.JPEG,
        cancel: CancelToken | None = None,
    ) -> bytes:
        """Fetch a thumbnail image for an image file."""
        return self._send(self._thumbnail_request(path, size, format), cancel).content

    # === Chunked upload ===

    def put_chunk(
        self,
        data: bytes,
        offset: int,
        upload_id: str | None = None,
        cancel: CancelToken | None = None,
    ) -> ChunkedUploadState:
        """Send one chunk of a resumable upload.

        Args:
            data: Chunk content.
            offset: Absolute position of data in the file.
            upload_id: Session id; None opens a new session.
            cancel: Checked between body slices and while waiting.

        Returns:
            The state reported by the server.
        """
        request = self._build(
            "PUT",
            self._content("chunked_upload"),
            params={"upload_id": upload_id, "offset": offset},
            content=_sliced(data, cancel),
            headers={
                "Content-Length": str(len(data)),
                "Content-Type": "application/octet-stream",
            },
        )
        return decode(self._send(request, cancel), ChunkedUploadState.from_dict)

    def commit_chunked_upload(
        self,
        path: str,
        filename: str,
        upload_id: str,
        parent_revision: str | None = None,
        cancel: CancelToken | None = None,
    ) -> Metadata:
        """Finalize a resumable upload under path/filename.

        Returns:
            Metadata of the stored file.

        Raises:
            ConflictError: If parent_revision no longer matches.
        """
        metadata: Metadata = self.request_json(
            "POST",
            self._content(
                "commit_chunked_upload", self._rooted(_join(path.strip("/"), filename))
            ),
            params={"upload_id": upload_id, "parent_rev": parent_revision},
            cancel=cancel,
            parse=Metadata.from_dict,
        )
        return metadata

    # === Change sync ===

    def delta(self, cursor: str = "", cancel: CancelToken | None = None) -> dict[str, Any]:
        """Fetch one raw page of account changes.

        Args:
            cursor: Resume token; empty requests a full snapshot.

        Returns:
            The undecoded page ({cursor, has_more, reset, entries}).
        """
        form = {"cursor": cursor} if cursor else None
        result: dict[str, Any] = self.request_json(
            "POST", self._api("delta"), data=form, cancel=cancel, parse=_mapping
        )
        return result

    def longpoll_delta(
        self,
        cursor: str,
        timeout: int,
        cancel: CancelToken | None = None,
    ) -> dict[str, Any]:
        """Block until the account changes or timeout seconds pass.

        The read timeout of this call is timeout plus a margin, separate from
        the client's default per-request timeout.

        Returns:
            The raw result ({changes, backoff?}).
        """
        result: dict[str, Any] = self.request_json(
            "GET",
            self._notify("longpoll_delta"),
            params={"cursor": cursor, "timeout": timeout},
            timeout=httpx.Timeout(self._config.timeout, read=timeout + LONGPOLL_READ_MARGIN),
            cancel=cancel,
            parse=_mapping,
        )
        return result
