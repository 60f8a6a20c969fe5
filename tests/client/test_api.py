"""Tests for the cloudbox HTTP client."""

import io

import httpx
import pytest

from cloudbox.client.api import HTTPClient, clean_path
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

FILE_JSON = {
    "path": "/docs/a.txt",
    "bytes": 5,
    "rev": "r1",
    "modified": "Sat, 21 Aug 2010 22:31:20 +0000",
}


def make_config(
    server_url: str = "http://test", token: str = "token123", **kwargs: object
) -> ClientConfig:
    """Create a ClientConfig for testing."""
    return ClientConfig(server_url=server_url, token=token, **kwargs)  # type: ignore[arg-type]


class TestCleanPath:
    """Tests for path normalization."""

    def test_strips_slashes(self) -> None:
        """Should strip leading and trailing slashes."""
        assert clean_path("/docs/a.txt/") == "docs/a.txt"

    def test_quotes_specials(self) -> None:
        """Should percent-encode everything but separators."""
        assert clean_path("/my docs/a#b.txt") == "my%20docs/a%23b.txt"

    def test_root(self) -> None:
        """Should map the root to an empty path."""
        assert clean_path("/") == ""


class TestHTTPClient:
    """Tests for HTTPClient transport and error mapping."""

    def test_sends_bearer_token(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should send the token as a bearer authorization header."""
        httpx_mock.add_response(
            url="http://test/1/metadata/auto/docs/a.txt?list=true&include_deleted=false",
            json=FILE_JSON,
        )

        with HTTPClient(make_config()) as client:
            client.get_metadata("/docs/a.txt")

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer token123"

    def test_authentication_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise AuthenticationError on 401."""
        httpx_mock.add_response(status_code=401, json={"error": "bad token"})

        with HTTPClient(make_config()) as client, pytest.raises(AuthenticationError) as exc:
            client.get_metadata("/")

        assert exc.value.status_code == 401

    def test_not_found_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise NotFoundError with the server's message on 404."""
        httpx_mock.add_response(status_code=404, json={"error": "Path not found"})

        with (
            HTTPClient(make_config()) as client,
            pytest.raises(NotFoundError, match="Path not found") as exc,
        ):
            client.get_metadata("/missing")

        assert exc.value.status_code == 404
        assert b"Path not found" in exc.value.body

    def test_conflict_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise ConflictError on 409."""
        httpx_mock.add_response(status_code=409, json={"error": "Revision mismatch"})

        with HTTPClient(make_config()) as client, pytest.raises(ConflictError):
            client.commit_chunked_upload("/docs", "a.txt", "u1", parent_revision="old")

    def test_other_status_keeps_body(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise ProtocolError carrying status and raw body."""
        httpx_mock.add_response(status_code=503, content=b"try later")

        with HTTPClient(make_config()) as client, pytest.raises(ProtocolError) as exc:
            client.delta()

        assert type(exc.value) is ProtocolError
        assert exc.value.status_code == 503
        assert exc.value.body == b"try later"

    def test_success_with_non_json_body(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise ProtocolError when a 200 body is not JSON."""
        httpx_mock.add_response(status_code=200, text="<html>proxy</html>")

        with HTTPClient(make_config()) as client, pytest.raises(ProtocolError) as exc:
            client.get_metadata("/docs/a.txt")

        assert exc.value.status_code == 200
        assert exc.value.body == b"<html>proxy</html>"

    def test_success_with_wrong_shape(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise ProtocolError when a 200 body lacks required fields."""
        httpx_mock.add_response(method="PUT", json={"offset": 3})

        with HTTPClient(make_config()) as client, pytest.raises(ProtocolError) as exc:
            client.put_chunk(b"abc", 0)

        assert exc.value.status_code == 200
        assert isinstance(exc.value.__cause__, KeyError)

    def test_delta_body_not_an_object(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise ProtocolError when the delta body is not a JSON object."""
        httpx_mock.add_response(method="POST", json=["c1"])

        with HTTPClient(make_config()) as client, pytest.raises(ProtocolError):
            client.delta("c0")

    def test_transport_failure(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should wrap network errors as TransportFailure."""
        httpx_mock.add_exception(httpx.ConnectError("connection refused"))

        with HTTPClient(make_config()) as client, pytest.raises(TransportFailure) as exc:
            client.get_metadata("/")

        assert isinstance(exc.value.cause, httpx.ConnectError)

    def test_cancelled_before_request(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should not send anything when the token already fired."""
        token = CancelToken()
        token.cancel()

        with HTTPClient(make_config()) as client, pytest.raises(OperationCancelled):
            client.get_metadata("/", cancel=token)

        assert httpx_mock.get_requests() == []

    def test_request_with_token_completes(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return normally when the token never fires."""
        httpx_mock.add_response(json=FILE_JSON)

        with HTTPClient(make_config()) as client:
            metadata = client.get_metadata("/docs/a.txt", cancel=CancelToken())

        assert metadata.path == "/docs/a.txt"

    def test_cancelled_while_waiting(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise OperationCancelled when the token fires mid-request."""
        token = CancelToken()

        def respond(request: httpx.Request) -> httpx.Response:
            token.cancel()
            return httpx.Response(200, json=FILE_JSON)

        httpx_mock.add_callback(respond)

        with HTTPClient(make_config()) as client, pytest.raises(OperationCancelled):
            client.get_metadata("/docs/a.txt", cancel=token)


class TestMetadataOperations:
    """Tests for metadata, search and link calls."""

    def test_get_metadata_params(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should pass the listing options as query parameters."""
        httpx_mock.add_response(
            url=(
                "http://test/1/metadata/auto/docs?hash=h1&list=false"
                "&include_deleted=true&rev=r2"
            ),
            json={"path": "/docs", "is_dir": True},
        )

        with HTTPClient(make_config()) as client:
            metadata = client.get_metadata(
                "/docs", hash="h1", list_contents=False, include_deleted=True, rev="r2"
            )

        assert metadata.is_dir is True

    def test_custom_root(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should place the configured root in path-based URLs."""
        httpx_mock.add_response(
            url="http://test/1/metadata/sandbox/a.txt?list=true&include_deleted=false",
            json={"path": "/a.txt"},
        )

        with HTTPClient(make_config(root="sandbox")) as client:
            client.get_metadata("a.txt")

    def test_search(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return matching entries."""
        httpx_mock.add_response(
            url="http://test/1/search/auto/docs?query=report",
            json=[{"path": "/docs/report.pdf"}, {"path": "/docs/report-old.pdf"}],
        )

        with HTTPClient(make_config()) as client:
            results = client.search("report", "/docs")

        assert [m.path for m in results] == ["/docs/report.pdf", "/docs/report-old.pdf"]

    def test_get_share(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should request a share link."""
        httpx_mock.add_response(
            url="http://test/1/shares/auto/docs/a.txt?short_url=true",
            json={"url": "https://db.tt/x", "expires": "Tue, 01 Jan 2030 00:00:00 +0000"},
        )

        with HTTPClient(make_config()) as client:
            link = client.get_share("/docs/a.txt", short_url=True)

        assert link.url == "https://db.tt/x"

    def test_get_media(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should request a media link."""
        httpx_mock.add_response(
            url="http://test/1/media/auto/video.mp4",
            json={"url": "https://dl.example.com/v"},
        )

        with HTTPClient(make_config()) as client:
            assert client.get_media("/video.mp4").url == "https://dl.example.com/v"


class TestUrlBuilders:
    """Tests for URL-only helpers."""

    def test_file_url_uses_content_host(self) -> None:
        """Should build download URLs on the content host."""
        config = make_config(content_url="http://content.test")
        with HTTPClient(config) as client:
            assert client.file_url("/my docs/a.txt") == (
                "http://content.test/1/files/auto/my%20docs/a.txt"
            )

    def test_upload_url(self) -> None:
        """Should build streamed upload URLs with the parent revision."""
        with HTTPClient(make_config()) as client:
            assert client.upload_url("/docs", "a.txt", "r1") == (
                "http://test/1/files_put/auto/docs/a.txt?parent_rev=r1"
            )
            assert client.upload_url("/", "a.txt") == "http://test/1/files_put/auto/a.txt"

    def test_thumbnail_url(self) -> None:
        """Should encode size and format."""
        with HTTPClient(make_config()) as client:
            url = client.thumbnail_url("/p.jpg", ThumbnailSize.LARGE, ThumbnailFormat.PNG)
        assert url == "http://test/1/thumbnails/auto/p.jpg?size=l&format=png"


class TestFileOperations:
    """Tests for fileops calls."""

    def test_create_folder(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should post to create_folder with root and path."""
        httpx_mock.add_response(
            url="http://test/1/fileops/create_folder?root=auto&path=%2Fnew",
            method="POST",
            json={"path": "/new", "is_dir": True},
        )

        with HTTPClient(make_config()) as client:
            assert client.create_folder("/new").is_dir is True

    def test_delete(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should post to delete."""
        httpx_mock.add_response(
            url="http://test/1/fileops/delete?root=auto&path=%2Fold.txt",
            method="POST",
            json={"path": "/old.txt", "is_deleted": True},
        )

        with HTTPClient(make_config()) as client:
            assert client.delete("/old.txt").is_deleted is True

    def test_move(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should post to move with both paths."""
        httpx_mock.add_response(
            url="http://test/1/fileops/move?root=auto&from_path=%2Fa&to_path=%2Fb",
            method="POST",
            json={"path": "/b"},
        )

        with HTTPClient(make_config()) as client:
            assert client.move("/a", "/b").path == "/b"

    def test_copy(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should post to copy with both paths."""
        httpx_mock.add_response(
            url="http://test/1/fileops/copy?root=auto&from_path=%2Fa&to_path=%2Fc",
            method="POST",
            json={"path": "/c"},
        )

        with HTTPClient(make_config()) as client:
            assert client.copy("/a", "/c").path == "/c"


class TestFileTransfer:
    """Tests for whole-file upload and download."""

    def test_get_file(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return file content."""
        httpx_mock.add_response(url="http://test/1/files/auto/a.txt", content=b"hello")

        with HTTPClient(make_config()) as client:
            assert client.get_file("/a.txt") == b"hello"

    def test_download_to(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should stream content into the target."""
        httpx_mock.add_response(url="http://test/1/files/auto/a.txt", content=b"x" * 1000)
        target = io.BytesIO()

        with HTTPClient(make_config()) as client:
            written = client.download_to("/a.txt", target)

        assert written == 1000
        assert target.getvalue() == b"x" * 1000

    def test_download_to_not_found(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should map errors of streamed downloads."""
        httpx_mock.add_response(status_code=404, json={"error": "File not found"})

        with HTTPClient(make_config()) as client, pytest.raises(NotFoundError):
            client.download_to("/missing.txt", io.BytesIO())

    def test_upload_multipart(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should post the file as a multipart form."""
        httpx_mock.add_response(
            url="http://test/1/files/auto/docs?parent_rev=r1",
            method="POST",
            json=FILE_JSON,
        )

        with HTTPClient(make_config()) as client:
            metadata = client.upload("/docs", "a.txt", b"hello", parent_revision="r1")

        assert metadata.rev == "r1"
        body = httpx_mock.get_request().read()
        assert b'filename="a.txt"' in body
        assert b"hello" in body

    def test_upload_stream(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should stream the rest of a seekable source with its length."""
        received: list[httpx.Request] = []

        def respond(request: httpx.Request) -> httpx.Response:
            request.read()
            received.append(request)
            return httpx.Response(200, json=FILE_JSON)

        httpx_mock.add_callback(
            respond, url="http://test/1/files_put/auto/docs/a.txt", method="PUT"
        )
        source = io.BytesIO(b"xxhello")
        source.seek(2)

        with HTTPClient(make_config()) as client:
            client.upload_stream("/docs", "a.txt", source)

        assert received[0].content == b"hello"
        assert received[0].headers["Content-Length"] == "5"

    def test_upload_stream_unseekable(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should send a source of unknown length with chunked encoding."""

        class Pipe(io.BytesIO):
            def seekable(self) -> bool:
                return False

        received: list[httpx.Request] = []

        def respond(request: httpx.Request) -> httpx.Response:
            request.read()
            received.append(request)
            return httpx.Response(200, json=FILE_JSON)

        httpx_mock.add_callback(respond, method="PUT")

        with HTTPClient(make_config()) as client:
            client.upload_stream("/docs", "a.txt", Pipe(b"y" * 200_000))

        assert received[0].content == b"y" * 200_000
        assert received[0].headers["Transfer-Encoding"] == "chunked"
        assert "Content-Length" not in received[0].headers

    def test_get_thumbnail(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return thumbnail bytes."""
        httpx_mock.add_response(
            url="http://test/1/thumbnails/auto/p.jpg?size=s&format=jpeg",
            content=b"\xff\xd8",
        )

        with HTTPClient(make_config()) as client:
            assert client.get_thumbnail("/p.jpg") == b"\xff\xd8"


class TestChunkedUploadCalls:
    """Tests for the raw chunked upload calls."""

    def test_first_chunk_has_no_upload_id(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should open a session with offset 0 and no upload_id."""
        seen: list[bytes] = []

        def respond(request: httpx.Request) -> httpx.Response:
            seen.append(request.read())
            return httpx.Response(200, json={"upload_id": "u1", "offset": 5})

        httpx_mock.add_callback(
            respond, url="http://test/1/chunked_upload?offset=0", method="PUT"
        )

        with HTTPClient(make_config()) as client:
            state = client.put_chunk(b"hello", 0)

        assert state.upload_id == "u1"
        assert state.offset == 5
        assert seen == [b"hello"]

    def test_later_chunk_carries_session(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should send upload_id and offset on the content host."""
        httpx_mock.add_response(
            url="http://content.test/1/chunked_upload?upload_id=u1&offset=5",
            method="PUT",
            json={"upload_id": "u1", "offset": 10},
        )

        with HTTPClient(make_config(content_url="http://content.test")) as client:
            client.put_chunk(b"world", 5, "u1")

    def test_chunk_body_has_fixed_length(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should announce the chunk length instead of chunked encoding."""
        data = b"z" * (200 * 1024 + 3)
        received: list[httpx.Request] = []

        def respond(request: httpx.Request) -> httpx.Response:
            request.read()
            received.append(request)
            return httpx.Response(200, json={"upload_id": "u1", "offset": len(data)})

        httpx_mock.add_callback(respond)

        with HTTPClient(make_config()) as client:
            client.put_chunk(data, 0, cancel=CancelToken())

        request = received[0]
        assert request.headers["Content-Length"] == str(len(data))
        assert "Transfer-Encoding" not in request.headers
        assert request.content == data

    def test_commit(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should commit under path/filename with the upload_id."""
        httpx_mock.add_response(
            url="http://test/1/commit_chunked_upload/auto/docs/a.txt?upload_id=u1",
            method="POST",
            json=FILE_JSON,
        )

        with HTTPClient(make_config()) as client:
            metadata = client.commit_chunked_upload("/docs", "a.txt", "u1")

        assert metadata.path == "/docs/a.txt"


class TestChangeCalls:
    """Tests for delta and long-poll calls."""

    def test_delta_with_cursor(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should post the cursor as a form field."""
        page = {"cursor": "c2", "has_more": False, "reset": False, "entries": []}
        httpx_mock.add_response(
            url="http://test/1/delta",
            method="POST",
            match_content=b"cursor=c1",
            json=page,
        )

        with HTTPClient(make_config()) as client:
            assert client.delta("c1") == page

    def test_delta_without_cursor(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should omit an empty cursor."""
        httpx_mock.add_response(
            url="http://test/1/delta",
            method="POST",
            json={"cursor": "c1", "has_more": False, "reset": True, "entries": []},
        )

        with HTTPClient(make_config()) as client:
            client.delta("")

        assert httpx_mock.get_request().read() == b""

    def test_longpoll_uses_notify_host(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should long-poll the notify host with cursor and timeout."""
        httpx_mock.add_response(
            url="http://notify.test/1/longpoll_delta?cursor=c1&timeout=60",
            json={"changes": False},
        )

        with HTTPClient(make_config(notify_url="http://notify.test")) as client:
            assert client.longpoll_delta("c1", 60) == {"changes": False}

    def test_longpoll_read_timeout(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should extend the read timeout beyond the requested wait."""
        httpx_mock.add_response(json={"changes": True})

        with HTTPClient(make_config()) as client:
            client.longpoll_delta("c1", 480)

        timeout = httpx_mock.get_request().extensions["timeout"]
        assert timeout["read"] == 480 + 90
        assert timeout["connect"] == 30.0
