"""Tests for the object store client."""

import httpx
import pytest

from docsync.exceptions import (
    StorageAuthenticationError,
    StorageError,
    StorageNetworkError,
    StorageNotFoundError,
)
from docsync.storage import StorageClient


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Record retry delays instead of sleeping."""
    delays = []
    monkeypatch.setattr("docsync.storage.time.sleep", delays.append)
    return delays


def make_client(handler, **kwargs):
    return StorageClient(
        "https://store.example/",
        "docs",
        api_key=kwargs.pop("api_key", "token"),
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestStorageClientObjects:
    """Tests for upload, download and list."""

    def test_upload(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        with make_client(handler) as client:
            client.upload("scans/a b.pdf", b"payload")

        (request,) = requests
        assert request.method == "PUT"
        assert str(request.url) == "https://store.example/docs/scans/a%20b.pdf"
        assert request.content == b"payload"
        assert request.headers["Authorization"] == "Bearer token"
        assert request.headers["Content-Type"] == "application/octet-stream"

    def test_leading_slash_stripped(self):
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(200)

        make_client(handler).upload("/home/me/a.pdf", b"x")

        assert urls == ["https://store.example/docs/home/me/a.pdf"]

    def test_no_api_key_no_header(self):
        headers = []

        def handler(request):
            headers.append(request.headers)
            return httpx.Response(200, content=b"")

        make_client(handler, api_key=None).download("a")

        assert "Authorization" not in headers[0]

    def test_download(self):
        def handler(request):
            assert request.method == "GET"
            return httpx.Response(200, content=b"\x00blob")

        assert make_client(handler).download("manifest") == b"\x00blob"

    def test_list(self):
        def handler(request):
            assert request.url.path == "/docs"
            assert request.url.params["prefix"] == "scans/"
            return httpx.Response(200, json={"objects": ["scans/a.pdf", "scans/b.pdf"]})

        assert make_client(handler).list("scans/") == ["scans/a.pdf", "scans/b.pdf"]

    def test_list_invalid_payload(self):
        def handler(request):
            return httpx.Response(200, json={"items": []})

        with pytest.raises(StorageError, match="no objects list"):
            make_client(handler).list()


class TestStorageClientErrors:
    """Tests for status mapping and retries."""

    def test_not_found(self):
        client = make_client(lambda request: httpx.Response(404))
        with pytest.raises(StorageNotFoundError):
            client.download("missing")

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_error(self, status):
        client = make_client(lambda request: httpx.Response(status))
        with pytest.raises(StorageAuthenticationError):
            client.upload("a", b"x")

    def test_client_error_not_retried(self, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400)

        with pytest.raises(StorageError, match="status 400"):
            make_client(handler).upload("a", b"x")
        assert len(calls) == 1
        assert no_sleep == []

    def test_server_error_retried_then_succeeds(self, no_sleep):
        responses = [httpx.Response(503), httpx.Response(500), httpx.Response(200)]

        client = make_client(lambda request: responses.pop(0))
        client.upload("a", b"x")

        assert responses == []
        assert len(no_sleep) == 2

    def test_retry_after_header(self, no_sleep):
        responses = [
            httpx.Response(429, headers={"Retry-After": "7"}),
            httpx.Response(200),
        ]

        make_client(lambda request: responses.pop(0)).upload("a", b"x")

        assert no_sleep == [7.0]

    def test_gives_up_after_max_retries(self, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502)

        with pytest.raises(StorageError, match="status 502"):
            make_client(handler, max_retries=2).upload("a", b"x")
        assert len(calls) == 3

    def test_network_error(self, no_sleep):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(StorageNetworkError, match="connection refused"):
            make_client(handler, max_retries=1).download("a")
        assert len(no_sleep) == 1

    def test_backoff_grows(self):
        client = StorageClient("https://s", "b", retry_delay=1.0)
        assert 0.75 <= client._calculate_retry_delay(0) <= 1.25
        assert 3.0 <= client._calculate_retry_delay(2) <= 5.0

    def test_close_is_idempotent(self):
        client = make_client(lambda request: httpx.Response(200))
        client.download("a")
        client.close()
        client.close()
        assert client._client is None
