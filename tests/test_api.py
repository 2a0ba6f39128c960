"""Unit tests for the Drive API client."""

import json
from unittest.mock import patch

import httpx
import pytest

from pydrivemap.api import DriveClient
from pydrivemap.exceptions import (
    DriveAPIError,
    DriveAuthenticationError,
    DriveConfigError,
    DriveDownloadError,
    DriveInvalidResponseError,
    DriveNetworkError,
    DriveNotFoundError,
    DrivePermissionError,
    DriveRateLimitError,
    DriveUploadError,
)

API_URL = "https://drive.test/v3"


def _client(handler, **kwargs) -> DriveClient:
    """Client whose HTTP traffic goes to ``handler``."""
    client = DriveClient(
        access_token="test_token",
        api_url=API_URL,
        upload_url="https://drive.test/upload/v3",
        **kwargs,
    )
    client._client = httpx.Client(transport=httpx.MockTransport(handler))
    return client


def _error(status: int, reason: str = "", message: str = "") -> httpx.Response:
    errors = [{"reason": reason}]
    body = {"error": {"code": status, "message": message, "errors": errors}}
    return httpx.Response(status, json=body)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("pydrivemap.api.time.sleep") as mock_sleep:
        yield mock_sleep


class TestDriveClient:
    """Tests for DriveClient initialization."""

    def test_init_with_access_token(self):
        client = DriveClient(access_token="test_token", api_url=API_URL + "/")
        assert client.access_token == "test_token"
        assert client.api_url == API_URL

    def test_init_without_access_token_raises_error(self):
        with patch("pydrivemap.api.config") as mock_config:
            mock_config.access_token = None
            mock_config.api_url = API_URL
            mock_config.upload_url = API_URL
            mock_config.timeout = 10.0
            with pytest.raises(DriveConfigError, match="Access token not configured"):
                DriveClient()

    def test_authorization_header(self):
        client = DriveClient(access_token="test_token", api_url=API_URL)
        http_client = client._get_client()
        assert http_client.headers["Authorization"] == "Bearer test_token"
        client.close()
        assert client._client is None


class TestRequest:
    """Tests for the retry loop and error mapping."""

    def test_successful_json_response(self):
        client = _client(lambda request: httpx.Response(200, json={"data": "test"}))
        assert client._request("GET", "/test") == {"data": "test"}

    def test_empty_response(self):
        client = _client(lambda request: httpx.Response(204))
        assert client._request("DELETE", "/files/x") == {}

    @pytest.mark.parametrize(
        "status,reason,exception",
        [
            (401, "authError", DriveAuthenticationError),
            (403, "insufficientFilePermissions", DrivePermissionError),
            (404, "notFound", DriveNotFoundError),
        ],
    )
    def test_client_errors_are_not_retried(self, status, reason, exception):
        calls = []

        def handler(request):
            calls.append(request)
            return _error(status, reason)

        client = _client(handler)
        with pytest.raises(exception):
            client._request("GET", "/files/x")
        assert len(calls) == 1

    def test_rate_limit_retried_with_retry_after(self, no_sleep):
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "7"}),
                httpx.Response(200, json={"ok": True}),
            ]
        )
        client = _client(lambda request: next(responses))

        assert client._request("GET", "/files") == {"ok": True}
        no_sleep.assert_called_once_with(7.0)

    def test_rate_limit_exhausts_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return _error(403, "userRateLimitExceeded")

        client = _client(handler, max_retries=2)
        with pytest.raises(DriveRateLimitError):
            client._request("GET", "/files")
        assert len(calls) == 3

    def test_server_error_retried(self):
        responses = iter([_error(503, message="backend"), httpx.Response(200, json={})])
        client = _client(lambda request: next(responses))
        assert client._request("GET", "/files") == {}

    def test_server_error_message(self):
        client = _client(lambda request: _error(500, message="backend"), max_retries=0)
        with pytest.raises(DriveAPIError, match="status 500: backend"):
            client._request("GET", "/files")

    def test_network_error_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused")
            return httpx.Response(200, json={"ok": True})

        client = _client(handler)
        assert client._request("GET", "/files") == {"ok": True}
        assert len(calls) == 2

    def test_network_error_exhausts_retries(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        client = _client(handler, max_retries=1)
        with pytest.raises(DriveNetworkError):
            client._request("GET", "/files")

    def test_html_response_is_authentication_error(self):
        client = _client(lambda request: httpx.Response(200, html="<html></html>"))
        with pytest.raises(DriveAuthenticationError):
            client._request("GET", "/files")

    def test_invalid_json(self):
        client = _client(
            lambda request: httpx.Response(
                200, content=b"{broken", headers={"Content-Type": "application/json"}
            )
        )
        with pytest.raises(DriveInvalidResponseError):
            client._request("GET", "/files")

    def test_retry_delay_uses_exponential_backoff(self):
        client = DriveClient(access_token="t", api_url=API_URL, retry_delay=1.0)
        for attempt in range(4):
            delay = client._calculate_retry_delay(attempt)
            assert 0.75 * 2**attempt <= delay <= 1.25 * 2**attempt


class TestFiles:
    """Tests for the file endpoints."""

    def test_list_files_params(self):
        seen = {}

        def handler(request):
            seen.update(request.url.params)
            seen["path"] = request.url.path
            return httpx.Response(200, json={"files": []})

        client = _client(handler)
        client.list_files(query="'R' in parents", page_size=50, page_token="tok")

        assert seen["path"] == "/v3/files"
        assert seen["q"] == "'R' in parents"
        assert seen["pageSize"] == "50"
        assert seen["pageToken"] == "tok"
        assert seen["fields"].startswith("nextPageToken,files(")

    def test_get_file(self):
        def handler(request):
            assert request.url.path == "/v3/files/abc"
            return httpx.Response(200, json={"id": "abc", "name": "docs"})

        assert _client(handler).get_file("abc")["name"] == "docs"

    def test_download_file(self, tmp_path):
        progress = []

        def handler(request):
            assert request.url.params["alt"] == "media"
            return httpx.Response(200, content=b"file content")

        target = tmp_path / "out.bin"
        result = _client(handler).download_file(
            "abc", target, progress_callback=lambda done, total: progress.append(done)
        )

        assert result == target
        assert target.read_bytes() == b"file content"
        assert progress[-1] == len(b"file content")

    def test_download_http_error(self, tmp_path):
        client = _client(lambda request: httpx.Response(404))
        with pytest.raises(DriveDownloadError):
            client.download_file("abc", tmp_path / "out.bin")

    def test_upload_file(self, tmp_path):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            seen["content_type"] = request.headers["Content-Type"]
            seen["body"] = request.content
            return httpx.Response(200, json={"id": "new", "name": "a.txt"})

        local = tmp_path / "a.txt"
        local.write_bytes(b"payload")

        result = _client(handler).upload_file(local, "R")

        assert result == {"id": "new", "name": "a.txt"}
        assert seen["params"]["uploadType"] == "multipart"
        assert seen["content_type"].startswith("multipart/related; boundary=")
        assert b"payload" in seen["body"]
        assert json.dumps({"name": "a.txt", "parents": ["R"]}).encode() in seen["body"]

    def test_upload_failure(self, tmp_path):
        local = tmp_path / "a.txt"
        local.write_bytes(b"payload")
        client = _client(lambda request: _error(400, message="bad"))
        with pytest.raises(DriveUploadError):
            client.upload_file(local, "R")

    def test_upload_missing_file(self, tmp_path):
        client = _client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(DriveUploadError):
            client.upload_file(tmp_path / "missing.txt", "R")
