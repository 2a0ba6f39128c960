"""API client for the Google Drive v3 REST API."""

from __future__ import annotations

import json
import logging
import mimetypes
import random
import time
import uuid
from pathlib import Path
from typing import Any, Callable

import httpx

from .config import config
from .exceptions import (
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
from .models import ITEM_FIELDS
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_PAGE_SIZE, DEFAULT_RETRY_DELAY

logger = logging.getLogger(__name__)

LIST_FIELDS = f"nextPageToken,files({ITEM_FIELDS})"


class DriveClient:
    """Client for interacting with the Drive API."""

    def __init__(
        self,
        access_token: str | None = None,
        api_url: str | None = None,
        upload_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float | None = None,
    ):
        """Initialize Drive API client.

        Args:
            access_token: OAuth access token (uses config if not provided)
            api_url: Optional API URL (uses config if not provided)
            upload_url: Optional upload API URL (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (uses config if not provided)

        Raises:
            DriveConfigError: If no access token is available
        """
        self.access_token = access_token or config.access_token
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.upload_url = (upload_url or config.upload_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout if timeout is not None else config.timeout

        if not self.access_token:
            raise DriveConfigError(
                "Access token not configured. "
                "Please set the PYDRIVEMAP_ACCESS_TOKEN environment variable."
            )

        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    # =========================
    # Retry handling
    # =========================

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        # Network errors and rate limits are transient
        if isinstance(exception, (DriveNetworkError, DriveRateLimitError)):
            return True

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Jitter of +/- 25% avoids retrying in lockstep
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[DriveAPIError, bool]:
        """Map an HTTP error to an exception and decide whether to retry.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)

        Raises:
            DriveAuthenticationError: On 401
            DrivePermissionError: On 403 (other than rate limiting)
            DriveNotFoundError: On 404
        """
        status_code = e.response.status_code
        reason = _error_reason(e.response)

        if status_code == 401:
            raise DriveAuthenticationError(
                "Invalid or expired access token"
            ) from e
        elif status_code == 403 and reason not in (
            "rateLimitExceeded",
            "userRateLimitExceeded",
        ):
            raise DrivePermissionError(
                "Access forbidden - check your permissions"
            ) from e
        elif status_code == 404:
            raise DriveNotFoundError("Resource not found") from e
        elif status_code in (403, 429):
            error: DriveAPIError = DriveRateLimitError(
                "Rate limit exceeded - please try again later"
            )
            return (error, attempt < self.max_retries)
        else:
            error_msg = f"API request failed with status {status_code}"
            message = _error_message(e.response)
            if message:
                error_msg = f"{error_msg}: {message}"

            error = DriveAPIError(error_msg)
            should_retry = 500 <= status_code < 600 and attempt < self.max_retries
            return (error, should_retry)

    def _retry_delay_for(
        self, error: Exception, response: httpx.Response, attempt: int
    ) -> float:
        # Rate limit responses may say how long to wait
        if isinstance(error, DriveRateLimitError):
            retry_after = response.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                return float(retry_after)
        return self._calculate_retry_delay(attempt)

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request with retry logic and return the successful response.

        Raises:
            DriveAPIError: If the request fails after all retries
            DriveNetworkError: If the network keeps failing
        """
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return response

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    delay = self._retry_delay_for(error, e.response, attempt)
                    logger.debug(
                        f"{method} {url} failed ({error}), retrying in {delay:.1f}s"
                    )
                    time.sleep(delay)
                    continue
                raise error from e
            except httpx.RequestError as e:
                network_error = DriveNetworkError(f"Network error: {e}")
                last_exception = network_error
                if self._should_retry(network_error, attempt):
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(
                        f"{method} {url} failed ({e}), retrying in {delay:.1f}s"
                    )
                    time.sleep(delay)
                    continue
                raise network_error from e

        if last_exception:
            raise last_exception
        raise DriveAPIError("Request failed after all retry attempts")

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            DriveAPIError: If the request fails after all retries
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        return _parse_json(self._send(method, url, **kwargs))

    # =========================
    # Files
    # =========================

    def list_files(
        self,
        query: str | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_token: str | None = None,
        fields: str = LIST_FIELDS,
        order_by: str | None = None,
    ) -> Any:
        """List files matching a query (one page).

        Args:
            query: Drive search query, e.g. ``"'ID' in parents and trashed = false"``
            page_size: Number of items per page (max 1000)
            page_token: Token of the page to fetch (None for the first page)
            fields: Partial response selector
            order_by: Sort order, e.g. ``"name"``

        Returns:
            Response with ``files`` and, unless this is the last page,
            ``nextPageToken``
        """
        params: dict[str, Any] = {"pageSize": page_size, "fields": fields}
        if query:
            params["q"] = query
        if page_token:
            params["pageToken"] = page_token
        if order_by:
            params["orderBy"] = order_by
        return self._request("GET", "/files", params=params)

    def get_file(self, file_id: str, fields: str = ITEM_FIELDS) -> Any:
        """Get the metadata of a single file or folder.

        Args:
            file_id: Remote ID (the alias ``root`` is accepted)
            fields: Partial response selector

        Returns:
            File metadata object
        """
        return self._request("GET", f"/files/{file_id}", params={"fields": fields})

    def download_file(
        self,
        file_id: str,
        output_path: Path,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> Path:
        """Download the content of a file.

        Args:
            file_id: Remote ID of the file
            output_path: Where to write the content
            progress_callback: Optional callback function(bytes_downloaded, total_bytes)

        Returns:
            Path where the file was saved

        Raises:
            DriveDownloadError: If the download fails
            DriveNetworkError: On network errors
        """
        url = f"{self.api_url}/files/{file_id}"
        client = self._get_client()

        try:
            with client.stream("GET", url, params={"alt": "media"}) as response:
                response.raise_for_status()

                total_size = int(response.headers.get("Content-Length", 0))
                bytes_downloaded = 0

                with open(output_path, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=8192):
                        if chunk:
                            f.write(chunk)
                            bytes_downloaded += len(chunk)
                            if progress_callback:
                                progress_callback(bytes_downloaded, total_size)

                return output_path

        except httpx.HTTPStatusError as e:
            raise DriveDownloadError(f"Download failed: {e}") from e
        except httpx.RequestError as e:
            raise DriveNetworkError(f"Network error during download: {e}") from e
        except OSError as e:
            raise DriveDownloadError(f"Failed to write file: {e}") from e

    def upload_file(
        self,
        file_path: Path,
        parent_id: str,
        name: str | None = None,
        mime_type: str | None = None,
    ) -> Any:
        """Upload a local file into a remote folder (multipart upload).

        Args:
            file_path: Local path to the file
            parent_id: Remote ID of the target folder
            name: Remote name (defaults to the local file name)
            mime_type: Content type (guessed from the file name if not provided)

        Returns:
            Metadata of the created file

        Raises:
            DriveUploadError: If the file cannot be read or the upload fails
        """
        file_path = Path(file_path)
        if mime_type is None:
            mime_type, _ = mimetypes.guess_type(str(file_path))
        if not mime_type:
            mime_type = "application/octet-stream"

        try:
            content = file_path.read_bytes()
        except OSError as e:
            raise DriveUploadError(f"Failed to read {file_path}: {e}") from e

        metadata = {"name": name or file_path.name, "parents": [parent_id]}
        boundary = uuid.uuid4().hex
        body = (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{json.dumps(metadata)}\r\n"
            f"--{boundary}\r\n"
            f"Content-Type: {mime_type}\r\n\r\n"
        ).encode() + content + f"\r\n--{boundary}--\r\n".encode()

        try:
            response = self._send(
                "POST",
                f"{self.upload_url}/files",
                params={"uploadType": "multipart", "fields": ITEM_FIELDS},
                content=body,
                headers={"Content-Type": f"multipart/related; boundary={boundary}"},
            )
        except DriveAPIError as e:
            raise DriveUploadError(f"Upload of {file_path} failed: {e}") from e
        return _parse_json(response)


def _parse_json(response: httpx.Response) -> Any:
    """Decode a JSON response body.

    Raises:
        DriveAuthenticationError: If an HTML page came back instead of JSON
        DriveInvalidResponseError: If the body is not JSON
    """
    content_type = response.headers.get("Content-Type", "")
    if response.content and "application/json" not in content_type:
        # Login pages are served as HTML when the token is rejected
        if "text/html" in content_type:
            raise DriveAuthenticationError(
                "Invalid access token - server returned HTML instead of JSON"
            )
        raise DriveInvalidResponseError(f"Unexpected response type: {content_type}")

    if response.content:
        try:
            return response.json()
        except ValueError as e:
            raise DriveInvalidResponseError("Invalid JSON response from server") from e
    return {}


def _error_body(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    error = data.get("error") if isinstance(data, dict) else None
    return error if isinstance(error, dict) else {}


def _error_reason(response: httpx.Response) -> str | None:
    """First ``error.errors[].reason`` of a Drive error response."""
    errors = _error_body(response).get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        return errors[0].get("reason")
    return None


def _error_message(response: httpx.Response) -> str | None:
    return _error_body(response).get("message")
