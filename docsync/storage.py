"""HTTP client for the object store holding uploaded files."""

from __future__ import annotations

import logging
import random
import time
from typing import Any
from urllib.parse import quote

import httpx

from .exceptions import (
    StorageAuthenticationError,
    StorageError,
    StorageNetworkError,
    StorageNotFoundError,
)
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY

logger = logging.getLogger(__name__)


class StorageClient:
    """Client storing opaque blobs under names in a bucket.

    Objects live at ``{url}/{bucket}/{name}``; listing a bucket returns
    ``{"objects": [name, ...]}``.

    Examples:
        >>> client = StorageClient("https://store.example", "docs", api_key="...")
        >>> client.upload("scans/a.pdf", b"...")
        >>> client.download("scans/a.pdf")
        b'...'
    """

    def __init__(
        self,
        url: str,
        bucket_name: str,
        api_key: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the storage client.

        Args:
            url: Base URL of the object store
            bucket_name: Bucket to read and write
            api_key: Optional bearer token
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 60.0)
            transport: Optional httpx transport (used by tests)
        """
        self.url = url.rstrip("/")
        self.bucket_name = bucket_name
        self.api_key = api_key
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            headers = {}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.Client(
                headers=headers,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> StorageClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _object_url(self, name: str) -> str:
        return f"{self.url}/{quote(self.bucket_name)}/{quote(name.lstrip('/'))}"

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff with +/- 25% jitter."""
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _map_status_error(self, e: httpx.HTTPStatusError, target: str) -> StorageError:
        status_code = e.response.status_code
        if status_code in (401, 403):
            return StorageAuthenticationError(
                f"Access to {target} denied (status {status_code})"
            )
        if status_code == 404:
            return StorageNotFoundError(f"{target} not found")
        return StorageError(f"Request for {target} failed with status {status_code}")

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Make a request with retry logic.

        Network errors, 429 and 5xx responses are retried with exponential
        backoff; a numeric ``Retry-After`` header overrides the delay.

        Raises:
            StorageError: If the request fails after all retries
        """
        client = self._get_client()
        last_exception: StorageError | None = None

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                error = self._map_status_error(e, url)
                last_exception = error
                status_code = e.response.status_code
                retryable = status_code == 429 or 500 <= status_code < 600
                if retryable and attempt < self.max_retries:
                    retry_after = e.response.headers.get("Retry-After")
                    if retry_after and retry_after.isdigit():
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    logger.debug(
                        f"{method} {url} got {status_code}, retrying in {delay:.1f}s"
                    )
                    time.sleep(delay)
                    continue
                raise error from e
            except httpx.RequestError as e:
                error = StorageNetworkError(f"Network error: {e}")
                last_exception = error
                if attempt < self.max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"{method} {url} failed ({e}), retrying in {delay:.1f}s")
                    time.sleep(delay)
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise StorageError("Request failed after all retry attempts")

    # =========================
    # Object operations
    # =========================

    def upload(self, name: str, data: bytes) -> None:
        """Store ``data`` under ``name``, replacing any previous object."""
        self._request(
            "PUT",
            self._object_url(name),
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        logger.debug(f"Uploaded {name} ({len(data)} bytes)")

    def download(self, name: str) -> bytes:
        """Fetch the object stored under ``name``.

        Raises:
            StorageNotFoundError: If there is no such object
        """
        response = self._request("GET", self._object_url(name))
        return response.content

    def list(self, prefix: str = "") -> list[str]:
        """List object names in the bucket, optionally under a prefix."""
        params = {"prefix": prefix} if prefix else None
        response = self._request(
            "GET", f"{self.url}/{quote(self.bucket_name)}", params=params
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise StorageError("Invalid JSON in bucket listing") from e
        objects = payload.get("objects") if isinstance(payload, dict) else None
        if not isinstance(objects, list):
            raise StorageError("Bucket listing has no objects list")
        return [str(name) for name in objects]
