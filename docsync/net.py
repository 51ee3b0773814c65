"""Network connectivity checks run before the first sync cycle."""

from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

import httpx

from .exceptions import StorageNetworkError

logger = logging.getLogger(__name__)

DEFAULT_PROBE_URLS: tuple[str, ...] = (
    "https://github.com",
    "https://www.google.com",
)


def check_connectivity(
    urls: Sequence[str] = DEFAULT_PROBE_URLS,
    timeout: float = 5.0,
    transport: httpx.BaseTransport | None = None,
) -> None:
    """Check that at least one of ``urls`` answers with status 200.

    Raises:
        StorageNetworkError: If no URL could be reached
    """
    last_error = "not yet connected"
    with httpx.Client(
        timeout=timeout, follow_redirects=True, transport=transport
    ) as client:
        for url in urls:
            try:
                response = client.get(url)
            except httpx.RequestError as e:
                last_error = str(e)
                continue
            if response.status_code == 200:
                return
            last_error = f"{url} answered {response.status_code}"
    raise StorageNetworkError(last_error)


def wait_for_connectivity(
    timeout: float = 600.0,
    interval: float = 30.0,
    urls: Sequence[str] = DEFAULT_PROBE_URLS,
    check: Callable[[Sequence[str]], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Block until the network is reachable.

    Args:
        timeout: Seconds to keep trying
        interval: Seconds between two checks
        urls: URLs probed by each check
        check: Check function (defaults to check_connectivity)
        sleep: Sleep function
        clock: Monotonic clock

    Raises:
        StorageNetworkError: If the network is still unreachable after timeout
    """
    check = check or check_connectivity
    deadline = clock() + timeout
    while True:
        try:
            check(urls)
            return
        except StorageNetworkError as e:
            if clock() + interval > deadline:
                raise StorageNetworkError(
                    f"No internet access after {timeout:g}s: {e}"
                ) from e
            logger.info(f"Internet check: {e}")
        sleep(interval)
