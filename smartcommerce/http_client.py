"""Shared outbound HTTP client.

Outbound calls (currently the SMS gateway) reuse one pooled
``httpx.AsyncClient`` instead of opening a connection per message:

    from smartcommerce.http_client import get_async_client, request_with_retry

    client = await get_async_client()
    response = await request_with_retry(client, "POST", url, json=payload)

Call ``close_clients()`` on shutdown.
"""

import asyncio
import os
import random
import threading
from typing import Optional

import httpx

from smartcommerce.logging_config import get_logger

logger = get_logger(__name__)


DEFAULT_MAX_CONNECTIONS = int(os.environ.get("HTTP_MAX_CONNECTIONS", "20"))
DEFAULT_MAX_KEEPALIVE = int(os.environ.get("HTTP_MAX_KEEPALIVE", "5"))
DEFAULT_CONNECT_TIMEOUT = float(os.environ.get("HTTP_CONNECT_TIMEOUT", "5.0"))
DEFAULT_READ_TIMEOUT = float(os.environ.get("HTTP_READ_TIMEOUT", "10.0"))

_async_client: Optional[httpx.AsyncClient] = None
# asyncio.Lock needs a running loop, so it is created on first use
_async_lock: Optional[asyncio.Lock] = None
_async_lock_init = threading.Lock()


def _get_async_lock() -> asyncio.Lock:
    global _async_lock
    if _async_lock is not None:
        return _async_lock

    with _async_lock_init:
        if _async_lock is None:
            _async_lock = asyncio.Lock()
    return _async_lock


async def get_async_client() -> httpx.AsyncClient:
    """Get the shared async HTTP client, creating it on first use."""
    global _async_client
    if _async_client is not None and not _async_client.is_closed:
        return _async_client

    async with _get_async_lock():
        if _async_client is not None and not _async_client.is_closed:
            return _async_client

        _async_client = httpx.AsyncClient(
            timeout=httpx.Timeout(DEFAULT_READ_TIMEOUT, connect=DEFAULT_CONNECT_TIMEOUT),
            limits=httpx.Limits(
                max_connections=DEFAULT_MAX_CONNECTIONS,
                max_keepalive_connections=DEFAULT_MAX_KEEPALIVE,
                keepalive_expiry=30.0,
            ),
            follow_redirects=True,
        )
        logger.debug(f"Initialized shared async HTTP client (max_connections={DEFAULT_MAX_CONNECTIONS})")
        return _async_client


async def close_clients() -> None:
    """Close the shared client during application shutdown."""
    global _async_client
    if _async_client is not None and not _async_client.is_closed:
        await _async_client.aclose()
        logger.info("Closed shared async HTTP client")
    _async_client = None


# =============================================================================
# Retry for transient errors
# =============================================================================

RETRYABLE_STATUS_CODES = frozenset([429, 500, 502, 503, 504])

DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY = 0.5
DEFAULT_RETRY_BACKOFF = 2.0
DEFAULT_RETRY_MAX_DELAY = 5.0


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    retry_on: frozenset = RETRYABLE_STATUS_CODES,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    retry_backoff: float = DEFAULT_RETRY_BACKOFF,
    retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
    **kwargs,
) -> httpx.Response:
    """Send a request, retrying rate limits, 5xx and network errors.

    Waits with exponential backoff plus jitter, honouring ``Retry-After``.

    Raises:
        httpx.HTTPStatusError: Non-retryable status, or retries exhausted
        httpx.RequestError: Network failure on the last attempt
    """
    delay = retry_delay

    for attempt in range(max_retries + 1):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            if attempt >= max_retries:
                raise
            logger.warning(
                f"Request {method} {url} failed with {type(e).__name__}: {e}, "
                f"retrying in {delay:.1f}s (attempt {attempt + 1}/{max_retries + 1})"
            )
            await asyncio.sleep(delay)
            delay = min(delay * retry_backoff, retry_max_delay)
            continue

        if response.status_code < 400:
            return response
        if response.status_code not in retry_on or attempt >= max_retries:
            response.raise_for_status()

        retry_after = response.headers.get("Retry-After")
        try:
            wait_time = float(retry_after) if retry_after else delay * (1 + random.uniform(0.1, 0.25))
        except ValueError:
            wait_time = delay
        wait_time = min(wait_time, retry_max_delay)

        logger.warning(
            f"Request {method} {url} returned {response.status_code}, "
            f"retrying in {wait_time:.1f}s (attempt {attempt + 1}/{max_retries + 1})"
        )
        await asyncio.sleep(wait_time)
        delay = min(delay * retry_backoff, retry_max_delay)

    raise httpx.RequestError(f"All {max_retries + 1} attempts failed for {method} {url}")
