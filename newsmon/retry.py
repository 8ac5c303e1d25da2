"""Exponential backoff for transient failures of feed and LLM calls."""

from __future__ import annotations

import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_HTTP_CODES = {429, 500, 502, 503, 504}
RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    ConnectionError,
    TimeoutError,
)
# anthropic SDK errors, matched by name so the SDK stays an optional import here
RETRYABLE_SDK_ERRORS = {
    "RateLimitError", "OverloadedError", "InternalServerError", "APIConnectionError",
}


def _backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2**attempt), max_delay)


def _retry_delay(exc: Exception, attempt: int, base_delay: float, max_delay: float) -> float | None:
    """Seconds to wait before retrying exc, or None if it should not be retried."""
    if isinstance(exc, RETRYABLE_EXCEPTIONS):
        return _backoff(attempt, base_delay, max_delay)
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code not in RETRYABLE_HTTP_CODES:
            return None
        retry_after = exc.response.headers.get("retry-after")
        if retry_after:
            try:
                return min(float(retry_after), max_delay)
            except ValueError:
                pass
        return _backoff(attempt, base_delay, max_delay)
    if type(exc).__name__ in RETRYABLE_SDK_ERRORS:
        return _backoff(attempt, base_delay, max_delay)
    return None


async def retry_async(
    fn,
    *args,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    **kwargs,
):
    """Call an async function, retrying timeouts, connection errors, 429 and 5xx.

    Non-retryable errors propagate immediately; after max_retries the last
    error is re-raised.
    """
    for attempt in range(max_retries + 1):
        try:
            return await fn(*args, **kwargs)
        except Exception as exc:
            delay = _retry_delay(exc, attempt, base_delay, max_delay)
            if delay is None or attempt == max_retries:
                raise
            logger.warning(
                "Retry %d/%d after %s: %s (waiting %.1fs)",
                attempt + 1, max_retries, type(exc).__name__, exc, delay,
            )
            await asyncio.sleep(delay)
