"""Tests for retry logic."""

from __future__ import annotations

import httpx
import pytest

from newsmon.retry import _retry_delay, retry_async


def _status_error(code: int, headers: dict | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://example.com")
    response = httpx.Response(code, headers=headers, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


@pytest.mark.asyncio
async def test_retry_succeeds_on_first_try():
    """No retries needed when function succeeds."""
    call_count = 0

    async def fn():
        nonlocal call_count
        call_count += 1
        return "ok"

    assert await retry_async(fn) == "ok"
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_succeeds_after_transient_failure():
    """Retries on transient error and eventually succeeds."""
    call_count = 0

    async def fn():
        nonlocal call_count
        call_count += 1
        if call_count < 3:
            raise ConnectionError("transient")
        return "ok"

    assert await retry_async(fn, max_retries=3, base_delay=0.01) == "ok"
    assert call_count == 3


@pytest.mark.asyncio
async def test_retry_exhausts_retries():
    """Raises after max retries exhausted."""

    async def fn():
        raise TimeoutError("always fails")

    with pytest.raises(TimeoutError, match="always fails"):
        await retry_async(fn, max_retries=2, base_delay=0.01)


@pytest.mark.asyncio
async def test_retry_does_not_retry_non_transient():
    """Non-retryable exceptions are raised immediately."""
    call_count = 0

    async def fn():
        nonlocal call_count
        call_count += 1
        raise ValueError("bad input")

    with pytest.raises(ValueError, match="bad input"):
        await retry_async(fn, max_retries=3, base_delay=0.01)
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_zero_retries_single_attempt():
    call_count = 0

    async def fn():
        nonlocal call_count
        call_count += 1
        raise _status_error(503)

    with pytest.raises(httpx.HTTPStatusError):
        await retry_async(fn, max_retries=0)
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_on_server_error_status():
    call_count = 0

    async def fn():
        nonlocal call_count
        call_count += 1
        if call_count == 1:
            raise _status_error(502)
        return "ok"

    assert await retry_async(fn, max_retries=2, base_delay=0.01) == "ok"
    assert call_count == 2


def test_retry_delay_client_errors_not_retried():
    assert _retry_delay(_status_error(401), 0, 1.0, 60.0) is None
    assert _retry_delay(_status_error(404), 0, 1.0, 60.0) is None


def test_retry_delay_honours_retry_after():
    assert _retry_delay(_status_error(429, {"retry-after": "7"}), 0, 1.0, 60.0) == 7.0
    assert _retry_delay(_status_error(429, {"retry-after": "999"}), 0, 1.0, 60.0) == 60.0


def test_retry_delay_exponential_backoff():
    assert _retry_delay(ConnectionError(), 0, 1.0, 60.0) == 1.0
    assert _retry_delay(ConnectionError(), 3, 1.0, 60.0) == 8.0
    assert _retry_delay(ConnectionError(), 10, 1.0, 60.0) == 60.0


def test_retry_delay_sdk_errors_by_name():
    class RateLimitError(Exception):
        pass

    assert _retry_delay(RateLimitError(), 1, 1.0, 60.0) == 2.0
