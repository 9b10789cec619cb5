"""Tests for retry logic."""

from __future__ import annotations

import httpx
import pytest

from spacebio.retry import retry_async


def _status_error(code: int, retry_after: str | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "http://localhost:9999/chat/completions")
    headers = {"retry-after": retry_after} if retry_after else {}
    response = httpx.Response(code, request=request, headers=headers)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


@pytest.mark.asyncio
async def test_retry_succeeds_on_first_try():
    """No retries needed when function succeeds."""
    call_count = 0

    async def fn():
        nonlocal call_count
        call_count += 1
        return "ok"

    result = await retry_async(fn)
    assert result == "ok"
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

    result = await retry_async(fn, max_retries=3, base_delay=0.01)
    assert result == "ok"
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
async def test_retry_on_rate_limit_status():
    """HTTP 429 is retried, with Retry-After capped by max_delay."""
    calls = []

    async def fn():
        calls.append(1)
        if len(calls) == 1:
            raise _status_error(429, retry_after="30")
        return "ok"

    result = await retry_async(fn, max_retries=2, base_delay=0.01, max_delay=0.01)
    assert result == "ok"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_client_error_status_not_retried():
    calls = []

    async def fn():
        calls.append(1)
        raise _status_error(401)

    with pytest.raises(httpx.HTTPStatusError):
        await retry_async(fn, max_retries=3, base_delay=0.01)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_sdk_errors_matched_by_name():
    class RateLimitError(Exception):
        pass

    calls = []

    async def fn():
        calls.append(1)
        if len(calls) < 2:
            raise RateLimitError("slow down")
        return "ok"

    assert await retry_async(fn, max_retries=2, base_delay=0.01) == "ok"
    assert len(calls) == 2
