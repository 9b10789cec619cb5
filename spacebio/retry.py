"""Exponential backoff for language-model calls.

Page and CSV fetches are never retried; only the LLM providers wrap their
requests with ``retry_async``.
"""

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
# anthropic SDK errors, matched by name so this module does not import the SDK
RETRYABLE_SDK_ERRORS = {
    "RateLimitError", "OverloadedError",
    "InternalServerError", "APIConnectionError",
}


def _backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2**attempt), max_delay)


def _retry_after(response: httpx.Response, fallback: float, max_delay: float) -> float:
    header = response.headers.get("retry-after")
    if not header:
        return fallback
    try:
        return min(float(header), max_delay)
    except ValueError:
        return fallback


async def retry_async(
    fn,
    *args,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    **kwargs,
):
    """Call an async function, retrying transient failures with backoff.

    Retries on:
    - httpx timeout/connection errors
    - HTTP 429 and 5xx (honouring Retry-After)
    - anthropic rate limit / overloaded errors
    """
    last_exc: BaseException | None = None
    for attempt in range(max_retries + 1):
        try:
            return await fn(*args, **kwargs)
        except RETRYABLE_EXCEPTIONS as exc:
            last_exc = exc
            delay = _backoff(attempt, base_delay, max_delay)
            reason = type(exc).__name__
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code not in RETRYABLE_HTTP_CODES:
                raise
            last_exc = exc
            delay = _retry_after(
                exc.response, _backoff(attempt, base_delay, max_delay), max_delay,
            )
            reason = f"HTTP {exc.response.status_code}"
        except Exception as exc:
            if type(exc).__name__ not in RETRYABLE_SDK_ERRORS:
                raise
            last_exc = exc
            delay = _backoff(attempt, base_delay, max_delay)
            reason = type(exc).__name__

        if attempt == max_retries:
            break
        logger.warning(
            "Retry %d/%d after %s (waiting %.1fs)",
            attempt + 1, max_retries, reason, delay,
        )
        await asyncio.sleep(delay)

    raise last_exc  # type: ignore[misc]
