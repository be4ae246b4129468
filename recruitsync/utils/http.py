"""HTTP utilities providing retry/backoff semantics and Retry-After parsing."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable

import httpx


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 1.0) -> None:
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds


async def request_with_retry(
    func: Callable[..., Awaitable[httpx.Response]],
    *args,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    """Retry an idempotent request on transport errors and 5xx answers.

    Any other response, including 429 and 4xx, is returned to the caller
    untouched so that rate-limit policy stays with the caller.
    """
    config = retry_config or RetryConfig()
    attempt = 0
    last_exception: Exception | None = None
    response: httpx.Response | None = None

    while attempt < config.attempts:
        try:
            response = await func(*args, **kwargs)
        except httpx.TransportError as exc:
            last_exception = exc
            response = None
        else:
            if response.status_code < 500:
                return response
            last_exception = None
        attempt += 1
        if attempt >= config.attempts:
            break
        await asyncio.sleep(config.backoff_seconds * attempt)

    if response is not None:
        return response
    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Request failed without raising an exception")


def parse_retry_after(value: str | None, *, default: float) -> float:
    """Interpret a Retry-After header given as seconds or an HTTP date."""
    if not value:
        return default
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return default
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    return max(seconds, 0.0)


def safe_json(response: httpx.Response) -> object:
    """Parse a JSON body, falling back to the raw text for non-JSON answers."""
    try:
        return response.json()
    except ValueError:
        return response.text or {}


__all__ = ["RetryConfig", "parse_retry_after", "request_with_retry", "safe_json"]
