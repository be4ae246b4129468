"""Outbound vendor back-off and inbound per-user request limits."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Tuple

logger = logging.getLogger(__name__)


class RetryAfterGate:
    """Suspend dispatch to a vendor until its advertised retry-after elapses.

    Shared by every worker of a batch: once any worker sees a 429, all of them
    wait on the same deadline before talking to that vendor again.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._resume_at: Dict[str, float] = {}

    def suspend(self, vendor: str, seconds: float) -> None:
        deadline = self._clock() + max(seconds, 0.0)
        if deadline > self._resume_at.get(vendor, 0.0):
            self._resume_at[vendor] = deadline
            logger.warning(
                "Suspending dispatch after rate limit",
                extra={"vendor": vendor, "retry_after": seconds},
            )

    def remaining(self, vendor: str) -> float:
        return max(self._resume_at.get(vendor, 0.0) - self._clock(), 0.0)

    async def wait(self, vendor: str) -> None:
        delay = self.remaining(vendor)
        while delay > 0:
            await self._sleep(delay)
            delay = self.remaining(vendor)


@dataclass(frozen=True)
class RateLimitRule:
    requests: int
    window_seconds: float


RATE_LIMITS: Dict[str, RateLimitRule] = {
    "api_key_operations": RateLimitRule(requests=10, window_seconds=60),
    "api_calls": RateLimitRule(requests=100, window_seconds=60),
    "auth_attempts": RateLimitRule(requests=5, window_seconds=300),
}


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_in_seconds: float


class FixedWindowRateLimiter:
    """Process-local fixed-window counters keyed by (limit type, identifier)."""

    def __init__(
        self,
        rules: Dict[str, RateLimitRule] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rules = dict(rules or RATE_LIMITS)
        self._clock = clock
        self._windows: Dict[Tuple[str, str], Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def hit(self, limit_type: str, identifier: str) -> RateLimitDecision:
        """Count one request and report whether it is within the limit."""
        rule = self._rules.get(limit_type)
        if rule is None:
            raise ValueError(f"Invalid limit type: {limit_type}")

        now = self._clock()
        key = (limit_type, identifier)
        with self._lock:
            count, reset_at = self._windows.get(key, (0, now + rule.window_seconds))
            if now >= reset_at:
                count, reset_at = 0, now + rule.window_seconds
            count += 1
            self._windows[key] = (count, reset_at)

        return RateLimitDecision(
            allowed=count <= rule.requests,
            limit=rule.requests,
            remaining=max(rule.requests - count, 0),
            reset_in_seconds=max(reset_at - now, 0.0),
        )


__all__ = [
    "FixedWindowRateLimiter",
    "RATE_LIMITS",
    "RateLimitDecision",
    "RateLimitRule",
    "RetryAfterGate",
]
