"""Concurrency cap and request cadence for outgoing crawl work."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, max_delay: float = 60.0, base_delay: float = 1.0) -> float:
    """Return ``min(base_delay * 2**attempt, max_delay)`` in seconds."""
    return min(base_delay * (2 ** attempt), max_delay)


class RateLimiter:
    """Admit at most *max_concurrency* units at once, started at most
    *max_requests_per_second* times per second.

    One instance is shared by every caller of a crawler; the cadence is
    global, not per target host. Waiting units are released in submission
    order.
    """

    def __init__(self, max_requests_per_second: float = 5.0, max_concurrency: int = 3) -> None:
        if max_requests_per_second <= 0:
            raise ValueError("max_requests_per_second must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._min_interval = 1.0 / max_requests_per_second
        self._max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._cadence_lock = asyncio.Lock()
        self._last_start: float | None = None

    @property
    def min_interval(self) -> float:
        return self._min_interval

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    async def execute(self, unit: Callable[[], Awaitable[T]]) -> T:
        """Run *unit* once a concurrency slot and a cadence slot are free.

        Exceptions raised by *unit* propagate unchanged; the slot is
        released either way.
        """
        async with self._semaphore:
            await self._wait_for_cadence()
            return await unit()

    async def _wait_for_cadence(self) -> None:
        async with self._cadence_lock:
            if self._last_start is not None:
                elapsed = time.monotonic() - self._last_start
                if elapsed < self._min_interval:
                    await asyncio.sleep(self._min_interval - elapsed)
            self._last_start = time.monotonic()

    async def handle_backoff(
        self,
        attempt: int,
        max_delay: float = 60.0,
        base_delay: float = 1.0,
    ) -> float:
        """Sleep an exponential backoff after a rate-limited (HTTP 429) response."""
        delay = backoff_delay(attempt, max_delay, base_delay)
        logger.debug("rate limit backoff", extra={"attempt": attempt, "delay": delay})
        await asyncio.sleep(delay)
        return delay
