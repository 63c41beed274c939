"""
Rate limiting for feed dispatch.

Throttles how fast feed identifiers are handed to the worker pool.
"""

import asyncio
import time
from typing import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)


class RateLimiter:
    """
    Fixed-interval ticker.

    Ticks fall on a regular grid starting one interval after creation. A
    caller waiting in ``wait()`` is released on the next tick. At most one
    tick is held for a late caller; ticks nobody waited for are dropped, so
    a slow consumer never gets a burst.
    """

    def __init__(
        self,
        rate_per_second: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        self.interval = 1.0 / rate_per_second
        self._clock = clock
        self._sleep = sleep
        self._next_tick = clock() + self.interval
        self._lock = asyncio.Lock()
        self._ticks = 0

    async def wait(self):
        """Block until the next tick is available."""
        async with self._lock:
            now = self._clock()
            delay = self._next_tick - now
            if delay > 0:
                logger.debug("Waiting for dispatch tick", wait_seconds=round(delay, 3))
                await self._sleep(delay)
                now = self._next_tick
            # Realign to the grid, skipping any ticks missed while idle
            missed = int((now - self._next_tick) // self.interval)
            self._next_tick += (missed + 1) * self.interval
            self._ticks += 1

    def get_status(self) -> dict:
        """Get current ticker status."""
        return {
            "interval_seconds": self.interval,
            "ticks_consumed": self._ticks,
            "next_tick_in": max(0.0, self._next_tick - self._clock()),
        }
