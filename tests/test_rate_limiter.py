"""
Tests for the dispatch rate limiter.
"""

import time

import pytest

from feedposts.services.rate_limiter import RateLimiter


class FakeClock:
    """Manual clock whose sleep() just moves time forward."""

    def __init__(self, now: float = 100.0):
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            RateLimiter(0)

    async def test_first_tick_after_one_interval(self):
        clock = FakeClock()
        limiter = RateLimiter(10, clock=clock, sleep=clock.sleep)

        await limiter.wait()

        assert clock.sleeps == [pytest.approx(0.1)]
        assert clock.now == pytest.approx(100.1)

    async def test_steady_pace(self):
        clock = FakeClock()
        limiter = RateLimiter(10, clock=clock, sleep=clock.sleep)

        for _ in range(5):
            await limiter.wait()

        assert clock.now == pytest.approx(100.5)
        assert limiter.get_status()["ticks_consumed"] == 5

    async def test_late_consumer_gets_one_tick_not_a_burst(self):
        clock = FakeClock()
        limiter = RateLimiter(10, clock=clock, sleep=clock.sleep)
        await limiter.wait()  # tick at 100.1

        # Idle for several intervals
        clock.now = 100.45
        await limiter.wait()
        assert len(clock.sleeps) == 1  # pending tick, no wait

        await limiter.wait()
        # Next tick is back on the grid at 100.5
        assert clock.sleeps[-1] == pytest.approx(0.05)
        assert clock.now == pytest.approx(100.5)

    async def test_real_clock_throttles(self):
        limiter = RateLimiter(50)
        start = time.monotonic()

        for _ in range(5):
            await limiter.wait()

        assert time.monotonic() - start >= 0.09
