"""Tests for the sliding-window rate limiter."""

import asyncio
import time

import pytest

from book_aggregator.ingestion.rate_limiter import RateLimitConfig, RateLimiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRateLimitConfig:
    """Construction-time validation."""

    def test_zero_limit_rejected(self):
        with pytest.raises(ValueError):
            RateLimitConfig(name="x", limit=0, interval_seconds=1.0)

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValueError):
            RateLimitConfig(name="x", limit=1, interval_seconds=0)
        with pytest.raises(ValueError):
            RateLimitConfig(name="x", limit=1, interval_seconds=-2)

    def test_per_interval(self):
        config = RateLimitConfig.per_interval(2.0, name="coinbase")
        assert config.limit == 1
        assert config.interval_seconds == 2.0


class TestTryAcquire:
    """Non-blocking admission."""

    def test_one_per_second(self):
        """Second request in the same second is rejected, admitted after the window."""
        clock = FakeClock()
        limiter = RateLimiter(RateLimitConfig.per_interval(1.0), clock=clock)

        assert limiter.try_acquire() is True
        clock.advance(0.5)
        assert limiter.try_acquire() is False

        clock.advance(0.5)
        assert limiter.try_acquire() is True

    def test_never_exceeds_limit_in_window(self):
        clock = FakeClock()
        limiter = RateLimiter(RateLimitConfig(name="x", limit=3, interval_seconds=1.0), clock=clock)

        granted = [limiter.try_acquire() for _ in range(5)]
        assert granted == [True, True, True, False, False]

    def test_window_slides(self):
        """Permits free up one by one as their grants age out."""
        clock = FakeClock()
        limiter = RateLimiter(RateLimitConfig(name="x", limit=2, interval_seconds=1.0), clock=clock)

        assert limiter.try_acquire()
        clock.advance(0.6)
        assert limiter.try_acquire()
        assert not limiter.try_acquire()

        clock.advance(0.4)  # first grant leaves the window
        assert limiter.available_permits == 1
        assert limiter.try_acquire()
        assert not limiter.try_acquire()

    def test_time_until_available(self):
        clock = FakeClock()
        limiter = RateLimiter(RateLimitConfig.per_interval(2.0), clock=clock)

        assert limiter.time_until_available() == 0.0
        limiter.try_acquire()
        clock.advance(0.5)
        assert limiter.time_until_available() == pytest.approx(1.5)

    def test_stats(self):
        clock = FakeClock()
        limiter = RateLimiter(RateLimitConfig(name="gemini", limit=2, interval_seconds=1.0), clock=clock)
        limiter.try_acquire()

        stats = limiter.stats
        assert stats["name"] == "gemini"
        assert stats["total_acquired"] == 1
        assert stats["available_permits"] == 1


class TestAcquire:
    """Suspending admission."""

    @pytest.mark.asyncio
    async def test_first_acquire_is_immediate(self):
        limiter = RateLimiter(RateLimitConfig.per_interval(1.0))
        waited = await limiter.acquire()
        assert waited == 0.0

    @pytest.mark.asyncio
    async def test_second_acquire_waits_for_window(self):
        limiter = RateLimiter(RateLimitConfig.per_interval(0.2))

        await limiter.acquire()
        start = time.monotonic()
        await limiter.acquire()
        elapsed = time.monotonic() - start

        assert elapsed >= 0.15
        assert elapsed < 1.0
        assert limiter.stats["total_waited"] == 1

    @pytest.mark.asyncio
    async def test_waiters_admitted_fifo(self):
        limiter = RateLimiter(RateLimitConfig.per_interval(0.05))
        order: list[int] = []

        async def worker(i: int) -> None:
            await limiter.acquire()
            order.append(i)

        tasks = []
        for i in range(4):
            tasks.append(asyncio.create_task(worker(i)))
            await asyncio.sleep(0)  # ensure arrival order

        await asyncio.gather(*tasks)
        assert order == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_try_acquire_does_not_jump_queue(self):
        limiter = RateLimiter(RateLimitConfig.per_interval(0.2))
        assert limiter.try_acquire()

        waiter = asyncio.create_task(limiter.acquire())
        await asyncio.sleep(0.01)  # waiter now holds the queue

        assert limiter.try_acquire() is False
        await waiter

    @pytest.mark.asyncio
    async def test_cancelled_wait_consumes_no_permit(self):
        limiter = RateLimiter(RateLimitConfig.per_interval(0.3))
        await limiter.acquire()

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(limiter.acquire(), timeout=0.05)

        assert limiter.stats["total_acquired"] == 1
        await asyncio.sleep(0.3)
        assert limiter.try_acquire() is True

    @pytest.mark.asyncio
    async def test_independent_limiters(self):
        """Throttling one exchange never blocks another."""
        slow = RateLimiter(RateLimitConfig(name="slow", limit=1, interval_seconds=10.0))
        fast = RateLimiter(RateLimitConfig(name="fast", limit=1, interval_seconds=10.0))

        await slow.acquire()
        blocked = asyncio.create_task(slow.acquire())

        waited = await asyncio.wait_for(fast.acquire(), timeout=0.5)
        assert waited == 0.0

        blocked.cancel()
        with pytest.raises(asyncio.CancelledError):
            await blocked
