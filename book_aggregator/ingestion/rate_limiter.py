"""
Sliding-window rate limiter for exchange snapshot requests.

Each exchange gets its own limiter so one exchange being throttled never
delays another's fetch. Public order-book endpoints publish limits as
"N requests per interval", which maps directly onto a sliding window of
grant timestamps.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

from book_aggregator.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limit configuration for one exchange."""

    name: str
    limit: int  # Max grants per window
    interval_seconds: float  # Window length

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError(f"Rate limit for {self.name!r} must be positive, got {self.limit}")
        if self.interval_seconds <= 0:
            raise ValueError(
                f"Rate limit interval for {self.name!r} must be positive, got {self.interval_seconds}"
            )

    @classmethod
    def per_interval(cls, interval_seconds: float, name: str = "default") -> "RateLimitConfig":
        """One request every `interval_seconds`."""
        return cls(name=name, limit=1, interval_seconds=interval_seconds)


class RateLimiter:
    """
    Sliding-window rate limiter.

    At most `limit` permits are granted in any window of `interval_seconds`.
    Waiters are admitted in arrival order: they queue on a single
    asyncio.Lock, which wakes waiters FIFO.

    Usage:
        limiter = RateLimiter(RateLimitConfig(name="coinbase", limit=3, interval_seconds=1))

        # Non-blocking check
        if limiter.try_acquire():
            await make_request()

        # Suspend until permitted
        await limiter.acquire()
        await make_request()
    """

    def __init__(
        self,
        config: RateLimitConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._clock = clock
        self._grants: deque[float] = deque()
        self._lock = asyncio.Lock()

        # Metrics
        self._total_acquired = 0
        self._total_waited = 0
        self._total_wait_time = 0.0

    @property
    def name(self) -> str:
        return self.config.name

    def _evict(self, now: float) -> None:
        """Drop grants that have left the window."""
        window_start = now - self.config.interval_seconds
        while self._grants and self._grants[0] <= window_start:
            self._grants.popleft()

    def _grant(self, now: float) -> None:
        self._grants.append(now)
        self._total_acquired += 1

    @property
    def available_permits(self) -> int:
        """Permits that could be granted right now."""
        self._evict(self._clock())
        return self.config.limit - len(self._grants)

    def time_until_available(self) -> float:
        """Seconds until the next permit frees up."""
        now = self._clock()
        self._evict(now)
        if len(self._grants) < self.config.limit:
            return 0.0
        return self._grants[0] + self.config.interval_seconds - now

    def try_acquire(self) -> bool:
        """
        Try to take a permit without waiting.

        Returns False while any coroutine is queued in acquire(), so a
        non-blocking caller never jumps the queue.
        """
        if self._lock.locked():
            return False

        now = self._clock()
        self._evict(now)
        if len(self._grants) < self.config.limit:
            self._grant(now)
            return True
        return False

    async def acquire(self) -> float:
        """
        Take a permit, waiting if necessary.

        Cancelling the waiting coroutine consumes no permit.

        Returns:
            Time waited in seconds
        """
        async with self._lock:
            waited = 0.0
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._grants) < self.config.limit:
                    self._grant(now)
                    if waited > 0:
                        self._total_waited += 1
                        self._total_wait_time += waited
                    return waited

                wait_time = self._grants[0] + self.config.interval_seconds - now
                logger.debug(
                    "Rate limit wait",
                    limiter=self.name,
                    wait_seconds=round(wait_time, 4),
                )
                await asyncio.sleep(wait_time)
                waited += wait_time

    @property
    def stats(self) -> dict[str, Any]:
        """Get rate limiter statistics."""
        return {
            "name": self.name,
            "limit": self.config.limit,
            "interval_seconds": self.config.interval_seconds,
            "available_permits": self.available_permits,
            "total_acquired": self._total_acquired,
            "total_waited": self._total_waited,
            "avg_wait_time": (
                self._total_wait_time / self._total_waited
                if self._total_waited > 0 else 0
            ),
        }
