"""Token-bucket admission control, one bucket per logical channel."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger()

ANALYSIS = "analysis"
GENERATION = "generation"
JUDGE = "judge"


class TokenBucket:
    """Grants ``rate`` permits per second with a burst of ``capacity``.

    Waiters on the same bucket queue behind its lock; other buckets are
    unaffected.
    """

    def __init__(
        self,
        name: str,
        rate: float,
        capacity: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.name = name
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated_at = clock()
        self._lock = asyncio.Lock()
        self._granted = 0
        self._throttled = 0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated_at = now

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    def try_acquire(self) -> bool:
        """Take one permit if immediately available."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            self._granted += 1
            return True
        return False

    async def acquire(self) -> float:
        """Wait for one permit. Returns the seconds spent waiting."""
        waited = 0.0
        async with self._lock:
            while not self.try_acquire():
                delay = (1 - self._tokens) / self.rate
                if waited == 0.0:
                    self._throttled += 1
                    logger.debug("rate_limited", channel=self.name, wait_s=round(delay, 3))
                await self._sleep(delay)
                waited += delay
        return waited

    def get_stats(self) -> dict[str, Any]:
        return {
            "rate_per_second": self.rate,
            "capacity": self.capacity,
            "available": round(self.available, 3),
            "granted": self._granted,
            "throttled": self._throttled,
        }


class RateLimiters:
    """The per-channel buckets shared by every request in the process."""

    def __init__(self, analysis: TokenBucket, generation: TokenBucket, judge: TokenBucket):
        self.analysis = analysis
        self.generation = generation
        self.judge = judge

    @classmethod
    def from_settings(cls, settings: Any) -> "RateLimiters":
        return cls(
            analysis=TokenBucket(
                ANALYSIS, settings.analysis_rate_per_second, settings.analysis_burst,
            ),
            generation=TokenBucket(
                GENERATION, settings.generation_rate_per_second, settings.generation_burst,
            ),
            judge=TokenBucket(JUDGE, settings.judge_rate_per_second, settings.judge_burst),
        )

    def get_stats(self) -> dict[str, dict]:
        return {
            ANALYSIS: self.analysis.get_stats(),
            GENERATION: self.generation.get_stats(),
            JUDGE: self.judge.get_stats(),
        }
