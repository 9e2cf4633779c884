"""Human-paced rate limiting and a sticky circuit breaker for scraping providers."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ProviderStats(BaseModel):
    requests: int = 0
    successes: int = 0
    failures: int = 0
    blocked_count: int = 0
    last_error: str | None = None
    consecutive_failures: int = 0
    blocked: bool = False


class HumanPacer:
    """Spaces requests by a randomized window instead of a fixed interval.

    If the last request was less than U(window) ago, wait the remainder plus
    U(jitter); otherwise wait a short U(micro) pause. The next slot is
    reserved before sleeping, so concurrent callers queue up behind each
    other rather than firing together.
    """

    def __init__(
        self,
        window: tuple[float, float] = (2.0, 4.0),
        jitter: tuple[float, float] = (0.0, 1.0),
        micro: tuple[float, float] = (0.1, 0.5),
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self.window = window
        self.jitter = jitter
        self.micro = micro
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()
        self.last_request_time: float | None = None

    def _uniform(self, bounds: tuple[float, float]) -> float:
        return self._rng.uniform(*bounds)

    def next_delay(self) -> float:
        """Decide how long to wait and reserve the slot."""
        now = self._clock()
        window = self._uniform(self.window)

        if self.last_request_time is not None and now - self.last_request_time < window:
            delay = window - (now - self.last_request_time) + self._uniform(self.jitter)
        else:
            delay = self._uniform(self.micro)

        self.last_request_time = now + delay
        return delay

    def mark(self) -> None:
        """Record a request made outside ``wait()`` (e.g. session warmup)."""
        now = self._clock()
        if self.last_request_time is None or self.last_request_time < now:
            self.last_request_time = now

    async def wait(self) -> float:
        delay = self.next_delay()
        if delay >= 1.0:
            logger.info("Rate limit: waiting %.1fs", delay)
        await self._sleep(delay)
        return delay

    async def pause(self, bounds: tuple[float, float]) -> float:
        """Sleep a uniformly random time within ``bounds``."""
        delay = self._uniform(bounds)
        await self._sleep(delay)
        return delay


class CircuitBreaker:
    """Counts consecutive failures and latches ``blocked`` until reset()."""

    def __init__(
        self,
        max_consecutive_failures: int = 3,
        on_trip: Callable[[ProviderStats], None] | None = None,
        stats: ProviderStats | None = None,
    ) -> None:
        self.max_consecutive_failures = max_consecutive_failures
        self.stats = stats or ProviderStats()
        self._on_trip = on_trip

    @property
    def blocked(self) -> bool:
        return self.stats.blocked

    def record_request(self) -> None:
        self.stats.requests += 1

    def record_success(self) -> None:
        self.stats.successes += 1
        self.stats.consecutive_failures = 0

    def record_failure(self, error: str, block_signal: bool = False) -> bool:
        """Count a failure. Returns True if this failure tripped the breaker."""
        self.stats.failures += 1
        self.stats.consecutive_failures += 1
        self.stats.last_error = error

        if self.stats.blocked:
            return False
        if block_signal or self.stats.consecutive_failures >= self.max_consecutive_failures:
            self.trip()
            return True
        return False

    def trip(self) -> None:
        if self.stats.blocked:
            return
        self.stats.blocked = True
        self.stats.blocked_count += 1
        logger.error(
            "Circuit open after %d consecutive failure(s): %s",
            self.stats.consecutive_failures, self.stats.last_error,
        )
        if self._on_trip is not None:
            try:
                self._on_trip(self.stats)
            except Exception as e:
                logger.warning("Circuit trip callback failed: %s", e)

    def reset(self) -> None:
        self.stats.blocked = False
        self.stats.consecutive_failures = 0
