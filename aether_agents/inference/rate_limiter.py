"""
Rate Limiter
============

Token-bucket throttle, one bucket per model provider.

A bucket starts full. Each request takes one token. Tokens come back in
batches: once at least one full refill interval has passed, the bucket gains
``elapsed / interval * refill_rate`` whole tokens, capped at capacity. This
permits short bursts while bounding sustained throughput to roughly
``refill_rate`` requests per interval.

Usage:
    limiter = RateLimiter.for_provider("groq")   # 30 requests / minute

    limiter.try_acquire()     # take a token now or raise RateLimitExceeded
    await limiter.acquire()   # wait (bounded retries) for a token
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from aether_agents.errors import InvalidConfiguration, RateLimitExceeded
from aether_agents.utils.config import RateLimitConfig, get_config
from aether_agents.utils.logger import Logger

logger = Logger("RateLimiter")

# Attempts made by acquire() before giving up
MAX_RETRIES = 10


@dataclass
class RateLimiterState:
    tokens: int
    last_refill: float


@dataclass
class RateLimiterStats:
    available_tokens: int
    max_tokens: int
    utilization: float          # Percent of capacity currently used
    time_since_refill: float    # Seconds

    def to_dict(self) -> dict:
        return {
            "available_tokens": self.available_tokens,
            "max_tokens": self.max_tokens,
            "utilization": self.utilization,
            "time_since_refill": self.time_since_refill,
        }


class RateLimiter:
    """
    Lock-guarded token bucket.

    Args:
        max_tokens: Bucket capacity
        refill_rate: Tokens added per refill interval
        refill_interval: Seconds per interval
        provider: Provider id, used in errors and logs
        clock: Monotonic time source (seconds)
        sleep: Coroutine function used to wait between acquire() attempts
    """

    def __init__(
        self,
        max_tokens: int,
        refill_rate: int,
        refill_interval: float,
        provider: str | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        if max_tokens < 1 or refill_rate < 1 or refill_interval <= 0:
            raise InvalidConfiguration(
                f"rate limiter needs positive capacity, rate and interval "
                f"(got {max_tokens}, {refill_rate}, {refill_interval})"
            )

        self.max_tokens = max_tokens
        self.refill_rate = refill_rate
        self.refill_interval = refill_interval
        self.provider = provider
        self._clock = clock
        self._sleep = sleep

        self._lock = threading.Lock()
        self._state = RateLimiterState(tokens=max_tokens, last_refill=clock())

    @classmethod
    def for_provider(cls, provider: str, config: RateLimitConfig | None = None) -> "RateLimiter":
        """Build the bucket configured for a provider (unknown providers get the default)."""
        config = config or get_config().rate_limits
        bucket = config.for_provider(provider)
        return cls(bucket.max_tokens, bucket.refill_rate, bucket.refill_interval, provider=provider)

    def _refill(self, now: float) -> None:
        elapsed = now - self._state.last_refill
        intervals = elapsed / self.refill_interval

        if intervals >= 1.0:
            added = int(intervals * self.refill_rate)
            self._state.tokens = min(self._state.tokens + added, self.max_tokens)
            self._state.last_refill = now

    def try_acquire(self) -> None:
        """
        Take one token without waiting.

        Raises:
            RateLimitExceeded: The bucket is empty; retry_after is the time
                until the next refill boundary
        """
        with self._lock:
            now = self._clock()
            self._refill(now)

            if self._state.tokens > 0:
                self._state.tokens -= 1
                return

            retry_after = max(0.0, self.refill_interval - (now - self._state.last_refill))

        raise RateLimitExceeded(retry_after, self.provider)

    async def acquire(self) -> None:
        """
        Take one token, sleeping between attempts.

        Gives up after MAX_RETRIES waits and re-raises the last
        RateLimitExceeded; there is no wall-clock deadline.
        """
        retries = 0
        while True:
            try:
                self.try_acquire()
                return
            except RateLimitExceeded as e:
                if retries >= MAX_RETRIES:
                    logger.warning(
                        f"Gave up waiting for a {self.provider or 'request'} token",
                        {"retries": retries, "retry_after": e.retry_after}
                    )
                    raise
                logger.debug(f"Rate limited, sleeping {e.retry_after:.2f}s")
                await self._sleep(e.retry_after)
                retries += 1

    def available_tokens(self) -> int:
        with self._lock:
            self._refill(self._clock())
            return self._state.tokens

    def stats(self) -> RateLimiterStats:
        with self._lock:
            now = self._clock()
            self._refill(now)
            used = self.max_tokens - self._state.tokens
            return RateLimiterStats(
                available_tokens=self._state.tokens,
                max_tokens=self.max_tokens,
                utilization=used / self.max_tokens * 100.0,
                time_since_refill=now - self._state.last_refill,
            )
