"""Pluggable rate limiting policies for catalog requests

Every PokemonTCGClient holds exactly one policy and calls ``acquire()`` before
each attempt, ``report_rate_limited()`` after a 429 and ``report_success()``
after a 2xx. Sharing the client therefore shares the request budget.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Dict, Optional

from ..models import SyncConfig
from .logger import logger

SleepFunc = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]

# Upstream quotas: 20k requests/day with a key, 1k/day and 30/min without
KEYED_DAILY_LIMIT = 20000
ANONYMOUS_DAILY_LIMIT = 1000
ANONYMOUS_PER_MINUTE = 30
DAY_SECONDS = 24 * 60 * 60


class RateLimitPolicy:
    """Base policy: never waits"""

    name = "none"

    def __init__(self, sleep: SleepFunc = None, clock: Clock = None):
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic

    async def acquire(self) -> None:
        return None

    def report_rate_limited(self, retry_after: Optional[float] = None) -> None:
        return None

    def report_success(self) -> None:
        return None

    def get_stats(self) -> Dict[str, float]:
        return {}


class FixedDelayPolicy(RateLimitPolicy):
    """Sleep a constant delay before every request"""

    name = "fixed"

    def __init__(self, delay: float, sleep: SleepFunc = None, clock: Clock = None):
        super().__init__(sleep, clock)
        self.delay = delay
        self.total_requests = 0

    async def acquire(self) -> None:
        self.total_requests += 1
        if self.delay > 0:
            await self._sleep(self.delay)

    def get_stats(self) -> Dict[str, float]:
        return {"total_requests": self.total_requests, "delay": self.delay}


@dataclass
class TokenBucket:
    """Token bucket implementation for rate limiting"""

    capacity: float  # Maximum number of tokens
    refill_rate: float  # Tokens per second
    clock: Clock = time.monotonic
    tokens: float = field(init=False)
    last_refill: float = field(init=False)

    def __post_init__(self):
        self.tokens = self.capacity
        self.last_refill = self.clock()

    def consume(self, tokens: float = 1.0) -> tuple:
        """
        Try to consume tokens from the bucket.
        Returns (success, wait_time_if_failed)
        """
        self._refill()

        if self.tokens >= tokens:
            self.tokens -= tokens
            return True, 0.0

        needed_tokens = tokens - self.tokens
        return False, needed_tokens / self.refill_rate

    def _refill(self):
        """Refill tokens based on elapsed time"""
        now = self.clock()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now


class TokenBucketPolicy(RateLimitPolicy):
    """
    Token bucket with adaptive backoff:
    - 429 responses cut the refill rate by 20%
    - every 100 clean requests raise it by 10%, up to the configured rate
    """

    name = "token_bucket"

    min_refill_rate = 0.1
    backoff_multiplier = 0.8
    speedup_multiplier = 1.1

    def __init__(
        self,
        requests_per_second: float,
        burst_capacity: Optional[float] = None,
        sleep: SleepFunc = None,
        clock: Clock = None,
    ):
        super().__init__(sleep, clock)
        if burst_capacity is None:
            burst_capacity = requests_per_second * 2  # Allow 2x burst by default
        self.max_refill_rate = requests_per_second
        self.bucket = TokenBucket(
            capacity=burst_capacity, refill_rate=requests_per_second, clock=self._clock
        )
        self.total_requests = 0
        self.successful_requests = 0
        self.rate_limited_requests = 0
        self.total_wait_time = 0.0

    async def acquire(self) -> None:
        while True:
            ok, wait_time = self.bucket.consume()
            if ok:
                self.total_requests += 1
                return
            self.total_wait_time += wait_time
            logger.debug(f"Token bucket empty, waiting {wait_time:.3f}s")
            await self._sleep(wait_time)

    def report_rate_limited(self, retry_after: Optional[float] = None) -> None:
        self.rate_limited_requests += 1
        new_rate = max(self.bucket.refill_rate * self.backoff_multiplier, self.min_refill_rate)
        self.bucket.refill_rate = new_rate
        # Also reduce capacity to prevent bursts
        self.bucket.capacity = max(new_rate * 2, 1.0)
        self.bucket.tokens = min(self.bucket.tokens, self.bucket.capacity)
        logger.info(f"Reduced request rate to {new_rate:.2f} req/s")

    def report_success(self) -> None:
        self.successful_requests += 1
        if self.successful_requests % 100 == 0:
            new_rate = min(self.bucket.refill_rate * self.speedup_multiplier, self.max_refill_rate)
            if new_rate > self.bucket.refill_rate:
                self.bucket.refill_rate = new_rate
                self.bucket.capacity = new_rate * 2
                logger.debug(f"Increased request rate to {new_rate:.2f} req/s")

    def get_stats(self) -> Dict[str, float]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "rate_limited_requests": self.rate_limited_requests,
            "total_wait_time": self.total_wait_time,
            "current_rate": self.bucket.refill_rate,
        }


class SlidingWindowPolicy(RateLimitPolicy):
    """Quota over a rolling window plus a minimum spacing between requests"""

    name = "sliding_window"

    def __init__(
        self,
        max_requests: int,
        period: float = DAY_SECONDS,
        requests_per_minute: int = 0,
        sleep: SleepFunc = None,
        clock: Clock = None,
    ):
        super().__init__(sleep, clock)
        self.max_requests = max_requests
        self.period = period
        self.requests_per_minute = requests_per_minute
        self.history: Deque[float] = deque()
        self.last_request_time: Optional[float] = None

    async def acquire(self) -> None:
        if self.requests_per_minute and self.last_request_time is not None:
            min_interval = 60.0 / self.requests_per_minute
            elapsed = self._clock() - self.last_request_time
            if elapsed < min_interval:
                await self._sleep(min_interval - elapsed)

        self._prune()
        if len(self.history) >= self.max_requests:
            wait_time = self.history[0] + self.period - self._clock()
            if wait_time > 0:
                logger.info(f"⏳ Request quota reached. Waiting {wait_time:.0f} seconds...")
                await self._sleep(wait_time)
            self._prune()

        now = self._clock()
        self.history.append(now)
        self.last_request_time = now

    def _prune(self) -> None:
        now = self._clock()
        while self.history and now - self.history[0] >= self.period:
            self.history.popleft()

    def get_stats(self) -> Dict[str, float]:
        return {
            "requests_in_window": len(self.history),
            "max_requests": self.max_requests,
            "requests_per_minute": self.requests_per_minute,
        }


def build_rate_limit_policy(
    config: SyncConfig, has_api_key: bool, sleep: SleepFunc = None
) -> RateLimitPolicy:
    """Create the policy named by ``config.rate_limit_policy``"""
    if config.rate_limit_policy == "token_bucket":
        return TokenBucketPolicy(config.requests_per_second, sleep=sleep)

    if config.rate_limit_policy == "sliding_window":
        daily = config.daily_request_limit or (
            KEYED_DAILY_LIMIT if has_api_key else ANONYMOUS_DAILY_LIMIT
        )
        if config.requests_per_minute is not None:
            per_minute = config.requests_per_minute
        else:
            per_minute = 0 if has_api_key else ANONYMOUS_PER_MINUTE
        return SlidingWindowPolicy(daily, DAY_SECONDS, per_minute, sleep=sleep)

    return FixedDelayPolicy(config.request_delay, sleep=sleep)
