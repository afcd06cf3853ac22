"""
Retry backoff policies.

A rate limiter decides how long a failed item waits before it is handed out
again. Per-item limiters track failures per key; the token bucket limits the
overall retry rate across all keys.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Hashable, Sequence

from ..models.config import RateLimiterConfig

logger = logging.getLogger(__name__)


class RateLimiter(ABC):
    """Backoff policy keyed by queue item"""

    @abstractmethod
    def when(self, item: Hashable) -> float:
        """Record a failure of ``item`` and return the delay in seconds"""
        pass

    @abstractmethod
    def forget(self, item: Hashable) -> None:
        """Clear the backoff state of ``item``"""
        pass


class ItemExponentialFailureRateLimiter(RateLimiter):
    """Delay doubles with every failure: base, 2*base, 4*base... up to max_delay"""

    def __init__(self, base_delay: float, max_delay: float):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[Hashable, int] = {}
        self._lock = threading.RLock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            exp = self._failures.get(item, 0)
            self._failures[item] = exp + 1

        # Cap the exponent before computing to avoid float overflow
        if exp > 1000:
            return self.max_delay
        return min(self.base_delay * (2 ** exp), self.max_delay)

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)


class ItemFastSlowRateLimiter(RateLimiter):
    """Retry quickly a few times, then fall back to a slow fixed delay"""

    def __init__(self, fast_delay: float, slow_delay: float, max_fast_attempts: int):
        self.fast_delay = fast_delay
        self.slow_delay = slow_delay
        self.max_fast_attempts = max_fast_attempts
        self._failures: Dict[Hashable, int] = {}
        self._lock = threading.RLock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            self._failures[item] = self._failures.get(item, 0) + 1
            failures = self._failures[item]
        return self.fast_delay if failures <= self.max_fast_attempts else self.slow_delay

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)


class BucketRateLimiter(RateLimiter):
    """
    Token bucket shared by all items.

    Each call reserves one token; the returned delay is how long until that
    token becomes available. Per-item state is not tracked.
    """

    def __init__(self, qps: float, burst: int, clock: Callable[[], float] = time.monotonic):
        self.qps = qps
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.RLock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            now = self._clock()
            self._tokens = min(float(self.burst), self._tokens + (now - self._last) * self.qps)
            self._last = now
            self._tokens -= 1.0
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.qps

    def forget(self, item: Hashable) -> None:
        pass


class MaxOfRateLimiter(RateLimiter):
    """Combines limiters; the longest delay wins"""

    def __init__(self, *limiters: RateLimiter):
        if not limiters:
            raise ValueError("MaxOfRateLimiter needs at least one limiter")
        self.limiters: Sequence[RateLimiter] = limiters

    def when(self, item: Hashable) -> float:
        return max(limiter.when(item) for limiter in self.limiters)

    def forget(self, item: Hashable) -> None:
        for limiter in self.limiters:
            limiter.forget(item)


def default_controller_rate_limiter(
    base_delay: float = 0.005,
    max_delay: float = 1000.0,
    qps: float = 10.0,
    burst: int = 100
) -> RateLimiter:
    """Per-item exponential backoff combined with an overall token bucket"""
    return MaxOfRateLimiter(
        ItemExponentialFailureRateLimiter(base_delay, max_delay),
        BucketRateLimiter(qps, burst),
    )


def rate_limiter_from_config(config: RateLimiterConfig) -> RateLimiter:
    """Build the limiter described by a :class:`RateLimiterConfig`"""
    if config.kind == "exponential":
        return ItemExponentialFailureRateLimiter(config.base_delay, config.max_delay)
    if config.kind == "bucket":
        return BucketRateLimiter(config.qps, config.burst)
    if config.kind == "fast-slow":
        return ItemFastSlowRateLimiter(config.fast_delay, config.slow_delay, config.max_fast_attempts)
    return default_controller_rate_limiter(config.base_delay, config.max_delay, config.qps, config.burst)
