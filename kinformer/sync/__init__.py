"""
Event multiplexing and dispatch.

Key Components:
- RateLimitingQueue: Deduplicating, level-triggered queue with backoff re-queueing
- DeletedObjectMap: Last known state of objects whose delete is pending
- InformerWatch / WatchRegistry: Watch registration and cache callbacks
- Informer: Sync barrier, dispatch loop and retry policy
"""

from .ratelimit import (
    RateLimiter,
    ItemExponentialFailureRateLimiter,
    ItemFastSlowRateLimiter,
    BucketRateLimiter,
    MaxOfRateLimiter,
    default_controller_rate_limiter,
    rate_limiter_from_config,
)
from .queue import QueueMetrics, WorkQueue, DelayingQueue, RateLimitingQueue
from .shadow import DeletedObjectMap
from .watch import InformerWatch, WatchRegistry
from .wait import wait_for_cache_sync, until
from .engine import Informer, InformerMetrics, DispatchContext, Handler

__all__ = [
    "RateLimiter",
    "ItemExponentialFailureRateLimiter",
    "ItemFastSlowRateLimiter",
    "BucketRateLimiter",
    "MaxOfRateLimiter",
    "default_controller_rate_limiter",
    "rate_limiter_from_config",
    "QueueMetrics",
    "WorkQueue",
    "DelayingQueue",
    "RateLimitingQueue",
    "DeletedObjectMap",
    "InformerWatch",
    "WatchRegistry",
    "wait_for_cache_sync",
    "until",
    "Informer",
    "InformerMetrics",
    "DispatchContext",
    "Handler",
]
