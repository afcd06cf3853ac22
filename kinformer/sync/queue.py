"""
Event Dispatch Queue.

Deduplicating, level-triggered work queue with delayed and rate-limited
re-queueing. The queue alone decides processing order and guarantees that a
given item is never handed to two consumers at the same time.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Hashable, List, Optional, Set, Tuple

from .ratelimit import RateLimiter, default_controller_rate_limiter

logger = logging.getLogger(__name__)


@dataclass
class QueueMetrics:
    """Metrics for monitoring queue behaviour"""
    adds: int = 0
    deduplicated_adds: int = 0
    gets: int = 0
    retries: int = 0
    depth: int = 0
    max_depth: int = 0
    in_flight: int = 0
    waiting: int = 0


class WorkQueue:
    """
    Asynchronous work queue with per-item deduplication.

    Semantics:
    - An item already waiting in the queue is not added twice (it is "dirty")
    - An item added while being processed is queued once more when
      :meth:`done` is called for it
    - :meth:`get` hands out each item to at most one consumer at a time
    - After :meth:`shutdown`, :meth:`get` drains what is left and then
      reports shutdown; further adds are ignored
    """

    def __init__(self, name: str = "informer"):
        """
        Initialize the queue.

        Args:
            name: Label used in log messages
        """
        self.name = name

        self._queue: Deque[Hashable] = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._waiters: List[asyncio.Future] = []
        self._shutting_down = False

        self.metrics = QueueMetrics()

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, item: Hashable) -> None:
        """Mark ``item`` as needing processing"""
        if self._shutting_down:
            logger.debug(f"Queue {self.name} shutting down, ignoring {item}")
            return

        self.metrics.adds += 1
        if item in self._dirty:
            self.metrics.deduplicated_adds += 1
            return

        self._dirty.add(item)
        if item in self._processing:
            # Re-queued by done() once the current attempt finishes
            return

        self._queue.append(item)
        self._update_depth()
        self._wake_one()
        logger.debug(f"Enqueued {item} (queue size: {len(self._queue)})")

    async def get(self) -> Tuple[Optional[Hashable], bool]:
        """
        Wait for the next item.

        Returns:
            ``(item, shutdown)``; when ``shutdown`` is True the queue is drained
            and closed and ``item`` is None
        """
        while not self._queue and not self._shutting_down:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            except asyncio.CancelledError:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
                elif waiter.done() and not waiter.cancelled():
                    # Woken but cancelled before running: pass the wake-up on
                    self._wake_one()
                raise

        if not self._queue:
            return None, True

        item = self._queue.popleft()
        self._processing.add(item)
        self._dirty.discard(item)

        self.metrics.gets += 1
        self.metrics.in_flight = len(self._processing)
        self._update_depth()
        logger.debug(f"Dequeued {item} (queue size: {len(self._queue)})")
        return item, False

    def done(self, item: Hashable) -> None:
        """Finish processing ``item``; re-queue it if it was added meanwhile"""
        self._processing.discard(item)
        self.metrics.in_flight = len(self._processing)
        if item in self._dirty:
            self._queue.append(item)
            self._update_depth()
            self._wake_one()

    def shutdown(self) -> None:
        """Stop accepting items and release every waiting consumer (idempotent)"""
        if self._shutting_down:
            return
        self._shutting_down = True
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        logger.debug(f"Queue {self.name} shut down with {len(self._queue)} items left")

    def is_processing(self, item: Hashable) -> bool:
        return item in self._processing

    def __len__(self) -> int:
        return len(self._queue)

    def _wake_one(self) -> None:
        while self._waiters:
            waiter = self._waiters.pop(0)
            if not waiter.done():
                waiter.set_result(None)
                return

    def _update_depth(self) -> None:
        self.metrics.depth = len(self._queue)
        self.metrics.max_depth = max(self.metrics.max_depth, self.metrics.depth)


class DelayingQueue(WorkQueue):
    """Work queue that can add items after a delay"""

    def __init__(self, name: str = "informer"):
        super().__init__(name)
        # item -> (ready_at, timer)
        self._waiting: Dict[Hashable, Tuple[float, asyncio.TimerHandle]] = {}

    def add_after(self, item: Hashable, delay: float) -> None:
        """Add ``item`` once ``delay`` seconds have passed"""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(item)
            return

        loop = asyncio.get_running_loop()
        ready_at = loop.time() + delay
        pending = self._waiting.get(item)
        if pending is not None:
            if pending[0] <= ready_at:
                # Already scheduled to fire sooner
                return
            pending[1].cancel()

        timer = loop.call_later(delay, self._fire, item)
        self._waiting[item] = (ready_at, timer)
        self.metrics.waiting = len(self._waiting)

    def cancel_after(self, item: Hashable) -> None:
        """Drop a pending delayed add of ``item``, if any"""
        pending = self._waiting.pop(item, None)
        if pending is not None:
            pending[1].cancel()
            self.metrics.waiting = len(self._waiting)

    def shutdown(self) -> None:
        for _, timer in self._waiting.values():
            timer.cancel()
        self._waiting.clear()
        self.metrics.waiting = 0
        super().shutdown()

    def _fire(self, item: Hashable) -> None:
        self._waiting.pop(item, None)
        self.metrics.waiting = len(self._waiting)
        self.add(item)


class RateLimitingQueue(DelayingQueue):
    """
    Delaying queue whose re-queue delay comes from a rate limiter.

    The requeue count of an item grows by one per :meth:`add_rate_limited`
    and resets on :meth:`forget`, whatever limiter is configured.
    """

    def __init__(self, rate_limiter: Optional[RateLimiter] = None, name: str = "informer"):
        super().__init__(name)
        self.rate_limiter = rate_limiter or default_controller_rate_limiter()
        self._requeues: Dict[Hashable, int] = {}

    def add_rate_limited(self, item: Hashable) -> None:
        """Re-queue ``item`` after the delay chosen by the rate limiter"""
        if self._shutting_down:
            return
        self._requeues[item] = self._requeues.get(item, 0) + 1
        self.metrics.retries += 1
        delay = self.rate_limiter.when(item)
        logger.debug(f"Re-queueing {item} in {delay:.3f}s (requeues: {self._requeues[item]})")
        self.add_after(item, delay)

    def num_requeues(self, item: Hashable) -> int:
        """Re-queues of ``item`` since it was last forgotten"""
        return self._requeues.get(item, 0)

    def forget(self, item: Hashable) -> None:
        """Clear retry and backoff state for ``item``, including a pending retry"""
        self._requeues.pop(item, None)
        self.rate_limiter.forget(item)
        self.cancel_after(item)

    def get_metrics(self) -> Dict[str, Any]:
        """Get queue metrics"""
        return {
            "name": self.name,
            "depth": self.metrics.depth,
            "max_depth": self.metrics.max_depth,
            "adds": self.metrics.adds,
            "deduplicated_adds": self.metrics.deduplicated_adds,
            "gets": self.metrics.gets,
            "retries": self.metrics.retries,
            "in_flight": self.metrics.in_flight,
            "waiting": self.metrics.waiting,
            "shutting_down": self._shutting_down,
        }
