"""
Informer Dispatch Engine.

Watches any number of resource collections and funnels every observed change
through one deduplicating, rate-limited queue into a single handler.

Processing is level triggered: the queue carries only (watch, key, event)
triples and the current object is read from the cache when the item is
processed, so a burst of updates to one object collapses into one call that
sees the final state. Deletes are delivered with the last known state kept in
the shadow map.
"""

import asyncio
import functools
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..cache.informer_cache import ListWatchCache
from ..cache.listwatch import ClientFactory, ListWatch, list_watch_from_client
from ..cache.resolver import ResourceResolver, StaticResourceResolver
from ..cache.selectors import LabelSelector
from ..cache.store import ResourceCache
from ..errors import (
    ConfigurationError,
    InformerError,
    TerminalHandlerError,
    TransientHandlerError,
)
from ..models.config import InformerConfig
from ..models.events import EventKey, EventType
from ..models.objects import ResourceObject
from .queue import RateLimitingQueue
from .ratelimit import RateLimiter, rate_limiter_from_config
from .shadow import DeletedObjectMap
from .wait import until, wait_for_cache_sync
from .watch import InformerWatch, WatchRegistry

logger = logging.getLogger(__name__)


@dataclass
class DispatchContext:
    """Context handed to the handler with every event"""
    stop_event: asyncio.Event
    watch: str
    event_key: EventKey

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()


Handler = Callable[
    [DispatchContext, EventType, ResourceObject, int],
    Union[Awaitable[None], None]
]

CacheFactory = Callable[[ListWatch, float, str], ResourceCache]


def default_cache_factory(list_watch: ListWatch, resync_period: float, name: str) -> ResourceCache:
    return ListWatchCache(list_watch, resync_period=resync_period, name=name)


@dataclass
class InformerMetrics:
    """Counters for handler dispatch"""
    events_handled: Dict[EventType, int] = field(default_factory=lambda: defaultdict(int))
    handler_failures: int = 0
    retries_scheduled: int = 0
    terminal_failures: int = 0
    stale_events: int = 0
    superseded_events: int = 0
    last_error_message: Optional[str] = None
    last_error_time: Optional[datetime] = None


class Informer:
    """
    Multi-watch informer with a single dispatch queue.

    Usage:
        informer = Informer(handler, client_factory=cluster.client_for)
        informer.watch("v1", "ConfigMap", namespace="default")
        await informer.run(stop_event)

    The handler is called as ``handler(ctx, event, obj, num_retries)`` and may
    be a coroutine function. Raising any exception marks the attempt failed;
    it is retried with backoff until ``max_retries`` is used up (negative
    ``max_retries`` retries forever).
    """

    def __init__(
        self,
        handler: Handler,
        config: Optional[InformerConfig] = None,
        resolver: Optional[ResourceResolver] = None,
        client_factory: Optional[ClientFactory] = None,
        cache_factory: Optional[CacheFactory] = None,
        rate_limiter: Optional[RateLimiter] = None
    ):
        """
        Initialize the informer.

        Args:
            handler: Callback receiving every resolved event
            config: Retry, worker and startup settings
            resolver: Resolves (apiVersion, kind) to a resource
            client_factory: Builds a resource client for (resource, namespace)
            cache_factory: Builds the cache for a watch (defaults to ListWatchCache)
            rate_limiter: Backoff policy (defaults to the one in ``config``)
        """
        self.handler = handler
        self.config = config or InformerConfig()
        self.resolver = resolver or StaticResourceResolver()
        self.client_factory = client_factory
        self.cache_factory = cache_factory or default_cache_factory

        self.queue = RateLimitingQueue(
            rate_limiter or rate_limiter_from_config(self.config.rate_limiter)
        )
        self.deleted_objects = DeletedObjectMap()
        self.watches = WatchRegistry()

        self.metrics = InformerMetrics()
        self.is_running = False
        self._stop_event: Optional[asyncio.Event] = None

    def watch(
        self,
        api_version: str,
        kind: str,
        namespace: str = "",
        selector: str = "",
        resync: Optional[float] = None
    ) -> InformerWatch:
        """
        Register a watch on one resource collection.

        Args:
            api_version: e.g. ``v1`` or ``apps/v1``
            kind: e.g. ``ConfigMap``
            namespace: Namespace to watch ("" = all; ignored for cluster-scoped kinds)
            selector: Label selector applied to every list and watch call
            resync: Resync interval in seconds (None = config default, 0 = never)

        Raises:
            ConfigurationError: If the kind cannot be resolved or the selector is invalid
            InformerError: If the informer is already running
        """
        if self.is_running:
            raise InformerError("cannot register watches while the informer is running")

        resource = self.resolver.resolve(api_version, kind)
        if not resource.namespaced:
            namespace = ""
        LabelSelector.parse(selector)

        if self.client_factory is None:
            raise ConfigurationError("no client factory configured")
        client = self.client_factory(resource, namespace)
        list_watch = list_watch_from_client(client, selector)

        resync_period = self.config.default_resync if resync is None else resync
        name = f"{namespace}/{resource.name} {selector}"

        def build(index: int) -> InformerWatch:
            return InformerWatch(
                index=index,
                name=name,
                cache=self.cache_factory(list_watch, resync_period, name),
                queue=self.queue,
                deleted_objects=self.deleted_objects,
                resource=resource,
                namespace=namespace,
                selector=selector,
            )

        watch = self.watches.register(build)
        watch.attach()
        logger.debug(f"Registered watch {watch.index}: {watch.name}")
        return watch

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Start all watches, wait for their initial sync, then dispatch events
        until ``stop_event`` is set (or the calling task is cancelled).

        Raises:
            SyncTimeoutError: If any cache fails to sync in time; nothing is
                dispatched and all watches are stopped
            InformerError: If already running
        """
        if self.is_running:
            raise InformerError("informer is already running")

        stop_event = stop_event or asyncio.Event()
        self._stop_event = stop_event
        self.is_running = True

        watches = list(self.watches)
        cache_tasks: List[asyncio.Task] = []
        workers: List[asyncio.Task] = []

        try:
            for watch in watches:
                logger.info(f"watching {watch.name}")
                cache_tasks.append(asyncio.create_task(watch.cache.run(stop_event)))

            await wait_for_cache_sync(
                stop_event,
                [watch.cache.has_synced for watch in watches],
                timeout=self.config.sync_timeout,
                poll_interval=self.config.sync_poll_interval,
                tasks=cache_tasks,
            )
            logger.info(f"All {len(watches)} caches synced, starting {self.config.workers} worker(s)")

            for watch, task in zip(watches, cache_tasks):
                task.add_done_callback(functools.partial(self._on_cache_exit, watch, stop_event))

            for _ in range(self.config.workers):
                workers.append(asyncio.create_task(
                    until(self._drain, self.config.poll_interval, stop_event)
                ))

            await stop_event.wait()
        finally:
            stop_event.set()
            self.queue.shutdown()
            await self._stop_tasks(workers, "workers")
            await self._stop_tasks(cache_tasks, "caches")
            self.is_running = False
            logger.info("stopped all watch")

    def stop(self) -> None:
        """Ask a running informer to stop"""
        if self._stop_event is not None:
            self._stop_event.set()

    async def process_next_item(self) -> bool:
        """
        Take one item from the queue and process it.

        Returns:
            False once the queue is shut down and drained
        """
        item, shutdown = await self.queue.get()
        if shutdown:
            return False
        try:
            await self._process(item)
        finally:
            self.queue.done(item)
        return True

    async def _drain(self) -> None:
        while await self.process_next_item():
            pass

    async def _process(self, event_key: EventKey) -> None:
        num_retries = self.queue.num_requeues(event_key)
        watch = self.watches.get(event_key.watch_index)
        object_key = event_key.object_key

        try:
            obj, exists = watch.cache.get_by_key(event_key.key)
        except Exception as e:
            self._handle_failure(event_key, num_retries, e, delivered=None)
            return

        shadow = None
        if event_key.event == EventType.DELETE:
            shadow = self.deleted_objects.get(object_key)
            if shadow is None:
                self._drop_stale(event_key, "no last known state found")
                return
            event, payload = EventType.DELETE, shadow.deep_copy()
            if exists:
                logger.debug(f"{event_key} was re-created before its delete was processed")
        elif not exists:
            if object_key in self.deleted_objects:
                # The pending delete carries the final state
                self.metrics.superseded_events += 1
                logger.debug(f"Skipping ({event_key}): object deleted, delete pending")
                self.queue.forget(event_key)
            else:
                self._drop_stale(event_key, "object no longer exists")
            return
        else:
            event, payload = event_key.event, obj.deep_copy()

        ctx = DispatchContext(stop_event=self._stop_event or asyncio.Event(), watch=watch.name, event_key=event_key)
        try:
            await self._invoke(ctx, event, payload, num_retries)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._handle_failure(event_key, num_retries, e, delivered=shadow)
            return

        self.metrics.events_handled[event] += 1
        self._finish(event_key, delivered=shadow)

    async def _invoke(self, ctx: DispatchContext, event: EventType, obj: ResourceObject, num_retries: int) -> None:
        result = self.handler(ctx, event, obj, num_retries)
        if not inspect.isawaitable(result):
            return
        if self.config.handler_timeout is None:
            await result
            return
        try:
            await asyncio.wait_for(result, timeout=self.config.handler_timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"handler timed out after {self.config.handler_timeout}s") from None

    def _handle_failure(
        self,
        event_key: EventKey,
        num_retries: int,
        error: Exception,
        delivered: Optional[ResourceObject]
    ) -> None:
        max_retries = self.config.max_retries
        self.metrics.handler_failures += 1
        self.metrics.last_error_message = str(error)
        self.metrics.last_error_time = datetime.now()

        if max_retries < 0 or num_retries < max_retries:
            failure = TransientHandlerError(event_key, num_retries, error)
            logger.warning(f"error processing ({event_key}, retries {num_retries}/{max_retries}): {error}")
            logger.debug(f"Scheduling retry for {failure.event_key}")
            self.metrics.retries_scheduled += 1
            self.queue.add_rate_limited(event_key)
            return

        failure = TerminalHandlerError(event_key, num_retries, error)
        self.metrics.terminal_failures += 1
        logger.error(f"giving up on ({failure.event_key}) after {failure.retries} retries: {failure.cause}")
        self._finish(event_key, delivered=delivered)

    def _finish(self, event_key: EventKey, delivered: Optional[ResourceObject]) -> None:
        if event_key.event == EventType.DELETE:
            self.deleted_objects.purge(event_key.object_key, delivered=delivered)
        self.queue.forget(event_key)

    def _drop_stale(self, event_key: EventKey, reason: str) -> None:
        self.metrics.stale_events += 1
        logger.warning(f"{reason} for ({event_key}), dropping event")
        self.queue.forget(event_key)

    def _on_cache_exit(self, watch: InformerWatch, stop_event: asyncio.Event, task: asyncio.Task) -> None:
        if stop_event.is_set():
            return
        error = "cancelled" if task.cancelled() else (task.exception() or "exited")
        logger.error(f"cache for {watch.name} stopped unexpectedly: {error}")
        self.metrics.last_error_message = f"cache for {watch.name} stopped: {error}"
        stop_event.set()

    async def _stop_tasks(self, tasks: List[asyncio.Task], label: str) -> None:
        if not tasks:
            return
        try:
            await asyncio.wait_for(
                asyncio.gather(*tasks, return_exceptions=True),
                timeout=self.config.shutdown_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Timeout waiting for {label} to stop - forcing shutdown")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_metrics(self) -> Dict[str, Any]:
        """Get dispatch and queue metrics"""
        return {
            "watches": len(self.watches),
            "events_handled": {event.value: count for event, count in self.metrics.events_handled.items()},
            "handler_failures": self.metrics.handler_failures,
            "retries_scheduled": self.metrics.retries_scheduled,
            "terminal_failures": self.metrics.terminal_failures,
            "stale_events": self.metrics.stale_events + sum(w.stale_events for w in self.watches),
            "superseded_events": self.metrics.superseded_events,
            "pending_deletes": len(self.deleted_objects),
            "last_error_message": self.metrics.last_error_message,
            "last_error_time": self.metrics.last_error_time.isoformat() if self.metrics.last_error_time else None,
            "queue": self.queue.get_metrics(),
        }
