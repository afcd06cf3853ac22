"""
List/Watch Resource Cache.

Default resource cache: loads the collection with one list call, then follows
the watch stream, relisting whenever the stream fails. Every change is applied
to the local mirror first and then reported to the registered handlers.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from .keys import meta_namespace_key
from .listwatch import ListWatch, WatchEventType
from .store import ResourceCache, ResourceEventHandler
from ..errors import KeyExtractionError
from ..models.objects import DeletedFinalStateUnknown, ResourceObject

logger = logging.getLogger(__name__)


class WatchExpiredError(Exception):
    """The watch stream reported an error; a relist is required"""
    pass


class ListWatchCache(ResourceCache):
    """
    Key-indexed mirror of one remote collection.

    Features:
    - Initial list marks the cache synced
    - Watch stream resumes from the last seen resource version
    - Relist with backoff after watch/list failures, emitting tombstones for
      objects that disappeared in between
    - Periodic resync re-reports every cached object as an update
    """

    def __init__(
        self,
        list_watch: ListWatch,
        resync_period: float = 0.0,
        name: str = "",
        relist_backoff: float = 1.0,
        max_relist_backoff: float = 30.0
    ):
        """
        Initialize the cache.

        Args:
            list_watch: Source of list and watch calls
            resync_period: Seconds between resyncs (0 disables resync)
            name: Label used in log messages
            relist_backoff: Initial delay before relisting after a failure
            max_relist_backoff: Upper bound for the relist delay
        """
        self.list_watch = list_watch
        self.resync_period = resync_period
        self.name = name or "cache"
        self.relist_backoff = relist_backoff
        self.max_relist_backoff = max_relist_backoff

        self._items: Dict[str, ResourceObject] = {}
        self._handlers: List[ResourceEventHandler] = []
        self._lock = threading.RLock()
        self._synced = False
        self._resource_version = ""

    def has_synced(self) -> bool:
        return self._synced

    def get_by_key(self, key: str) -> Tuple[Optional[ResourceObject], bool]:
        with self._lock:
            obj = self._items.get(key)
        return obj, obj is not None

    def list_keys(self) -> List[str]:
        with self._lock:
            return list(self._items.keys())

    def add_event_handler(self, handler: ResourceEventHandler) -> None:
        """Attach a handler; a late handler is told about every cached object"""
        with self._lock:
            self._handlers.append(handler)
            existing = list(self._items.values()) if self._synced else []
        for obj in existing:
            self._call(handler.on_add, obj)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run list/watch (and resync) until ``stop_event`` is set"""
        runner = asyncio.create_task(self._list_and_watch_forever())
        stopper = asyncio.create_task(stop_event.wait())
        tasks = [runner, stopper]
        if self.resync_period > 0:
            tasks.append(asyncio.create_task(self._resync_forever()))

        try:
            await asyncio.wait({runner, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug(f"Stopped cache {self.name}")

    async def _list_and_watch_forever(self) -> None:
        backoff = self.relist_backoff
        while True:
            try:
                await self._list_and_replace()
                backoff = self.relist_backoff
                await self._watch()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"List/watch for {self.name} failed, relisting in {backoff:.1f}s: {e}")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self.max_relist_backoff)

    async def _list_and_replace(self) -> None:
        result = await self.list_watch.list()

        fresh: Dict[str, ResourceObject] = {}
        for obj in result.items:
            try:
                fresh[meta_namespace_key(obj)] = obj
            except KeyExtractionError as e:
                logger.warning(f"Skipping listed object in {self.name}: {e}")

        with self._lock:
            previous = self._items
            self._items = fresh
            self._resource_version = result.resource_version

        for key, obj in fresh.items():
            if key in previous:
                self._notify_update(previous[key], obj)
            else:
                self._notify_add(obj)
        for key, obj in previous.items():
            if key not in fresh:
                self._notify_delete(DeletedFinalStateUnknown(key=key, obj=obj))

        if not self._synced:
            self._synced = True
            logger.debug(f"Cache {self.name} synced with {len(fresh)} objects")

    async def _watch(self) -> None:
        # A stream that ends cleanly is resumed from the last resource version
        while True:
            async for event in self.list_watch.watch(self._resource_version):
                if event.type == WatchEventType.ERROR:
                    raise WatchExpiredError(event.message or "watch error")
                self._apply(event.type, event.object)

    def _apply(self, event_type: WatchEventType, obj: Optional[ResourceObject]) -> None:
        if obj is None:
            return
        try:
            key = meta_namespace_key(obj)
        except KeyExtractionError as e:
            logger.warning(f"Ignoring watch event in {self.name}: {e}")
            return

        with self._lock:
            old = self._items.get(key)
            if event_type == WatchEventType.DELETED:
                self._items.pop(key, None)
            else:
                self._items[key] = obj
            if obj.resource_version:
                self._resource_version = obj.resource_version

        if event_type == WatchEventType.DELETED:
            self._notify_delete(obj)
        elif old is None:
            self._notify_add(obj)
        else:
            self._notify_update(old, obj)

    async def _resync_forever(self) -> None:
        while True:
            await asyncio.sleep(self.resync_period)
            if not self._synced:
                continue
            with self._lock:
                snapshot = list(self._items.values())
            logger.debug(f"Resyncing {len(snapshot)} objects in {self.name}")
            for obj in snapshot:
                self._notify_update(obj, obj)

    def _notify_add(self, obj: ResourceObject) -> None:
        for handler in self._snapshot_handlers():
            self._call(handler.on_add, obj)

    def _notify_update(self, old: ResourceObject, new: ResourceObject) -> None:
        for handler in self._snapshot_handlers():
            self._call(handler.on_update, old, new)

    def _notify_delete(self, obj: Any) -> None:
        for handler in self._snapshot_handlers():
            self._call(handler.on_delete, obj)

    def _snapshot_handlers(self) -> List[ResourceEventHandler]:
        with self._lock:
            return list(self._handlers)

    def _call(self, callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Event handler for {self.name} failed: {e}")
