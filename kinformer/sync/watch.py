"""
Watch registration.

An :class:`InformerWatch` ties one resource cache to the shared dispatch
queue and shadow map; the :class:`WatchRegistry` hands out stable indices.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List

from ..cache.keys import deletion_handling_key, meta_namespace_key
from ..cache.store import ResourceCache, ResourceEventHandler
from ..errors import KeyExtractionError
from ..models.events import EventKey, EventType, ObjectKey
from ..models.objects import APIResource, DeletedFinalStateUnknown, ResourceObject
from .queue import RateLimitingQueue
from .shadow import DeletedObjectMap

logger = logging.getLogger(__name__)


@dataclass
class InformerWatch:
    """
    One registered watch.

    Translates cache notifications into queue items. The delete callback
    records the object's last state in the shadow map before queueing, so
    the delete can be delivered after the object left the cache.
    """
    index: int
    name: str
    cache: ResourceCache
    queue: RateLimitingQueue
    deleted_objects: DeletedObjectMap
    resource: APIResource
    namespace: str = ""
    selector: str = ""
    stale_events: int = field(default=0, init=False)

    def attach(self) -> None:
        """Register this watch's callbacks on its cache"""
        self.cache.add_event_handler(ResourceEventHandler(
            on_add=self.handle_add,
            on_update=self.handle_update,
            on_delete=self.handle_delete,
        ))

    def handle_add(self, obj: ResourceObject) -> None:
        self._enqueue(meta_namespace_key, obj, EventType.ADD)

    def handle_update(self, old_obj: ResourceObject, new_obj: ResourceObject) -> None:
        self._enqueue(meta_namespace_key, new_obj, EventType.UPDATE)

    def handle_delete(self, obj: Any) -> None:
        try:
            key = deletion_handling_key(obj)
        except KeyExtractionError as e:
            self._drop(obj, e)
            return

        state = obj.obj if isinstance(obj, DeletedFinalStateUnknown) else obj
        self.deleted_objects.capture(ObjectKey(self.index, key), state)
        self.queue.add(EventKey(self.index, key, EventType.DELETE))

    def _enqueue(self, key_func: Callable[[Any], str], obj: Any, event: EventType) -> None:
        try:
            key = key_func(obj)
        except KeyExtractionError as e:
            self._drop(obj, e)
            return
        self.queue.add(EventKey(self.index, key, event))

    def _drop(self, obj: Any, error: KeyExtractionError) -> None:
        self.stale_events += 1
        logger.warning(f"Dropping notification from {self.name}: {error}")


class WatchRegistry:
    """Registered watches, indexed in registration order"""

    def __init__(self):
        self._watches: List[InformerWatch] = []
        self._lock = threading.RLock()

    def register(self, build: Callable[[int], InformerWatch]) -> InformerWatch:
        """Allocate the next index and store the watch ``build(index)`` returns"""
        with self._lock:
            watch = build(len(self._watches))
            self._watches.append(watch)
        return watch

    def get(self, index: int) -> InformerWatch:
        with self._lock:
            return self._watches[index]

    def __iter__(self) -> Iterator[InformerWatch]:
        with self._lock:
            return iter(list(self._watches))

    def __len__(self) -> int:
        with self._lock:
            return len(self._watches)
