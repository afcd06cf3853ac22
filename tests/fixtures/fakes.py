"""
Hand-driven stand-ins for a resource cache and an event handler.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from kinformer.cache.keys import meta_namespace_key
from kinformer.cache.store import ResourceCache, ResourceEventHandler
from kinformer.models.objects import ResourceObject


class FakeResourceCache(ResourceCache):
    """Resource cache whose contents and notifications are driven by the test"""

    def __init__(self, synced: bool = True):
        self.objects: Dict[str, ResourceObject] = {}
        self.handlers: List[ResourceEventHandler] = []
        self.synced = synced
        self.started = False
        self.stopped = False

    async def run(self, stop_event: asyncio.Event) -> None:
        self.started = True
        try:
            await stop_event.wait()
        finally:
            self.stopped = True

    def has_synced(self) -> bool:
        return self.synced

    def get_by_key(self, key: str) -> Tuple[Optional[ResourceObject], bool]:
        obj = self.objects.get(key)
        return obj, obj is not None

    def add_event_handler(self, handler: ResourceEventHandler) -> None:
        self.handlers.append(handler)

    def list_keys(self) -> List[str]:
        return list(self.objects)

    def put(self, obj: ResourceObject) -> None:
        """Store ``obj`` and notify add or update"""
        key = meta_namespace_key(obj)
        old = self.objects.get(key)
        self.objects[key] = obj
        for handler in self.handlers:
            if old is None:
                handler.on_add(obj)
            else:
                handler.on_update(old, obj)

    def remove(self, key: str) -> ResourceObject:
        """Drop ``key`` and notify delete with its final state"""
        obj = self.objects.pop(key)
        for handler in self.handlers:
            handler.on_delete(obj)
        return obj


class RecordingHandler:
    """Handler that records calls and can be told to fail"""

    def __init__(self, failures: int = 0):
        self.calls: List[Tuple[Any, Any, ResourceObject, int]] = []
        self.failures = failures

    async def __call__(self, ctx, event, obj, num_retries):
        self.calls.append((ctx.event_key, event, obj, num_retries))
        if self.failures < 0 or len(self.calls) <= self.failures:
            raise RuntimeError(f"handler failure #{len(self.calls)}")

    @property
    def events(self):
        return [(event, obj.name) for _, event, obj, _ in self.calls]
