"""
In-memory control-plane store.

A small stand-in for a remote resource store: objects carry increasing
resource versions, list calls honour namespace and label selectors, and watch
streams deliver every later change. A bounded event log lets a watch resume
from the resource version it last saw. Used by tests and the replay command.
"""

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, AsyncIterator, Deque, Dict, List, Optional, Tuple, Union

from .keys import meta_namespace_key
from .listwatch import ObjectList, ResourceClient, WatchEvent, WatchEventType
from .resolver import ResourceResolver, StaticResourceResolver
from .selectors import LabelSelector
from ..errors import ConfigurationError
from ..models.objects import APIResource, ResourceObject

logger = logging.getLogger(__name__)

_CLOSED = object()


@dataclass
class _Subscription:
    namespace: str
    selector: LabelSelector
    queue: asyncio.Queue

    def wants(self, obj: ResourceObject) -> bool:
        if self.namespace and obj.namespace != self.namespace:
            return False
        return self.selector.matches(obj.metadata.labels)


class InMemoryCluster:
    """
    Fake remote store holding objects for any resolvable kind.

    Objects are stored per resource (``group/plural``) and keyed like the
    caches key them.
    """

    def __init__(self, resolver: Optional[ResourceResolver] = None, history_size: int = 1000):
        self.resolver = resolver or StaticResourceResolver()
        self.history_size = history_size
        self._objects: Dict[Tuple[str, str], Dict[str, ResourceObject]] = {}
        self._subscriptions: Dict[Tuple[str, str], List[_Subscription]] = {}
        # resource -> (resourceVersion, event) for the latest changes
        self._history: Dict[Tuple[str, str], Deque[Tuple[int, WatchEvent]]] = {}
        # resource -> newest resourceVersion no longer in the history
        self._compacted: Dict[Tuple[str, str], int] = {}
        self._versions = itertools.count(1)
        self._resource_version = 0

    @property
    def resource_version(self) -> str:
        return str(self._resource_version)

    def client_for(self, resource: APIResource, namespace: str = "") -> 'InMemoryResourceClient':
        """Client factory compatible with :class:`~kinformer.sync.engine.Informer`"""
        return InMemoryResourceClient(self, resource, namespace)

    def create(self, obj: Union[ResourceObject, Dict[str, Any]]) -> ResourceObject:
        """Store a new object; fails if the key already exists"""
        obj, resource_id, key = self._prepare(obj)
        if key in self._objects.setdefault(resource_id, {}):
            raise ValueError(f"{obj.kind} {key} already exists")
        return self._store(resource_id, key, obj, WatchEventType.ADDED)

    def update(self, obj: Union[ResourceObject, Dict[str, Any]]) -> ResourceObject:
        """Replace an existing object"""
        obj, resource_id, key = self._prepare(obj)
        if key not in self._objects.setdefault(resource_id, {}):
            raise KeyError(f"{obj.kind} {key} not found")
        return self._store(resource_id, key, obj, WatchEventType.MODIFIED)

    def apply(self, obj: Union[ResourceObject, Dict[str, Any]]) -> ResourceObject:
        """Create or update"""
        obj, resource_id, key = self._prepare(obj)
        exists = key in self._objects.setdefault(resource_id, {})
        event_type = WatchEventType.MODIFIED if exists else WatchEventType.ADDED
        return self._store(resource_id, key, obj, event_type)

    def delete(self, api_version: str, kind: str, name: str, namespace: str = "") -> ResourceObject:
        """Remove an object and return its final state"""
        resource = self.resolver.resolve(api_version, kind)
        resource_id = (resource.group, resource.name)
        key = f"{namespace}/{name}" if resource.namespaced and namespace else name
        objects = self._objects.setdefault(resource_id, {})
        if key not in objects:
            raise KeyError(f"{kind} {key} not found")
        final = objects.pop(key)
        self._resource_version = next(self._versions)
        final = final.model_copy(deep=True)
        final.metadata.resource_version = str(self._resource_version)
        self._publish(resource_id, WatchEventType.DELETED, final)
        logger.debug(f"Deleted {final}")
        return final

    def get(self, api_version: str, kind: str, name: str, namespace: str = "") -> Optional[ResourceObject]:
        resource = self.resolver.resolve(api_version, kind)
        key = f"{namespace}/{name}" if resource.namespaced and namespace else name
        obj = self._objects.get((resource.group, resource.name), {}).get(key)
        return obj.deep_copy() if obj is not None else None

    def close_watches(self) -> None:
        """End every open watch stream (clients will resume watching)"""
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions:
                subscription.queue.put_nowait(_CLOSED)

    def expire_watches(self, message: str = "too old resource version") -> None:
        """Send an error to every open watch stream, forcing a relist"""
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions:
                subscription.queue.put_nowait(WatchEvent(WatchEventType.ERROR, message=message))

    def list_objects(self, resource: APIResource, namespace: str, selector: LabelSelector) -> List[ResourceObject]:
        objects = self._objects.get((resource.group, resource.name), {})
        return [
            obj.deep_copy() for obj in objects.values()
            if (not namespace or obj.namespace == namespace) and selector.matches(obj.metadata.labels)
        ]

    def subscribe(self, resource: APIResource, namespace: str, selector: LabelSelector) -> _Subscription:
        subscription = _Subscription(namespace, selector, asyncio.Queue())
        self._subscriptions.setdefault((resource.group, resource.name), []).append(subscription)
        return subscription

    def events_since(self, resource: APIResource, subscription: _Subscription,
                     resource_version: str) -> List[WatchEvent]:
        """
        Logged changes newer than ``resource_version`` that ``subscription``
        would have received.

        An empty ``resource_version`` means "from now on". A version older
        than the retained history yields a single ERROR event.
        """
        if not resource_version:
            return []
        since = int(resource_version)
        resource_id = (resource.group, resource.name)
        if since < self._compacted.get(resource_id, 0):
            return [WatchEvent(WatchEventType.ERROR, message=f"too old resource version: {since}")]
        return [
            WatchEvent(event.type, event.object.deep_copy())
            for version, event in self._history.get(resource_id, ())
            if version > since and subscription.wants(event.object)
        ]

    def unsubscribe(self, resource: APIResource, subscription: _Subscription) -> None:
        subscriptions = self._subscriptions.get((resource.group, resource.name), [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)

    def _prepare(self, obj: Union[ResourceObject, Dict[str, Any]]) -> Tuple[ResourceObject, Tuple[str, str], str]:
        if isinstance(obj, dict):
            obj = ResourceObject.from_dict(obj)
        else:
            obj = obj.deep_copy()
        resource = self.resolver.resolve(obj.api_version, obj.kind)
        if not resource.namespaced:
            obj.metadata.namespace = ""
        elif not obj.metadata.namespace:
            raise ConfigurationError(f"namespace required for {obj.kind} {obj.name}")
        return obj, (resource.group, resource.name), meta_namespace_key(obj)

    def _store(self, resource_id: Tuple[str, str], key: str, obj: ResourceObject,
               event_type: WatchEventType) -> ResourceObject:
        self._resource_version = next(self._versions)
        obj.metadata.resource_version = str(self._resource_version)
        self._objects[resource_id][key] = obj
        self._publish(resource_id, event_type, obj)
        logger.debug(f"{event_type.value} {obj} at resourceVersion {self._resource_version}")
        return obj.deep_copy()

    def _publish(self, resource_id: Tuple[str, str], event_type: WatchEventType, obj: ResourceObject) -> None:
        history = self._history.setdefault(resource_id, deque())
        if len(history) >= self.history_size:
            self._compacted[resource_id] = history.popleft()[0]
        history.append((self._resource_version, WatchEvent(event_type, obj.deep_copy())))

        for subscription in self._subscriptions.get(resource_id, []):
            if subscription.wants(obj):
                subscription.queue.put_nowait(WatchEvent(event_type, obj.deep_copy()))


class InMemoryResourceClient(ResourceClient):
    """Client for one resource (and namespace) of an :class:`InMemoryCluster`"""

    def __init__(self, cluster: InMemoryCluster, resource: APIResource, namespace: str = ""):
        self.cluster = cluster
        self.resource = resource
        self.namespace = namespace if resource.namespaced else ""
        self.list_calls = 0
        self.watch_calls = 0

    async def list(self, label_selector: str = "") -> ObjectList:
        self.list_calls += 1
        selector = LabelSelector.parse(label_selector)
        items = self.cluster.list_objects(self.resource, self.namespace, selector)
        return ObjectList(items=items, resource_version=self.cluster.resource_version)

    async def watch(self, label_selector: str = "", resource_version: str = "") -> AsyncIterator[WatchEvent]:
        self.watch_calls += 1
        selector = LabelSelector.parse(label_selector)
        subscription = self.cluster.subscribe(self.resource, self.namespace, selector)
        backlog = self.cluster.events_since(self.resource, subscription, resource_version)
        try:
            for event in backlog:
                yield event
            while True:
                event = await subscription.queue.get()
                if event is _CLOSED:
                    return
                yield event
        finally:
            self.cluster.unsubscribe(self.resource, subscription)
