"""
Resource cache boundary.

Everything the informer needs from the remote store: key functions, label
selectors, list/watch sources, the default list/watch cache, kind resolution
and an in-memory store for tests and local replay.
"""

from .keys import meta_namespace_key, deletion_handling_key, split_meta_namespace_key
from .selectors import LabelSelector
from .store import ResourceCache, ResourceEventHandler
from .listwatch import (
    ClientFactory,
    ListWatch,
    ObjectList,
    ResourceClient,
    WatchEvent,
    WatchEventType,
    list_watch_from_client,
)
from .informer_cache import ListWatchCache
from .resolver import ResourceResolver, StaticResourceResolver
from .memory import InMemoryCluster, InMemoryResourceClient

__all__ = [
    "meta_namespace_key",
    "deletion_handling_key",
    "split_meta_namespace_key",
    "LabelSelector",
    "ResourceCache",
    "ResourceEventHandler",
    "ClientFactory",
    "ListWatch",
    "ObjectList",
    "ResourceClient",
    "WatchEvent",
    "WatchEventType",
    "list_watch_from_client",
    "ListWatchCache",
    "ResourceResolver",
    "StaticResourceResolver",
    "InMemoryCluster",
    "InMemoryResourceClient",
]
