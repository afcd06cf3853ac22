"""
List/watch sources for resource caches.

A :class:`ResourceClient` talks to one resource collection (optionally scoped
to a namespace); :class:`ListWatch` binds it to a label selector.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from ..models.objects import APIResource, ResourceObject


class WatchEventType(Enum):
    """Change types reported by a watch stream"""
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"


@dataclass
class WatchEvent:
    """One entry of a watch stream"""
    type: WatchEventType
    object: Optional[ResourceObject] = None
    message: str = ""


@dataclass
class ObjectList:
    """Result of a list call"""
    items: List[ResourceObject] = field(default_factory=list)
    resource_version: str = ""


class ResourceClient(ABC):
    """Client for one resource collection"""

    @abstractmethod
    async def list(self, label_selector: str = "") -> ObjectList:
        """List all matching objects"""
        pass

    @abstractmethod
    def watch(
        self,
        label_selector: str = "",
        resource_version: str = ""
    ) -> AsyncIterator[WatchEvent]:
        """Stream changes that happened after ``resource_version``"""
        pass


ClientFactory = Callable[[APIResource, str], ResourceClient]


class ListWatch:
    """List and watch functions for one selector"""

    def __init__(
        self,
        list_fn: Callable[[], Awaitable[ObjectList]],
        watch_fn: Callable[[str], AsyncIterator[WatchEvent]]
    ):
        self.list_fn = list_fn
        self.watch_fn = watch_fn

    async def list(self) -> ObjectList:
        return await self.list_fn()

    def watch(self, resource_version: str = "") -> AsyncIterator[WatchEvent]:
        return self.watch_fn(resource_version)


def list_watch_from_client(client: ResourceClient, label_selector: str = "") -> ListWatch:
    """Bind a client to a label selector applied to every list and watch call"""

    async def list_fn() -> ObjectList:
        return await client.list(label_selector=label_selector)

    def watch_fn(resource_version: str) -> AsyncIterator[WatchEvent]:
        return client.watch(label_selector=label_selector, resource_version=resource_version)

    return ListWatch(list_fn, watch_fn)
