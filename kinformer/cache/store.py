"""
Resource cache interfaces.

A resource cache keeps a key-indexed local mirror of one remote collection
and reports changes to registered event handlers.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from ..models.objects import ResourceObject


@dataclass
class ResourceEventHandler:
    """
    Notification callbacks attached to a resource cache.

    ``on_delete`` may receive a :class:`DeletedFinalStateUnknown` tombstone
    instead of the object when the cache missed the actual delete.
    """
    on_add: Optional[Callable[[ResourceObject], None]] = None
    on_update: Optional[Callable[[ResourceObject, ResourceObject], None]] = None
    on_delete: Optional[Callable[[Any], None]] = None


class ResourceCache(ABC):
    """Local mirror of one remote collection"""

    @abstractmethod
    async def run(self, stop_event: asyncio.Event) -> None:
        """Keep the mirror up to date until ``stop_event`` is set"""
        pass

    @abstractmethod
    def has_synced(self) -> bool:
        """True once the initial list has been loaded"""
        pass

    @abstractmethod
    def get_by_key(self, key: str) -> Tuple[Optional[ResourceObject], bool]:
        """
        Look up the current state of an object.

        Returns:
            ``(object, exists)``; ``object`` is None when it does not exist
        """
        pass

    @abstractmethod
    def add_event_handler(self, handler: ResourceEventHandler) -> None:
        """Attach notification callbacks"""
        pass

    @abstractmethod
    def list_keys(self) -> List[str]:
        """Keys of all objects currently mirrored"""
        pass
