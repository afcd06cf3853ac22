"""
Event Models.

Defines the event kinds delivered to handlers and the hashable keys used to
identify objects and queued events across all registered watches.
"""

from dataclasses import dataclass
from enum import Enum


class EventType(Enum):
    """Kinds of change delivered to the informer handler"""
    ADD = "add"          # Object appeared in the cache
    UPDATE = "update"    # Object changed (or was resynced)
    DELETE = "delete"    # Object was removed from the cache

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ObjectKey:
    """
    Identity of one object across every registered watch.

    The watch index keeps textually identical keys from different watches
    apart, so ``ObjectKey(0, "ns/a") != ObjectKey(1, "ns/a")``.
    """
    watch_index: int
    key: str

    def __str__(self) -> str:
        return f"{self.watch_index}:{self.key}"


@dataclass(frozen=True)
class EventKey(ObjectKey):
    """
    Queue item for one (watch, key, event) triple.

    Equal triples are the same queue item; the queue keeps only the latest
    request per triple and never hands the same triple to two consumers.
    """
    event: EventType

    @property
    def object_key(self) -> ObjectKey:
        return ObjectKey(self.watch_index, self.key)

    def __str__(self) -> str:
        return f"{self.watch_index}:{self.key} ({self.event.value})"
