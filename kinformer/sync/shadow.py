"""
Deleted-object shadow map.

Keeps the last known state of objects whose delete is still pending, so the
handler can be given the full object after it has left the cache.
"""

import logging
import threading
from typing import Dict, Optional

from ..models.events import ObjectKey
from ..models.objects import ResourceObject

logger = logging.getLogger(__name__)


class DeletedObjectMap:
    """
    Lock-protected map of ``ObjectKey`` to a private copy of the deleted object.

    Written by every watch's delete callback and read/purged by the consumers.
    Only the most recent capture per key is kept.
    """

    def __init__(self):
        self._objects: Dict[ObjectKey, ResourceObject] = {}
        self._lock = threading.RLock()

    def capture(self, key: ObjectKey, obj: ResourceObject) -> None:
        """Store a deep copy of ``obj``, replacing any earlier capture"""
        copy = obj.deep_copy()
        with self._lock:
            replaced = key in self._objects
            self._objects[key] = copy
        if replaced:
            logger.debug(f"Replaced last known state of {key}")

    def get(self, key: ObjectKey) -> Optional[ResourceObject]:
        with self._lock:
            return self._objects.get(key)

    def purge(self, key: ObjectKey, delivered: Optional[ResourceObject] = None) -> bool:
        """
        Remove the capture for ``key``.

        When ``delivered`` is given, a newer capture (a later delete of the same
        key that arrived while ``delivered`` was being processed) is kept for the
        re-queued delete.

        Returns:
            True if a capture was removed
        """
        with self._lock:
            current = self._objects.get(key)
            if current is None:
                return False
            if delivered is not None and current is not delivered:
                logger.debug(f"Keeping newer last known state of {key}")
                return False
            del self._objects[key]
            return True

    def __contains__(self, key: ObjectKey) -> bool:
        with self._lock:
            return key in self._objects

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)
