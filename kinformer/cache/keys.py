"""
Object key functions.

Keys are ``<namespace>/<name>`` for namespaced objects and ``<name>`` for
cluster-scoped ones. A rename is a different key.
"""

from typing import Any, Tuple

from ..errors import KeyExtractionError
from ..models.objects import DeletedFinalStateUnknown, ResourceObject


def meta_namespace_key(obj: Any) -> str:
    """
    Derive the cache key of an object.

    Raises:
        KeyExtractionError: If the object carries no usable metadata
    """
    if isinstance(obj, str):
        return obj
    if not isinstance(obj, ResourceObject):
        raise KeyExtractionError(f"object has no meta: {type(obj).__name__}")
    if not obj.metadata.name:
        raise KeyExtractionError(f"object has no name: {obj.kind or 'unknown kind'}")
    if obj.metadata.namespace:
        return f"{obj.metadata.namespace}/{obj.metadata.name}"
    return obj.metadata.name


def deletion_handling_key(obj: Any) -> str:
    """Like :func:`meta_namespace_key` but also accepts delete tombstones"""
    if isinstance(obj, DeletedFinalStateUnknown):
        return obj.key
    return meta_namespace_key(obj)


def split_meta_namespace_key(key: str) -> Tuple[str, str]:
    """
    Split a key back into ``(namespace, name)``.

    Raises:
        KeyExtractionError: If the key has more than one ``/``
    """
    parts = key.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise KeyExtractionError(f"unexpected key format: {key!r}")
