"""
kinformer - multi-resource informer with a single dispatch queue.

Watches several collections of a control-plane resource store and delivers
every change, including deletes with their last known state, to one handler
with deduplication and retry.
"""

__version__ = "1.0.0"

from .errors import (
    InformerError,
    ConfigurationError,
    SyncTimeoutError,
    StaleEventError,
    KeyExtractionError,
    HandlerError,
    TransientHandlerError,
    TerminalHandlerError,
)
from .models import EventType, EventKey, ObjectKey, ResourceObject, InformerConfig
from .sync import Informer, DispatchContext

__all__ = [
    "Informer",
    "DispatchContext",
    "EventType",
    "EventKey",
    "ObjectKey",
    "ResourceObject",
    "InformerConfig",
    "InformerError",
    "ConfigurationError",
    "SyncTimeoutError",
    "StaleEventError",
    "KeyExtractionError",
    "HandlerError",
    "TransientHandlerError",
    "TerminalHandlerError",
    "__version__",
]
