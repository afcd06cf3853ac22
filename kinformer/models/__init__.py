"""
Core data models for kinformer

Pydantic models and enums for events, remote objects and configuration.
"""

from .events import EventType, ObjectKey, EventKey
from .objects import (
    ObjectMeta,
    ResourceObject,
    DeletedFinalStateUnknown,
    GroupVersionKind,
    APIResource,
)
from .config import RateLimiterConfig, InformerConfig, InformerSettings

__all__ = [
    # Events
    "EventType",
    "ObjectKey",
    "EventKey",

    # Objects
    "ObjectMeta",
    "ResourceObject",
    "DeletedFinalStateUnknown",
    "GroupVersionKind",
    "APIResource",

    # Configuration
    "RateLimiterConfig",
    "InformerConfig",
    "InformerSettings",
]
