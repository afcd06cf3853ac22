"""
Remote object models.

Typed handles for objects mirrored from the control-plane store, plus the
group/version/kind and resource descriptors used during watch registration.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ObjectMeta(BaseModel):
    """Standard object metadata (the subset the informer relies on)"""
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True
    )

    name: str = ""
    namespace: str = ""
    uid: Optional[str] = None
    resource_version: Optional[str] = Field(default=None, alias="resourceVersion")
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)


class ResourceObject(BaseModel):
    """
    Typed handle for one remote object of any kind.

    Only ``apiVersion``, ``kind`` and ``metadata`` are modelled; everything else
    (``spec``, ``status``, ``data``...) is kept as free-form extra fields so the
    object round-trips unchanged through the cache.
    """
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True
    )

    api_version: str = Field(default="", alias="apiVersion")
    kind: str = ""
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResourceObject':
        """Build a typed handle from a decoded API payload"""
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to the API payload shape"""
        return self.model_dump(by_alias=True, exclude_none=True)

    def deep_copy(self) -> 'ResourceObject':
        """Independent copy; mutating it never affects the cached original"""
        return self.model_copy(deep=True)

    def get(self, field: str, default: Any = None) -> Any:
        """Read a free-form top-level field such as ``spec`` or ``data``"""
        return (self.model_extra or {}).get(field, default)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def resource_version(self) -> Optional[str]:
        return self.metadata.resource_version

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind} {self.namespace}/{self.name}"
        return f"{self.kind} {self.name}"


@dataclass(frozen=True)
class DeletedFinalStateUnknown:
    """
    Tombstone delivered by a cache that missed the actual delete.

    ``obj`` is the last state the cache held for ``key``.
    """
    key: str
    obj: ResourceObject


@dataclass(frozen=True)
class GroupVersionKind:
    """API group, version and kind of a watched resource"""
    group: str
    version: str
    kind: str

    @classmethod
    def parse(cls, api_version: str, kind: str) -> 'GroupVersionKind':
        """
        Split an apiVersion such as ``v1`` or ``apps/v1``.

        Raises:
            ValueError: If the apiVersion is empty or has more than one ``/``
        """
        if not api_version or not api_version.strip():
            raise ValueError("apiVersion must not be empty")
        parts = api_version.strip().split("/")
        if len(parts) == 1:
            group, version = "", parts[0]
        elif len(parts) == 2:
            group, version = parts
        else:
            raise ValueError(f"unexpected GroupVersion string: {api_version}")
        if not version:
            raise ValueError(f"missing version in apiVersion: {api_version}")
        if not kind:
            raise ValueError("kind must not be empty")
        return cls(group=group, version=version, kind=kind)

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.api_version}, Kind={self.kind}"


@dataclass(frozen=True)
class APIResource:
    """Result of resolving a kind: its plural name and scope"""
    name: str
    namespaced: bool
    kind: str
    group: str = ""
    version: str = "v1"
