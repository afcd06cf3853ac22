"""
Builders for resource objects used across the test suite.
"""

from typing import Any, Dict, Optional

from kinformer.models.objects import ResourceObject


def make_object(
    name: str,
    namespace: str = "default",
    kind: str = "ConfigMap",
    api_version: str = "v1",
    labels: Optional[Dict[str, str]] = None,
    resource_version: Optional[str] = None,
    **fields: Any
) -> ResourceObject:
    """Build a ResourceObject the way the API would return it"""
    metadata: Dict[str, Any] = {"name": name, "labels": labels or {}}
    if namespace:
        metadata["namespace"] = namespace
    if resource_version is not None:
        metadata["resourceVersion"] = resource_version
    return ResourceObject.from_dict({
        "apiVersion": api_version,
        "kind": kind,
        "metadata": metadata,
        **fields,
    })
