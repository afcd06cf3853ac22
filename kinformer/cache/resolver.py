"""
Resource type resolution.

Translates an ``(apiVersion, kind)`` pair into the plural resource name and
scope needed to build list/watch calls.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Tuple

from ..errors import ConfigurationError
from ..models.objects import APIResource, GroupVersionKind

logger = logging.getLogger(__name__)


# (group, version, kind) -> (plural, namespaced)
BUILTIN_RESOURCES: Dict[Tuple[str, str, str], Tuple[str, bool]] = {
    ("", "v1", "Pod"): ("pods", True),
    ("", "v1", "Service"): ("services", True),
    ("", "v1", "ConfigMap"): ("configmaps", True),
    ("", "v1", "Secret"): ("secrets", True),
    ("", "v1", "ServiceAccount"): ("serviceaccounts", True),
    ("", "v1", "Endpoints"): ("endpoints", True),
    ("", "v1", "Event"): ("events", True),
    ("", "v1", "PersistentVolumeClaim"): ("persistentvolumeclaims", True),
    ("", "v1", "PersistentVolume"): ("persistentvolumes", False),
    ("", "v1", "Namespace"): ("namespaces", False),
    ("", "v1", "Node"): ("nodes", False),
    ("apps", "v1", "Deployment"): ("deployments", True),
    ("apps", "v1", "StatefulSet"): ("statefulsets", True),
    ("apps", "v1", "DaemonSet"): ("daemonsets", True),
    ("apps", "v1", "ReplicaSet"): ("replicasets", True),
    ("batch", "v1", "Job"): ("jobs", True),
    ("batch", "v1", "CronJob"): ("cronjobs", True),
    ("networking.k8s.io", "v1", "Ingress"): ("ingresses", True),
    ("rbac.authorization.k8s.io", "v1", "Role"): ("roles", True),
    ("rbac.authorization.k8s.io", "v1", "RoleBinding"): ("rolebindings", True),
    ("rbac.authorization.k8s.io", "v1", "ClusterRole"): ("clusterroles", False),
    ("rbac.authorization.k8s.io", "v1", "ClusterRoleBinding"): ("clusterrolebindings", False),
    ("apiextensions.k8s.io", "v1", "CustomResourceDefinition"): ("customresourcedefinitions", False),
}


class ResourceResolver(ABC):
    """Maps kinds to resources"""

    @abstractmethod
    def resolve(self, api_version: str, kind: str) -> APIResource:
        """
        Resolve a kind.

        Raises:
            ConfigurationError: If the apiVersion is malformed or the kind unknown
        """
        pass


class StaticResourceResolver(ResourceResolver):
    """Resolver backed by a fixed table, extensible with custom resources"""

    def __init__(self, include_builtins: bool = True):
        self._resources: Dict[Tuple[str, str, str], Tuple[str, bool]] = {}
        if include_builtins:
            self._resources.update(BUILTIN_RESOURCES)

    def register(self, api_version: str, kind: str, plural: str, namespaced: bool = True) -> APIResource:
        """Add (or replace) a resource mapping"""
        gvk = self._parse(api_version, kind)
        if not plural:
            raise ConfigurationError(f"plural name required for {gvk}")
        self._resources[(gvk.group, gvk.version, gvk.kind)] = (plural, namespaced)
        logger.debug(f"Registered resource {plural} for {gvk}")
        return APIResource(name=plural, namespaced=namespaced, kind=kind, group=gvk.group, version=gvk.version)

    def resolve(self, api_version: str, kind: str) -> APIResource:
        gvk = self._parse(api_version, kind)
        entry = self._resources.get((gvk.group, gvk.version, gvk.kind))
        if entry is None:
            raise ConfigurationError(f"failed to get the resource REST mapping for GroupVersionKind({gvk})")
        plural, namespaced = entry
        return APIResource(name=plural, namespaced=namespaced, kind=gvk.kind, group=gvk.group, version=gvk.version)

    def known_resources(self) -> List[APIResource]:
        return [
            APIResource(name=plural, namespaced=namespaced, kind=kind, group=group, version=version)
            for (group, version, kind), (plural, namespaced) in sorted(self._resources.items())
        ]

    @staticmethod
    def _parse(api_version: str, kind: str) -> GroupVersionKind:
        try:
            return GroupVersionKind.parse(api_version, kind)
        except ValueError as e:
            raise ConfigurationError(f"failed to parse apiVersion: {e}") from e
