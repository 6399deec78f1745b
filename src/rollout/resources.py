"""Cluster objects belonging to a ReleaseDoc."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from loguru import logger

from src.infra.k8s import ClusterControllerSync, ResourceIdentity

from .constants import DEFAULT_CONSTANTS

if TYPE_CHECKING:
    from .cluster_registry import ClusterRegistry
    from .models import Cluster

# Fields the API server owns; stripped before re-applying a snapshot
_SERVER_METADATA = (
    "uid",
    "resourceVersion",
    "generation",
    "creationTimestamp",
    "managedFields",
    "selfLink",
)


def restorable(snapshot: dict[str, Any]) -> dict[str, Any]:
    """Turn a live object read from the cluster back into an applicable manifest."""
    manifest = copy.deepcopy(snapshot)
    manifest.pop("status", None)
    metadata = manifest.get("metadata") or {}
    for key in _SERVER_METADATA:
        metadata.pop(key, None)
    return manifest


class Resource:
    """A single manifest bound to a cluster and namespace.

    The manifest is never changed in memory. `deploy()` remembers what the
    cluster held before (the rollback snapshot) and the uid it assigned.
    """

    def __init__(
        self,
        manifest: dict[str, Any],
        *,
        cluster: Cluster,
        registry: ClusterRegistry,
    ) -> None:
        self._manifest = manifest
        self.cluster = cluster
        self._registry = registry
        self._uid: str | None = None
        self._previous: dict[str, Any] | None = None

    def __repr__(self) -> str:
        return f"<Resource {self.kind} {self.namespace}/{self.name}>"

    @property
    def manifest(self) -> dict[str, Any]:
        return self._manifest

    @property
    def kind(self) -> str:
        return str(self._manifest.get("kind", ""))

    @property
    def name(self) -> str:
        return str((self._manifest.get("metadata") or {}).get("name", ""))

    @property
    def namespace(self) -> str:
        return str((self._manifest.get("metadata") or {}).get("namespace", ""))

    @property
    def uid(self) -> str | None:
        return self._uid

    @property
    def previous(self) -> dict[str, Any] | None:
        """The object as it was in the cluster before `deploy()`, if any."""
        return self._previous

    @property
    def is_traffic_entrypoint(self) -> bool:
        return self.kind == DEFAULT_CONSTANTS.TRAFFIC_ENTRYPOINT_KIND

    @property
    def identity(self) -> ResourceIdentity:
        return ResourceIdentity.from_manifest(self._manifest)

    @property
    def client(self) -> ClusterControllerSync:
        return self._registry.controller_for(self.cluster)

    def deploy(self) -> None:
        self._previous = self.client.get_resource(self.identity)
        applied = self.client.apply_resource(self._manifest)
        self._uid = (applied.get("metadata") or {}).get("uid")
        logger.debug(f"Applied {self.kind} {self.namespace}/{self.name} uid={self._uid}")

    def delete(self) -> None:
        if not self.client.delete_resource(self.identity):
            logger.debug(f"{self.kind} {self.namespace}/{self.name} was already gone")

    def revert(self) -> None:
        """Restore the pre-deploy snapshot, or delete if there was none."""
        if self._previous:
            self.client.apply_resource(restorable(self._previous))
        else:
            self.delete()
