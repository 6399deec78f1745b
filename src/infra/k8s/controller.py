"""Abstract cluster controller interface.

Defines the contract for the cluster operations a rollout needs, plus a
blocking wrapper for calling them from worker threads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from .retry import retry_on_connection_errors
from .utils import run_sync

# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class ResourceIdentity:
    """Identity of a single cluster object."""

    api_version: str
    kind: str
    name: str
    namespace: str | None = None
    uid: str | None = None

    @classmethod
    def from_manifest(cls, manifest: dict[str, Any]) -> ResourceIdentity:
        metadata = manifest.get("metadata") or {}
        return cls(
            api_version=manifest.get("apiVersion", ""),
            kind=manifest.get("kind", ""),
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace"),
            uid=metadata.get("uid"),
        )

    def as_manifest(self) -> dict[str, Any]:
        """Minimal manifest that addresses this object."""
        metadata: dict[str, Any] = {"name": self.name}
        if self.namespace:
            metadata["namespace"] = self.namespace
        return {"apiVersion": self.api_version, "kind": self.kind, "metadata": metadata}


# =============================================================================
# Abstract Controller
# =============================================================================


class ClusterController(ABC):
    """Abstract base class for cluster operations.

    All methods are async so the kr8s backend can use its native async API.
    Use `ClusterControllerSync` to call them from synchronous code.
    """

    @abstractmethod
    async def apply_resource(self, manifest: dict[str, Any]) -> dict[str, Any]:
        """Create the object, or replace it when it already exists.

        Args:
            manifest: Full object manifest

        Returns:
            The object as stored by the cluster (including ``metadata.uid``)
        """
        ...

    @abstractmethod
    async def get_resource(self, identity: ResourceIdentity) -> dict[str, Any] | None:
        """Read an object.

        Args:
            identity: Object to read

        Returns:
            The live object, or None if it does not exist
        """
        ...

    @abstractmethod
    async def delete_resource(self, identity: ResourceIdentity) -> bool:
        """Delete an object.

        Args:
            identity: Object to delete

        Returns:
            True if the object was deleted, False if it did not exist
        """
        ...

    @abstractmethod
    async def list_pods(
        self, namespace: str | None, label_selector: str
    ) -> list[dict[str, Any]]:
        """List pods matching a label selector.

        Args:
            namespace: Namespace to search, or None for all namespaces
            label_selector: Label selector (e.g. "release_id=12")

        Returns:
            Raw pod objects
        """
        ...

    @abstractmethod
    async def list_events(
        self, namespace: str | None, field_selector: str
    ) -> list[dict[str, Any]]:
        """List events matching a field selector.

        Args:
            namespace: Namespace to search
            field_selector: Field selector (e.g. "involvedObject.name=app")

        Returns:
            Raw event objects
        """
        ...

    @abstractmethod
    async def get_pod_logs(
        self,
        namespace: str,
        pod: str,
        container: str,
        *,
        previous: bool = False,
        timeout: float = 20,
    ) -> str:
        """Get the log of a single container.

        Args:
            namespace: Pod namespace
            pod: Pod name
            container: Container name
            previous: Read the log of the previous (restarted) container, or the
                current one when the container never restarted
            timeout: Seconds to wait for the log

        Returns:
            Log text, empty if there is none
        """
        ...


class ClusterControllerSync:
    """Blocking facade over a `ClusterController`.

    Every call runs on its own event loop via `run_sync`, so one instance can
    be shared between worker threads. Connection errors are retried before
    they surface.
    """

    def __init__(self, controller: ClusterController, name: str = "") -> None:
        self._controller = controller
        self.name = name

    @property
    def controller(self) -> ClusterController:
        return self._controller

    @retry_on_connection_errors
    def apply_resource(self, manifest: dict[str, Any]) -> dict[str, Any]:
        return run_sync(self._controller.apply_resource(manifest))

    @retry_on_connection_errors
    def get_resource(self, identity: ResourceIdentity) -> dict[str, Any] | None:
        return run_sync(self._controller.get_resource(identity))

    @retry_on_connection_errors
    def delete_resource(self, identity: ResourceIdentity) -> bool:
        return run_sync(self._controller.delete_resource(identity))

    @retry_on_connection_errors
    def list_pods(
        self, namespace: str | None, label_selector: str
    ) -> list[dict[str, Any]]:
        return run_sync(self._controller.list_pods(namespace, label_selector))

    @retry_on_connection_errors
    def list_events(
        self, namespace: str | None, field_selector: str
    ) -> list[dict[str, Any]]:
        return run_sync(self._controller.list_events(namespace, field_selector))

    @retry_on_connection_errors
    def get_pod_logs(
        self,
        namespace: str,
        pod: str,
        container: str,
        *,
        previous: bool = False,
        timeout: float = 20,
    ) -> str:
        return run_sync(
            self._controller.get_pod_logs(
                namespace, pod, container, previous=previous, timeout=timeout
            )
        )
