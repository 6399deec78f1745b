"""Read-only view of a pod as reported by the cluster."""

from __future__ import annotations

import time
from functools import cached_property
from typing import Any

from src.infra.k8s import ClusterControllerSync

from .constants import DEFAULT_CONSTANTS, RolloutConstants


class PodSnapshot:
    """A pod observed during one poll tick.

    The rollout never owns pods; it only classifies them. Events are fetched
    lazily, at most once per snapshot.
    """

    def __init__(
        self,
        data: dict[str, Any],
        *,
        client: ClusterControllerSync,
        constants: RolloutConstants = DEFAULT_CONSTANTS,
    ) -> None:
        self._data = data
        self._client = client
        self._constants = constants

    def __repr__(self) -> str:
        return f"<PodSnapshot {self.namespace}/{self.name} {self.phase}>"

    # =========================================================================
    # Identity
    # =========================================================================

    @property
    def metadata(self) -> dict[str, Any]:
        return self._data.get("metadata") or {}

    @property
    def name(self) -> str:
        return str(self.metadata.get("name", ""))

    @property
    def namespace(self) -> str:
        return str(self.metadata.get("namespace", ""))

    @property
    def uid(self) -> str | None:
        return self.metadata.get("uid")

    @property
    def labels(self) -> dict[str, str]:
        return dict(self.metadata.get("labels") or {})

    def _int_label(self, key: str) -> int | None:
        value = self.labels.get(key)
        try:
            return int(value) if value is not None else None
        except ValueError:
            return None

    @property
    def role_id(self) -> int | None:
        return self._int_label(self._constants.ROLE_ID_LABEL)

    @property
    def deploy_group_id(self) -> int | None:
        return self._int_label(self._constants.DEPLOY_GROUP_ID_LABEL)

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def status(self) -> dict[str, Any]:
        return self._data.get("status") or {}

    @property
    def phase(self) -> str:
        return str(self.status.get("phase", "Unknown"))

    def _container_statuses(self) -> list[dict[str, Any]]:
        return list(self.status.get("containerStatuses") or []) + list(
            self.status.get("initContainerStatuses") or []
        )

    @property
    def restart_count(self) -> int:
        return sum(cs.get("restartCount", 0) for cs in self._container_statuses())

    @property
    def restarted(self) -> bool:
        return self.restart_count > 0

    @property
    def failed(self) -> bool:
        return self.phase == "Failed"

    @property
    def completed(self) -> bool:
        return self.phase == "Succeeded"

    @property
    def ready(self) -> bool:
        for condition in self.status.get("conditions") or []:
            if condition.get("type") == "Ready":
                return condition.get("status") == "True"
        return False

    @property
    def live(self) -> bool:
        return self.phase == "Running" and self.ready

    @property
    def reason(self) -> str | None:
        """Why the pod is not running, from container states or the pod itself."""
        for cs in self._container_statuses():
            state = cs.get("state") or {}
            for key in ("waiting", "terminated"):
                if reason := (state.get(key) or {}).get("reason"):
                    return str(reason)
        reason = self.status.get("reason")
        return str(reason) if reason else None

    @property
    def containers(self) -> list[dict[str, Any]]:
        return list((self._data.get("spec") or {}).get("containers") or [])

    @property
    def init_containers(self) -> list[dict[str, Any]]:
        return list((self._data.get("spec") or {}).get("initContainers") or [])

    # =========================================================================
    # Cluster lookups
    # =========================================================================

    @cached_property
    def events(self) -> list[dict[str, Any]]:
        selector = f"involvedObject.name={self.name}"
        if self.uid:
            selector += f",involvedObject.uid={self.uid}"
        return self._client.list_events(self.namespace, selector)

    def events_indicate_failure(self) -> bool:
        c = self._constants
        for event in self.events:
            if event.get("type", "Normal") == "Normal":
                continue
            if event.get("reason") in c.IGNORED_EVENT_REASONS:
                continue
            message = event.get("message") or ""
            if event.get("reason") == "Unhealthy" and message.startswith(
                c.READINESS_PROBE_PREFIX
            ):
                continue
            return True
        return False

    def logs(self, container: str, end_time: float) -> str:
        """Fetch a container log, giving up at ``end_time`` (a ``time.monotonic()`` value).

        Restarted pods show the log of the crashed container.
        """
        timeout = max(end_time - time.monotonic(), 1.0)
        return self._client.get_pod_logs(
            self.namespace,
            self.name,
            container,
            previous=self.restarted,
            timeout=timeout,
        )
