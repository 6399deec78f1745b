"""Shared test doubles and factories for rollout tests."""

from __future__ import annotations

import copy
import itertools
from collections.abc import Callable
from typing import Any

import pytest

from src.infra.k8s import ResourceIdentity
from src.rollout.cancellation import CancellationToken
from src.rollout.cluster_registry import ClusterRegistry
from src.rollout.models import Cluster, DeployGroup, DeployGroupRole, Role
from src.rollout.release import ReleaseDoc
from src.rollout.resources import Resource
from src.rollout.settings import RolloutSettings

# =============================================================================
# Output and time
# =============================================================================


class RecordingOutput:
    """ConsoleLike sink that keeps every line."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def print(self, msg: Any = None) -> None:
        self.lines.append("" if msg is None else str(msg))

    def info(self, msg: str) -> None:
        self.lines.append(msg)

    def warn(self, msg: str) -> None:
        self.lines.append(msg)

    def error(self, msg: str) -> None:
        self.lines.append(msg)

    def ok(self, msg: str) -> None:
        self.lines.append(msg)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


class SimulatedClock:
    """Monotonic clock that only moves when the rollout sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self.on_sleep: Callable[[float], None] | None = None

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep(self.now)


# =============================================================================
# Fake cluster
# =============================================================================


def _matches(labels: dict[str, str], selector: str) -> bool:
    for term in filter(None, selector.split(",")):
        key, _, value = term.partition("=")
        if labels.get(key.strip()) != value.strip():
            return False
    return True


class FakeCluster:
    """In-memory stand-in for `ClusterControllerSync`.

    Objects are keyed by (kind, namespace, name). Pods, events and logs are
    set up by the test.
    """

    def __init__(self, name: str = "test") -> None:
        self.name = name
        self.objects: dict[tuple[str, str | None, str], dict[str, Any]] = {}
        self.pods: list[dict[str, Any]] = []
        self.events: dict[str, list[dict[str, Any]]] = {}
        self.logs: dict[tuple[str, str], str] = {}
        self.calls: list[tuple[str, Any]] = []
        self.pod_queries: list[tuple[str | None, str]] = []
        self.fail_apply: dict[str, Exception] = {}
        self._uids = itertools.count(1)

    @staticmethod
    def _key(identity: ResourceIdentity) -> tuple[str, str | None, str]:
        return (identity.kind, identity.namespace, identity.name)

    def add_object(self, manifest: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(manifest)
        stored.setdefault("metadata", {})["uid"] = f"uid-{next(self._uids)}"
        stored["metadata"]["resourceVersion"] = "1"
        self.objects[self._key(ResourceIdentity.from_manifest(stored))] = stored
        return copy.deepcopy(stored)

    def apply_resource(self, manifest: dict[str, Any]) -> dict[str, Any]:
        identity = ResourceIdentity.from_manifest(manifest)
        self.calls.append(("apply", (identity.kind, identity.name)))
        if error := self.fail_apply.get(identity.name):
            raise error
        existing = self.objects.get(self._key(identity))
        if existing is None:
            return self.add_object(manifest)
        updated = copy.deepcopy(manifest)
        updated.setdefault("metadata", {})["uid"] = existing["metadata"]["uid"]
        self.objects[self._key(identity)] = updated
        return copy.deepcopy(updated)

    def get_resource(self, identity: ResourceIdentity) -> dict[str, Any] | None:
        stored = self.objects.get(self._key(identity))
        return copy.deepcopy(stored) if stored is not None else None

    def delete_resource(self, identity: ResourceIdentity) -> bool:
        self.calls.append(("delete", (identity.kind, identity.name)))
        return self.objects.pop(self._key(identity), None) is not None

    def list_pods(self, namespace: str | None, label_selector: str) -> list[dict[str, Any]]:
        self.pod_queries.append((namespace, label_selector))
        return [
            copy.deepcopy(p)
            for p in self.pods
            if (namespace is None or p["metadata"].get("namespace") == namespace)
            and _matches(p["metadata"].get("labels") or {}, label_selector)
        ]

    def list_events(self, namespace: str | None, field_selector: str) -> list[dict[str, Any]]:
        self.calls.append(("events", field_selector))
        name = field_selector.split(",")[0].removeprefix("involvedObject.name=")
        return list(self.events.get(name, []))

    def get_pod_logs(
        self,
        namespace: str,
        pod: str,
        container: str,
        *,
        previous: bool = False,
        timeout: float = 20,
    ) -> str:
        self.calls.append(("logs", (pod, container, previous)))
        return self.logs.get((pod, container), "")

    def applied(self) -> list[tuple[str, str]]:
        return [args for call, args in self.calls if call == "apply"]

    def deleted(self) -> list[tuple[str, str]]:
        return [args for call, args in self.calls if call == "delete"]


# =============================================================================
# Factories
# =============================================================================


def make_pod(
    name: str,
    *,
    role_id: int,
    deploy_group_id: int,
    release_id: int = 1,
    namespace: str = "default",
    phase: str = "Running",
    ready: bool = True,
    restarts: int = 0,
    reason: str | None = None,
    containers: tuple[str, ...] = ("app",),
    init_containers: tuple[str, ...] = (),
) -> dict[str, Any]:
    state: dict[str, Any] = {"running": {}}
    if reason:
        state = {"waiting": {"reason": reason}}
    return {
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": f"pod-uid-{name}",
            "labels": {
                "release_id": str(release_id),
                "role_id": str(role_id),
                "deploy_group_id": str(deploy_group_id),
            },
        },
        "spec": {
            "containers": [{"name": c} for c in containers],
            "initContainers": [{"name": c} for c in init_containers],
        },
        "status": {
            "phase": phase,
            "conditions": [{"type": "Ready", "status": "True" if ready else "False"}],
            "containerStatuses": [
                {"name": containers[0], "restartCount": restarts, "state": state}
            ],
        },
    }


def deployment_manifest(
    name: str = "app-server",
    *,
    project: str = "shop",
    role: str = "app-server",
    image: str = "registry.example.com/shop",
) -> dict[str, Any]:
    labels = {"project": project, "role": role}
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "labels": dict(labels)},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": dict(labels)},
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": {"containers": [{"name": "app", "image": image}]},
            },
        },
    }


def service_manifest(
    name: str = "app-server", *, project: str = "shop", role: str = "app-server"
) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "labels": {"project": project, "role": role}},
        "spec": {
            "selector": {"project": project, "role": role},
            "ports": [{"port": 80}],
        },
    }


def job_manifest(
    name: str = "migrate",
    *,
    project: str = "shop",
    role: str = "migrate",
    image: str = "registry.example.com/shop",
    prerequisite: bool = True,
) -> dict[str, Any]:
    labels = {"project": project, "role": role}
    metadata: dict[str, Any] = {"name": name, "labels": dict(labels)}
    if prerequisite:
        metadata["annotations"] = {"kube-rollout/prerequisite": "true"}
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": metadata,
        "spec": {
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": {
                    "restartPolicy": "Never",
                    "containers": [{"name": "migrate", "image": image}],
                },
            },
        },
    }


def make_doc(
    registry: ClusterRegistry,
    deploy_group: DeployGroup,
    role: Role,
    manifests: list[dict[str, Any]] | None = None,
    *,
    release_id: int = 1,
    desired_pod_count: int = 1,
    prerequisite: bool = False,
    blue_green_color: str | None = None,
) -> ReleaseDoc:
    manifests = manifests if manifests is not None else []
    for manifest in manifests:
        manifest.setdefault("metadata", {})["namespace"] = deploy_group.namespace
    return ReleaseDoc(
        release_id=release_id,
        deploy_group=deploy_group,
        role=role,
        desired_pod_count=desired_pod_count,
        prerequisite=prerequisite,
        blue_green_color=blue_green_color,
        resources=[
            Resource(m, cluster=deploy_group.cluster, registry=registry) for m in manifests
        ],
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def output() -> RecordingOutput:
    return RecordingOutput()


@pytest.fixture
def clock() -> SimulatedClock:
    return SimulatedClock()


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def registry(fake_cluster: FakeCluster) -> ClusterRegistry:
    return ClusterRegistry(factory=lambda cluster: fake_cluster)  # type: ignore[arg-type,return-value]


@pytest.fixture
def cancellation() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def settings() -> RolloutSettings:
    return RolloutSettings()


@pytest.fixture
def cluster() -> Cluster:
    return Cluster(id=1, name="test-cluster")


@pytest.fixture
def deploy_group(cluster: Cluster) -> DeployGroup:
    return DeployGroup(id=10, name="Pod1", cluster=cluster, namespace="shop")


@pytest.fixture
def app_role() -> Role:
    return Role(id=100, name="app-server", config_file="kubernetes/app_server.yml")


@pytest.fixture
def app_deploy_group_role(deploy_group: DeployGroup, app_role: Role) -> DeployGroupRole:
    return DeployGroupRole(deploy_group=deploy_group, role=app_role, replicas=1)
