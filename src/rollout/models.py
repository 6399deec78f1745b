"""Records the rollout core reads but does not own.

Clusters, deploy groups, roles and builds come from the caller (a plan file,
a database, ...) and are treated as immutable.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .templates import image_repository


@dataclass(frozen=True)
class Cluster:
    """A cluster API endpoint."""

    id: int
    name: str
    context: str | None = None
    kubeconfig: str | None = None


@dataclass(frozen=True)
class DeployGroup:
    """A named target (cluster + namespace) a stage deploys to."""

    id: int
    name: str
    cluster: Cluster
    namespace: str = "default"

    @property
    def permalink(self) -> str:
        return self.name.lower().replace(" ", "-")


@dataclass(frozen=True)
class Role:
    """A deployable component of a project, configured by one file in the repo."""

    id: int
    name: str
    config_file: str
    autoscaled: bool = False
    prerequisite: bool = False


@dataclass(frozen=True)
class DeployGroupRole:
    """Stored wiring of a role into a deploy group."""

    deploy_group: DeployGroup
    role: Role
    replicas: int = 1
    requests_cpu: str | None = None
    requests_memory: str | None = None
    limits_cpu: str | None = None
    limits_memory: str | None = None

    @property
    def resource_overrides(self) -> dict[str, dict[str, str]]:
        """Container resources set on the primary container, by section."""
        overrides: dict[str, dict[str, str]] = {}
        for section, cpu, memory in (
            ("requests", self.requests_cpu, self.requests_memory),
            ("limits", self.limits_cpu, self.limits_memory),
        ):
            values = {k: v for k, v in (("cpu", cpu), ("memory", memory)) if v}
            if values:
                overrides[section] = values
        return overrides


@dataclass(frozen=True)
class Build:
    """A successful image build.

    Attributes:
        id: Build identifier
        image: Full image reference, pinned by tag or digest
    """

    id: int
    image: str

    @property
    def repository(self) -> str:
        return image_repository(self.image)


@dataclass(frozen=True)
class DeployJob:
    """The job that triggered a rollout.

    Attributes:
        id: Job identifier
        project: Project name
        commit: Git sha being deployed
        user: Who started the deploy
        deploy_groups: Deploy groups of the stage being deployed
        rollback: Roll back when the rollout is unstable
        blue_green: Deploy into alternating colors and switch services last
    """

    id: int
    project: str
    commit: str
    user: str = ""
    deploy_groups: tuple[DeployGroup, ...] = field(default_factory=tuple)
    rollback: bool = True
    blue_green: bool = False
