"""Releases and their per deploy group/role documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from .models import DeployGroup, Role
from .resources import Resource


@dataclass
class ReleaseDoc:
    """One (deploy group, role) pairing inside a Release.

    Attributes:
        release_id: Owning release
        deploy_group: Target deploy group
        role: Deployed role
        desired_pod_count: Pods the rollout waits for
        prerequisite: Deployed and awaited before the other roles
        blue_green_color: Color of a blue/green rollout, None otherwise
        resources: Rendered resources, in apply order
        build_selectors: Image repositories filled in from builds
    """

    release_id: int
    deploy_group: DeployGroup
    role: Role
    desired_pod_count: int
    prerequisite: bool = False
    blue_green_color: str | None = None
    resources: list[Resource] = field(default_factory=list)
    build_selectors: list[str] = field(default_factory=list)

    @property
    def autoscaled(self) -> bool:
        return self.role.autoscaled

    @property
    def previous_resources(self) -> list[Resource]:
        """Resources that existed before this doc was deployed."""
        return [r for r in self.resources if r.previous]

    @property
    def service_resources(self) -> list[Resource]:
        return [r for r in self.resources if r.is_traffic_entrypoint]

    @property
    def non_service_resources(self) -> list[Resource]:
        return [r for r in self.resources if not r.is_traffic_entrypoint]

    def deploy(self) -> None:
        for resource in self.resources:
            resource.deploy()

    def revert(self) -> None:
        for resource in reversed(self.resources):
            resource.revert()

    def describe(self) -> str:
        return f"{self.deploy_group.name} role {self.role.name}"


@dataclass(frozen=True)
class Release:
    """Immutable record of one rollout attempt."""

    id: int
    project: str
    git_sha: str
    git_ref: str
    job_id: int | None = None
    user: str = ""
    blue_green_color: str | None = None
    release_docs: tuple[ReleaseDoc, ...] = ()
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def url(self) -> str:
        return f"{self.project}/releases/{self.id}"


def describe_action(action: str, release_doc: ReleaseDoc) -> str:
    """``Deploying BLUE resources for pod1 role app-server`` style progress line."""
    color = release_doc.blue_green_color
    blue_green = f" {color.upper()} resources for" if color else ""
    return f"{action}{blue_green} {release_doc.describe()}"
