"""Schema of a rollout plan file."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.rollout.models import (
    Build,
    Cluster,
    DeployGroup,
    DeployGroupRole,
    DeployJob,
    Role,
)


class ClusterEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int = Field(description="Cluster identifier referenced by deploy groups")
    name: str = Field(description="Display name")
    context: str | None = Field(default=None, description="kubeconfig context")
    kubeconfig: str | None = Field(default=None, description="kubeconfig path")


class DeployGroupEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    name: str
    cluster: int = Field(description="Id of the cluster this group deploys to")
    namespace: str = "default"


class RoleEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    name: str
    config_file: str = Field(description="Role config, relative to config_dir")
    autoscaled: bool = False
    prerequisite: bool = Field(
        default=False, description="Deploy before other roles even without the annotation"
    )


class DeployGroupRoleEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    deploy_group: int
    role: int
    replicas: int = Field(default=1, ge=0)
    requests_cpu: str | None = None
    requests_memory: str | None = None
    limits_cpu: str | None = None
    limits_memory: str | None = None


class BuildEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    image: str = Field(description="Image pinned by tag or digest")


class RolloutPlan(BaseModel):
    """Everything one rollout needs besides the role config files."""

    model_config = ConfigDict(extra="forbid")

    project: str
    commit: str
    reference: str = "main"
    job_id: int = 1
    user: str = ""
    rollback: bool = True
    blue_green: bool = False
    config_dir: Path = Field(
        default=Path("kubernetes"),
        description="Directory holding role config files at the deployed commit",
    )
    state_file: Path | None = Field(
        default=None, description="Where releases are recorded between rollouts"
    )
    clusters: list[ClusterEntry]
    deploy_groups: list[DeployGroupEntry]
    roles: list[RoleEntry] = Field(default_factory=list)
    deploy_group_roles: list[DeployGroupRoleEntry] = Field(default_factory=list)
    builds: list[BuildEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> RolloutPlan:
        for entries, label in (
            (self.clusters, "cluster"),
            (self.deploy_groups, "deploy group"),
            (self.roles, "role"),
        ):
            ids = [e.id for e in entries]
            if duplicates := sorted({i for i in ids if ids.count(i) > 1}):
                raise ValueError(f"Duplicate {label} ids: {duplicates}")

        cluster_ids = {c.id for c in self.clusters}
        for group in self.deploy_groups:
            if group.cluster not in cluster_ids:
                raise ValueError(
                    f"Deploy group {group.name} references unknown cluster {group.cluster}"
                )

        group_ids = {g.id for g in self.deploy_groups}
        role_ids = {r.id for r in self.roles}
        for entry in self.deploy_group_roles:
            if entry.deploy_group not in group_ids:
                raise ValueError(f"Unknown deploy group {entry.deploy_group}")
            if entry.role not in role_ids:
                raise ValueError(f"Unknown role {entry.role}")
        return self

    # =========================================================================
    # Conversion to rollout records
    # =========================================================================

    def cluster_records(self) -> dict[int, Cluster]:
        return {
            c.id: Cluster(id=c.id, name=c.name, context=c.context, kubeconfig=c.kubeconfig)
            for c in self.clusters
        }

    def deploy_group_records(self) -> dict[int, DeployGroup]:
        clusters = self.cluster_records()
        return {
            g.id: DeployGroup(
                id=g.id, name=g.name, cluster=clusters[g.cluster], namespace=g.namespace
            )
            for g in self.deploy_groups
        }

    def role_records(self) -> dict[int, Role]:
        return {
            r.id: Role(
                id=r.id,
                name=r.name,
                config_file=r.config_file,
                autoscaled=r.autoscaled,
                prerequisite=r.prerequisite,
            )
            for r in self.roles
        }

    def deploy_group_role_records(self) -> list[DeployGroupRole]:
        groups = self.deploy_group_records()
        roles = self.role_records()
        return [
            DeployGroupRole(
                deploy_group=groups[e.deploy_group],
                role=roles[e.role],
                replicas=e.replicas,
                requests_cpu=e.requests_cpu,
                requests_memory=e.requests_memory,
                limits_cpu=e.limits_cpu,
                limits_memory=e.limits_memory,
            )
            for e in self.deploy_group_roles
        ]

    def build_records(self) -> list[Build]:
        return [Build(id=b.id, image=b.image) for b in self.builds]

    def to_job(self) -> DeployJob:
        return DeployJob(
            id=self.job_id,
            project=self.project,
            commit=self.commit,
            user=self.user,
            deploy_groups=tuple(self.deploy_group_records().values()),
            rollback=self.rollback,
            blue_green=self.blue_green,
        )
