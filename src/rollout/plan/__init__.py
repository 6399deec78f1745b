"""Rollouts described by a YAML plan file and a directory of role configs."""

from .loader import load_plan, substitute_env_vars
from .releases import FileReleaseRepository, InMemoryReleaseRepository
from .schema import RolloutPlan
from .sources import (
    DirectoryRoleConfigSource,
    PlanDeployGroupRoleRepository,
    StaticBuildFinder,
)

__all__ = [
    "DirectoryRoleConfigSource",
    "FileReleaseRepository",
    "InMemoryReleaseRepository",
    "PlanDeployGroupRoleRepository",
    "RolloutPlan",
    "StaticBuildFinder",
    "load_plan",
    "substitute_env_vars",
]
