"""Kubernetes rollouts: validate, release, apply, watch, diagnose, roll back."""

from .cancellation import CancellationToken
from .cluster_registry import ClusterRegistry
from .constants import DEFAULT_CONSTANTS, RolloutConstants
from .errors import ReleasePersistenceError, RolloutError, UserError
from .executor import DeployExecutor
from .models import Build, Cluster, DeployGroup, DeployGroupRole, DeployJob, Role
from .release import Release, ReleaseDoc
from .settings import RolloutSettings
from .stability import ReleaseStatus, RolloutResult, RolloutState, StabilityMonitor

__all__ = [
    "Build",
    "CancellationToken",
    "Cluster",
    "ClusterRegistry",
    "DEFAULT_CONSTANTS",
    "DeployExecutor",
    "DeployGroup",
    "DeployGroupRole",
    "DeployJob",
    "Release",
    "ReleaseDoc",
    "ReleasePersistenceError",
    "ReleaseStatus",
    "Role",
    "RolloutConstants",
    "RolloutError",
    "RolloutResult",
    "RolloutSettings",
    "RolloutState",
    "StabilityMonitor",
    "UserError",
]
