"""Rollout constants.

This module centralizes the label keys, annotations and status strings used
throughout the rollout process.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RolloutConstants:
    """Constants for rendering and supervising a rollout.

    All attributes are class-level and immutable.
    """

    # Labels stamped onto every rendered resource and pod template
    PROJECT_LABEL: str = "project"
    ROLE_LABEL: str = "role"
    ROLE_ID_LABEL: str = "role_id"
    DEPLOY_GROUP_LABEL: str = "deploy_group"
    DEPLOY_GROUP_ID_LABEL: str = "deploy_group_id"
    RELEASE_ID_LABEL: str = "release_id"
    BLUE_GREEN_LABEL: str = "blue_green"

    # Labels every role config has to provide itself
    REQUIRED_LABELS: tuple[str, ...] = ("project", "role")

    # Annotation marking a role as a prerequisite (jobs run before other roles)
    PREREQUISITE_ANNOTATION: str = "kube-rollout/prerequisite"

    # Kinds that own pods
    WORKLOAD_KINDS: tuple[str, ...] = (
        "Deployment",
        "StatefulSet",
        "DaemonSet",
        "Job",
        "Pod",
    )
    # Kinds that run to completion and may be prerequisites
    COMPLETING_KINDS: tuple[str, ...] = ("Job", "Pod")
    # Kind that routes traffic and is switched last in blue/green rollouts
    TRAFFIC_ENTRYPOINT_KIND: str = "Service"

    # Blue/green colors, in the order they alternate
    BLUE_GREEN_COLORS: tuple[str, ...] = ("blue", "green")

    # Status details
    MISSING: str = "Missing"
    RESTARTED: str = "Restarted"
    FAILED: str = "Failed"
    LIVE: str = "Live"
    ERROR: str = "Error"
    AUTOSCALED_NOTE: str = " (autoscaled role, only showing one pod)"

    # Event reasons that do not mean a pod is broken
    IGNORED_EVENT_REASONS: tuple[str, ...] = ("FailedScheduling",)
    # Unhealthy events that only mean the pod is not ready yet
    READINESS_PROBE_PREFIX: str = "Readiness probe failed"


DEFAULT_CONSTANTS = RolloutConstants()
