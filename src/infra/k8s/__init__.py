"""Cluster API abstraction layer.

This module provides the boundary between the rollout core and the
Kubernetes API, implemented with the kr8s library.

Example:
    from src.infra.k8s import ClusterControllerSync, Kr8sClusterController

    client = ClusterControllerSync(Kr8sClusterController(context="staging"))
    pods = client.list_pods("my-namespace", "release_id=12")
"""

from .controller import ClusterController, ClusterControllerSync, ResourceIdentity
from .errors import ClusterError, ClusterTransientError
from .kr8s_controller import Kr8sClusterController
from .retry import retry_on_connection_errors
from .utils import run_sync

__all__ = [
    # Controller classes
    "ClusterController",
    "ClusterControllerSync",
    "Kr8sClusterController",
    # Data classes
    "ResourceIdentity",
    # Errors
    "ClusterError",
    "ClusterTransientError",
    # Utilities
    "retry_on_connection_errors",
    "run_sync",
]
