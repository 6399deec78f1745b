"""Per-rollout cache of cluster controllers."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

from loguru import logger

from src.infra.k8s import ClusterControllerSync, Kr8sClusterController

from .models import Cluster

ControllerFactory = Callable[[Cluster], ClusterControllerSync]


def kr8s_controller_factory(cluster: Cluster) -> ClusterControllerSync:
    return ClusterControllerSync(
        Kr8sClusterController(context=cluster.context, kubeconfig=cluster.kubeconfig),
        name=cluster.name,
    )


class ClusterRegistry:
    """Owns the cluster controllers of one rollout.

    Built once per rollout and passed to everything that talks to a cluster.
    Call `warm()` before fanning out to worker threads so that every cluster
    is resolved exactly once.
    """

    def __init__(self, factory: ControllerFactory = kr8s_controller_factory) -> None:
        self._factory = factory
        self._controllers: dict[int, ClusterControllerSync] = {}
        self._lock = threading.Lock()

    def controller_for(self, cluster: Cluster) -> ClusterControllerSync:
        with self._lock:
            controller = self._controllers.get(cluster.id)
            if controller is None:
                logger.debug(f"Connecting to cluster {cluster.name}")
                controller = self._factory(cluster)
                self._controllers[cluster.id] = controller
            return controller

    def warm(self, clusters: Iterable[Cluster]) -> None:
        for cluster in clusters:
            self.controller_for(cluster)
