"""Applies the resources of a batch of release docs to their clusters."""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from src.utils.console_like import ConsoleLike
from src.utils.parallel import parallel_map

from .cluster_registry import ClusterRegistry
from .release import ReleaseDoc, describe_action
from .resources import Resource
from .settings import RolloutSettings


class ResourceApplier:
    """Deploys release docs in parallel.

    Plain docs are deployed as a whole, in resource order. Blue/green docs
    are split into their non-Service resources; their Services are only
    switched once the new color is stable.
    """

    def __init__(
        self,
        *,
        output: ConsoleLike,
        registry: ClusterRegistry,
        settings: RolloutSettings,
    ) -> None:
        self.output = output
        self.registry = registry
        self.settings = settings

    def deploy(self, release_docs: Sequence[ReleaseDoc]) -> None:
        units: list[ReleaseDoc | Resource] = []
        for doc in release_docs:
            self.output.print(describe_action("Deploying", doc))
            if doc.blue_green_color:
                units.extend(doc.non_service_resources)
            else:
                units.append(doc)

        # resolve controllers before fanning out to worker threads
        self.registry.warm(doc.deploy_group.cluster for doc in release_docs)

        logger.info(f"Applying {len(units)} units across {len(release_docs)} release docs")
        parallel_map(units, _deploy_unit, concurrency=self.settings.concurrency)


def _deploy_unit(unit: ReleaseDoc | Resource) -> None:
    unit.deploy()
