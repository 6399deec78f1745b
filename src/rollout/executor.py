"""End to end execution of a Kubernetes rollout.

Validates role configs against a temporary release, waits for builds,
creates the release and then deploys and watches prerequisite roles before
all other roles. Unstable batches are diagnosed and rolled back.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from typing import Any

from loguru import logger

from src.utils.console_like import ConsoleLike

from .applier import ResourceApplier
from .blue_green import BlueGreenFinalizer
from .cancellation import CancellationToken
from .cluster_registry import ClusterRegistry
from .collaborators import (
    BuildFinder,
    DeployGroupRoleRepository,
    ReleaseRepository,
    RoleConfigSource,
)
from .constants import DEFAULT_CONSTANTS, RolloutConstants
from .diagnostics import FailureDiagnostics
from .models import DeployGroupRole, DeployJob
from .release import Release, ReleaseDoc
from .release_builder import ReleaseBuilder
from .reporting import ErrorReporter, LoguruErrorReporter
from .rollback import RollbackManager
from .settings import RolloutSettings
from .stability import RolloutState, StabilityMonitor
from .template_validator import TemplateValidator


class DeployExecutor:
    """Runs one rollout and reports progress to ``output``.

    Example:
        >>> executor = DeployExecutor(
        ...     console,
        ...     job=job,
        ...     reference="main",
        ...     build_finder=finder,
        ...     deploy_group_roles=plan_roles,
        ...     role_configs=configs,
        ...     releases=releases,
        ... )
        >>> executor.execute()
        True
    """

    def __init__(
        self,
        output: ConsoleLike,
        *,
        job: DeployJob,
        reference: str,
        build_finder: BuildFinder,
        deploy_group_roles: DeployGroupRoleRepository,
        role_configs: RoleConfigSource,
        releases: ReleaseRepository,
        settings: RolloutSettings | None = None,
        registry: ClusterRegistry | None = None,
        cancellation: CancellationToken | None = None,
        reporter: ErrorReporter | None = None,
        constants: RolloutConstants = DEFAULT_CONSTANTS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self.output = output
        self.job = job
        self.reference = reference
        self.build_finder = build_finder
        self.releases = releases
        self.settings = settings or RolloutSettings()
        self.registry = registry or ClusterRegistry()
        self.cancellation = cancellation or CancellationToken()
        self.reporter = reporter or LoguruErrorReporter()

        self.builder = ReleaseBuilder(
            output=output,
            registry=self.registry,
            deploy_group_roles=deploy_group_roles,
            role_configs=role_configs,
            releases=releases,
            constants=constants,
        )
        self.validator = TemplateValidator(constants)
        self.applier = ResourceApplier(
            output=output, registry=self.registry, settings=self.settings
        )
        self.monitor = StabilityMonitor(
            output=output,
            registry=self.registry,
            settings=self.settings,
            cancellation=self.cancellation,
            constants=constants,
            clock=clock,
            sleep=sleep,
        )
        self.diagnostics = FailureDiagnostics(
            output=output,
            registry=self.registry,
            settings=self.settings,
            reporter=self.reporter,
        )
        self.rollback_manager = RollbackManager(output=output, reporter=self.reporter)
        self.blue_green = BlueGreenFinalizer(output=output)

        self.release: Release | None = None
        self._grouped: list[list[DeployGroupRole]] | None = None
        self._temp_release_docs: list[ReleaseDoc] | None = None

    # Identifiers used by job supervisors to signal the rollout
    @property
    def pid(self) -> str:
        return f"kube-rollout-deploy-{id(self)}"

    @property
    def pgid(self) -> str:
        return self.pid

    def cancel(self, signal: Any = None) -> None:
        logger.info(f"Cancelling rollout {self.pid} (signal={signal})")
        self.build_finder.cancel()
        self.cancellation.cancel()

    # =========================================================================
    # Execution
    # =========================================================================

    def execute(self) -> bool:
        """Run the rollout.

        Returns:
            True when every batch became stable

        Raises:
            UserError: If role configs are invalid, builds are missing or
                the release cannot be stored
            ClusterError: If applying resources fails
        """
        self.verify_templates()
        builds = self.build_finder.ensure_successful_builds(self.build_selectors())
        if self._cancelled():
            return False

        self.release = self.builder.create_release(
            job=self.job,
            git_ref=self.reference,
            builds=builds,
            grouped=self.grouped_deploy_group_roles(),
        )

        prerequisites = [d for d in self.release.release_docs if d.prerequisite]
        deploys = [d for d in self.release.release_docs if not d.prerequisite]
        if prerequisites:
            if deploys:
                self.output.print("First deploying prerequisite ...")
            if not self.deploy_and_watch(prerequisites):
                return False
            if deploys:
                self.output.print("Now deploying other roles ...")
        if deploys and not self.deploy_and_watch(deploys):
            return False

        if blue_green := [d for d in self.release.release_docs if d.blue_green_color]:
            previous = self.releases.previous_successful_release(
                self.release.project, self.release.id
            )
            self.blue_green.finish(self.release, blue_green, previous)

        self.releases.mark_successful(self.release)
        logger.info(f"Release {self.release.id} of {self.job.project} succeeded")
        return True

    def deploy_and_watch(self, release_docs: Sequence[ReleaseDoc]) -> bool:
        self.applier.deploy(release_docs)
        result = self.monitor.wait(release_docs)

        if result.succeeded:
            return True

        if result.state is RolloutState.CANCELLED:
            return False

        self.diagnostics.show_failure_cause(release_docs, result.statuses)
        if self.job.rollback:
            self.rollback_manager.rollback(release_docs)
        self.output.print("DONE")
        return False

    def _cancelled(self) -> bool:
        if self.cancellation.cancelled:
            self.output.print("CANCELLED")
            return True
        return False

    # =========================================================================
    # Validation
    # =========================================================================

    def grouped_deploy_group_roles(self) -> list[list[DeployGroupRole]]:
        if self._grouped is None:
            self._grouped = self.builder.grouped_deploy_group_roles(self.job)
        return self._grouped

    def temp_release_docs(self) -> list[ReleaseDoc]:
        if self._temp_release_docs is None:
            self._temp_release_docs = self.builder.temp_release_docs(
                self.job, self.grouped_deploy_group_roles()
            )
        return self._temp_release_docs

    def build_selectors(self) -> list[str]:
        """Images to resolve; they vary by role, not by deploy group."""
        return self.builder.build_selectors(self.temp_release_docs())

    def verify_templates(self) -> None:
        """Validate everything before creating a release or waiting for builds.

        Raises:
            UserError: If a config file is missing or unparsable, or role
                configs are inconsistent
        """
        groups = {
            deploy_group.name: {
                dgr.role.name: self.builder.role_config(dgr, self.job.commit)
                for dgr in group_roles
            }
            for deploy_group, group_roles in zip(
                self.job.deploy_groups, self.grouped_deploy_group_roles(), strict=True
            )
        }
        self.validator.validate(groups)
        self.validator.validate_release_docs(self.temp_release_docs())
        logger.debug(f"Validated role configs of {len(groups)} deploy groups")
