"""Assembly of releases from role wiring, role configs and builds."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from loguru import logger

from src.utils.console_like import ConsoleLike

from .cluster_registry import ClusterRegistry
from .collaborators import DeployGroupRoleRepository, ReleaseRepository, RoleConfigSource
from .constants import DEFAULT_CONSTANTS, RolloutConstants
from .errors import ReleasePersistenceError, UserError
from .models import Build, DeployGroupRole, DeployJob
from .release import Release, ReleaseDoc
from .resources import Resource
from .templates import TemplateFiller, build_selectors, is_prerequisite

# release id used for documents that are only rendered for validation
TEMP_RELEASE_ID = 0


class ReleaseBuilder:
    """Builds the immutable unit of work of a rollout.

    Checks that the stored deploy group/role wiring matches the roles found in
    the repository, renders ReleaseDocs (temporary ones for validation and
    build selection, real ones once builds are known) and persists the
    Release.
    """

    def __init__(
        self,
        *,
        output: ConsoleLike,
        registry: ClusterRegistry,
        deploy_group_roles: DeployGroupRoleRepository,
        role_configs: RoleConfigSource,
        releases: ReleaseRepository,
        constants: RolloutConstants = DEFAULT_CONSTANTS,
    ) -> None:
        self.output = output
        self.registry = registry
        self.deploy_group_roles = deploy_group_roles
        self.role_configs = role_configs
        self.releases = releases
        self.constants = constants
        self._configs: dict[tuple[int, str], list[dict[str, Any]]] = {}

    # =========================================================================
    # Role wiring
    # =========================================================================

    def grouped_deploy_group_roles(self, job: DeployJob) -> list[list[DeployGroupRole]]:
        """Deploy group roles per deploy group of the job's stage.

        Raises:
            UserError: If a wired role has no config file at the commit, or a
                role in the repo is not wired to a deploy group
        """
        stored = self.deploy_group_roles.for_project(job.project, job.deploy_groups)
        in_repo = self.role_configs.roles_in_repo(job.project, job.commit)
        in_repo_ids = {role.id for role in in_repo}

        errors: list[str] = []
        groups: list[list[DeployGroupRole]] = []
        for deploy_group in job.deploy_groups:
            group_roles = [d for d in stored if d.deploy_group.id == deploy_group.id]
            wired_ids = {d.role.id for d in group_roles}

            if missing := sorted(
                d.role.config_file for d in group_roles if d.role.id not in in_repo_ids
            ):
                errors.append(
                    f"Could not find config files for {deploy_group.name} "
                    f"{', '.join(missing)} at {job.commit}"
                )

            if extra := [role.name for role in in_repo if role.id not in wired_ids]:
                errors.append(
                    f"Role {', '.join(extra)} for {deploy_group.name} is not configured, "
                    f"but in repo at {job.commit}. "
                    "Remove it from the repo or configure it via the stage page."
                )

            groups.append(group_roles)

        if errors:
            raise UserError("\n".join(errors))
        return groups

    def role_config(self, deploy_group_role: DeployGroupRole, commit: str) -> list[dict[str, Any]]:
        """Parsed role config, read once per role and commit.

        Raises:
            UserError: If the config file cannot be parsed
        """
        role = deploy_group_role.role
        key = (role.id, commit)
        if key not in self._configs:
            elements = self.role_configs.role_config(role, commit)
            if elements is None:
                raise UserError(f"Error parsing {role.config_file}")
            self._configs[key] = elements
        return self._configs[key]

    # =========================================================================
    # Release docs
    # =========================================================================

    def build_release_docs(
        self,
        *,
        release_id: int,
        grouped: Sequence[Sequence[DeployGroupRole]],
        commit: str,
        builds: Sequence[Build] = (),
        color: str | None = None,
    ) -> list[ReleaseDoc]:
        docs = []
        for deploy_group_role in (dgr for group in grouped for dgr in group):
            elements = self.role_config(deploy_group_role, commit)
            filler = TemplateFiller(
                release_id=release_id,
                deploy_group_role=deploy_group_role,
                builds=builds,
                color=color,
                constants=self.constants,
            )
            cluster = deploy_group_role.deploy_group.cluster
            docs.append(
                ReleaseDoc(
                    release_id=release_id,
                    deploy_group=deploy_group_role.deploy_group,
                    role=deploy_group_role.role,
                    desired_pod_count=deploy_group_role.replicas,
                    prerequisite=deploy_group_role.role.prerequisite
                    or is_prerequisite(elements, self.constants),
                    blue_green_color=color,
                    resources=[
                        Resource(manifest, cluster=cluster, registry=self.registry)
                        for manifest in filler.render(elements)
                    ],
                    build_selectors=build_selectors(elements),
                )
            )
        return docs

    def temp_release_docs(
        self, job: DeployJob, grouped: Sequence[Sequence[DeployGroupRole]]
    ) -> list[ReleaseDoc]:
        """Render docs without persisting anything, for validation."""
        return self.build_release_docs(
            release_id=TEMP_RELEASE_ID, grouped=grouped, commit=job.commit
        )

    @staticmethod
    def build_selectors(release_docs: Sequence[ReleaseDoc]) -> list[str]:
        """Build selectors of all docs, gathered once per role."""
        seen_roles: set[int] = set()
        selectors: list[str] = []
        for doc in release_docs:
            if doc.role.id in seen_roles:
                continue
            seen_roles.add(doc.role.id)
            selectors.extend(s for s in doc.build_selectors if s not in selectors)
        return selectors

    # =========================================================================
    # Release
    # =========================================================================

    def blue_green_color(self, job: DeployJob, release_id: int) -> str | None:
        """Color of the next release: the opposite of the last successful one."""
        if not job.blue_green:
            return None
        colors = self.constants.BLUE_GREEN_COLORS
        previous = self.releases.previous_successful_release(job.project, release_id)
        if previous is None or previous.blue_green_color not in colors:
            return colors[0]
        return colors[(colors.index(previous.blue_green_color) + 1) % len(colors)]

    def create_release(
        self,
        *,
        job: DeployJob,
        git_ref: str,
        builds: Sequence[Build],
        grouped: Sequence[Sequence[DeployGroupRole]],
    ) -> Release:
        """Render and persist the release of this rollout.

        Raises:
            UserError: If the release could not be stored
        """
        release_id = self.releases.next_release_id()
        color = self.blue_green_color(job, release_id)
        docs = self.build_release_docs(
            release_id=release_id,
            grouped=grouped,
            commit=job.commit,
            builds=builds,
            color=color,
        )
        release = Release(
            id=release_id,
            project=job.project,
            git_sha=job.commit,
            git_ref=git_ref,
            job_id=job.id,
            user=job.user,
            blue_green_color=color,
            release_docs=tuple(docs),
        )
        try:
            self.releases.save(release)
        except ReleasePersistenceError as e:
            raise UserError(f"Failed to create release: {e.message}") from e

        logger.info(f"Created release {release.id} with {len(docs)} release docs")
        self.output.print(f"Created kubernetes release {release.url}")
        return release
