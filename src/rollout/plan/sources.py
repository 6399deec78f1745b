"""Plan-file backed implementations of the rollout collaborators."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from src.rollout.errors import UserError
from src.rollout.models import Build, DeployGroup, DeployGroupRole, Role
from src.utils.console_like import ConsoleLike


class DirectoryRoleConfigSource:
    """Reads role config files from a checkout of the deployed commit."""

    def __init__(self, config_dir: Path, roles: Sequence[Role]) -> None:
        self.config_dir = config_dir
        self.roles = list(roles)

    def roles_in_repo(self, project: str, commit: str) -> list[Role]:
        return [r for r in self.roles if (self.config_dir / r.config_file).is_file()]

    def role_config(self, role: Role, commit: str) -> list[dict[str, Any]] | None:
        path = self.config_dir / role.config_file
        try:
            documents = list(yaml.safe_load_all(path.read_text()))
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Cannot read role config {path} at {commit}: {e}")
            return None
        return [d for d in documents if d is not None]


class PlanDeployGroupRoleRepository:
    def __init__(self, deploy_group_roles: Sequence[DeployGroupRole]) -> None:
        self.deploy_group_roles = list(deploy_group_roles)

    def for_project(
        self, project: str, deploy_groups: Sequence[DeployGroup]
    ) -> list[DeployGroupRole]:
        group_ids = {g.id for g in deploy_groups}
        return [d for d in self.deploy_group_roles if d.deploy_group.id in group_ids]


class StaticBuildFinder:
    """Resolves build selectors against builds listed in the plan."""

    def __init__(self, builds: Sequence[Build], output: ConsoleLike) -> None:
        self.builds = list(builds)
        self.output = output
        self.cancelled = False

    def ensure_successful_builds(self, selectors: Sequence[str]) -> list[Build]:
        """
        Raises:
            UserError: If a selector has no build
        """
        found: list[Build] = []
        missing: list[str] = []
        for selector in selectors:
            build = next((b for b in self.builds if b.repository == selector), None)
            if build is None:
                missing.append(selector)
            elif build not in found:
                self.output.print(f"Using build {build.id} ({build.image}) for {selector}")
                found.append(build)
        if missing:
            raise UserError(f"Could not find builds for {', '.join(missing)}")
        return found

    def cancel(self) -> None:
        self.cancelled = True
