"""Interfaces of the systems a rollout depends on.

Persistence of roles and releases, the repository checkout and image
builds live outside the rollout core; it talks to them only through these
protocols.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .models import Build, DeployGroup, DeployGroupRole, Role
    from .release import Release


class BuildFinder(Protocol):
    def ensure_successful_builds(self, selectors: Sequence[str]) -> list[Build]:
        """Return one successful build per selector.

        Raises:
            UserError: If a build cannot be found or failed
        """
        ...

    def cancel(self) -> None:
        """Stop waiting for builds."""
        ...


class DeployGroupRoleRepository(Protocol):
    def for_project(
        self, project: str, deploy_groups: Sequence[DeployGroup]
    ) -> list[DeployGroupRole]:
        """Stored role wiring of the given deploy groups."""
        ...


class RoleConfigSource(Protocol):
    def roles_in_repo(self, project: str, commit: str) -> list[Role]:
        """Roles whose config file exists in the repository at ``commit``."""
        ...

    def role_config(self, role: Role, commit: str) -> list[dict[str, Any]] | None:
        """Parsed elements of the role's config file, None if unreadable."""
        ...


class ReleaseRepository(Protocol):
    def next_release_id(self) -> int: ...

    def save(self, release: Release) -> None:
        """Persist a release.

        Raises:
            ReleasePersistenceError: If the release could not be stored
        """
        ...

    def mark_successful(self, release: Release) -> None: ...

    def previous_successful_release(
        self, project: str, before_release_id: int
    ) -> Release | None:
        """Latest successful release of ``project`` older than ``before_release_id``."""
        ...
