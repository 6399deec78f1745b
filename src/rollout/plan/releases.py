"""Release repositories: in memory, and a YAML state file shared between runs."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from src.rollout.cluster_registry import ClusterRegistry
from src.rollout.errors import ReleasePersistenceError
from src.rollout.models import DeployGroup, Role
from src.rollout.release import Release, ReleaseDoc
from src.rollout.resources import Resource


class InMemoryReleaseRepository:
    def __init__(self) -> None:
        self._releases: dict[int, Release] = {}
        self._successful: set[int] = set()
        self._last_id = 0
        self._lock = threading.Lock()

    def next_release_id(self) -> int:
        with self._lock:
            self._last_id = max(self._last_id, *self._releases, 0) + 1
            return self._last_id

    def save(self, release: Release) -> None:
        with self._lock:
            if release.id in self._releases:
                raise ReleasePersistenceError(f"Release {release.id} already exists")
            self._releases[release.id] = release

    def mark_successful(self, release: Release) -> None:
        with self._lock:
            self._successful.add(release.id)

    def is_successful(self, release: Release) -> bool:
        return release.id in self._successful

    def get(self, release_id: int) -> Release | None:
        return self._releases.get(release_id)

    def previous_successful_release(
        self, project: str, before_release_id: int
    ) -> Release | None:
        candidates = [
            r
            for r in self._releases.values()
            if r.project == project
            and r.id < before_release_id
            and r.id in self._successful
        ]
        return max(candidates, key=lambda r: r.id, default=None)


class FileReleaseRepository(InMemoryReleaseRepository):
    """Keeps releases in a YAML file so later rollouts find the previous one.

    Rendered manifests are stored with each release so a later blue/green
    rollout can delete the resources of the previous color.
    """

    def __init__(
        self,
        path: Path,
        *,
        deploy_groups: Mapping[int, DeployGroup],
        roles: Mapping[int, Role],
        registry: ClusterRegistry,
    ) -> None:
        super().__init__()
        self.path = path
        self.deploy_groups = deploy_groups
        self.roles = roles
        self.registry = registry
        self._load()

    def save(self, release: Release) -> None:
        super().save(release)
        self._dump()

    def mark_successful(self, release: Release) -> None:
        super().mark_successful(release)
        self._dump()

    # =========================================================================
    # Serialization
    # =========================================================================

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = yaml.safe_load(self.path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ReleasePersistenceError(f"Cannot read release state {self.path}: {e}") from e

        for entry in data.get("releases") or []:
            release = self._release_from_entry(entry)
            self._releases[release.id] = release
            if entry.get("successful"):
                self._successful.add(release.id)
        self._last_id = max(self._releases, default=0)
        logger.debug(f"Loaded {len(self._releases)} releases from {self.path}")

    def _release_from_entry(self, entry: dict[str, Any]) -> Release:
        docs = []
        for doc in entry.get("release_docs") or []:
            group = self.deploy_groups.get(doc["deploy_group"])
            role = self.roles.get(doc["role"])
            if group is None or role is None:
                logger.warning(
                    f"Skipping release doc of release {entry['id']}: "
                    f"deploy group {doc['deploy_group']} or role {doc['role']} is gone"
                )
                continue
            docs.append(
                ReleaseDoc(
                    release_id=entry["id"],
                    deploy_group=group,
                    role=role,
                    desired_pod_count=doc.get("desired_pod_count", 0),
                    prerequisite=doc.get("prerequisite", False),
                    blue_green_color=entry.get("blue_green_color"),
                    resources=[
                        Resource(m, cluster=group.cluster, registry=self.registry)
                        for m in doc.get("resources") or []
                    ],
                )
            )
        return Release(
            id=entry["id"],
            project=entry["project"],
            git_sha=entry.get("git_sha", ""),
            git_ref=entry.get("git_ref", ""),
            job_id=entry.get("job_id"),
            user=entry.get("user", ""),
            blue_green_color=entry.get("blue_green_color"),
            release_docs=tuple(docs),
            created_at=datetime.fromisoformat(entry["created_at"]),
        )

    def _dump(self) -> None:
        releases = [
            {
                "id": r.id,
                "project": r.project,
                "git_sha": r.git_sha,
                "git_ref": r.git_ref,
                "job_id": r.job_id,
                "user": r.user,
                "blue_green_color": r.blue_green_color,
                "successful": r.id in self._successful,
                "created_at": r.created_at.isoformat(),
                "release_docs": [
                    {
                        "deploy_group": d.deploy_group.id,
                        "role": d.role.id,
                        "desired_pod_count": d.desired_pod_count,
                        "prerequisite": d.prerequisite,
                        "resources": [res.manifest for res in d.resources],
                    }
                    for d in r.release_docs
                ],
            }
            for r in sorted(self._releases.values(), key=lambda r: r.id)
        ]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(yaml.safe_dump({"releases": releases}, sort_keys=False))
        except OSError as e:
            raise ReleasePersistenceError(f"Cannot write release state {self.path}: {e}") from e
