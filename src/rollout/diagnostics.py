"""Explains a failed rollout with cluster events and container logs."""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

from src.utils.console_like import ConsoleLike
from src.utils.parallel import parallel_map

from .cluster_registry import ClusterRegistry
from .pods import PodSnapshot
from .release import ReleaseDoc
from .reporting import ErrorReporter
from .resources import Resource
from .settings import RolloutSettings
from .stability import ReleaseStatus

SEPARATOR = "\n------------------------------------------\n"


def summarize_events(events: Sequence[dict[str, Any]]) -> list[str]:
    """Collapse repeated events into ``reason: message xN`` lines.

    Events are the same when reason and the set of message lines match.
    """
    groups: dict[tuple[Any, tuple[str, ...]], list[dict[str, Any]]] = {}
    for event in events:
        message = event.get("message") or ""
        key = (event.get("reason"), tuple(sorted(message.split("\n"))))
        groups.setdefault(key, []).append(event)

    lines = []
    for group in groups.values():
        count = sum(e.get("count") or 1 for e in group)
        counter = f" x{count}" if count != 1 else ""
        first = group[0]
        lines.append(f"  {first.get('reason')}: {first.get('message')}{counter}")
    return lines


def truncate_lines(lines: list[str], max_lines: int) -> list[str]:
    """Keep the first and last half of ``max_lines``."""
    if len(lines) <= max_lines:
        return lines
    half = max_lines // 2
    return lines[:half] + ["..."] + lines[-half:]


class FailureDiagnostics:
    """Prints resource events, pod events and logs of a failed batch.

    Never raises: anything going wrong while collecting diagnostics is
    reported and summarized in a single line.
    """

    def __init__(
        self,
        *,
        output: ConsoleLike,
        registry: ClusterRegistry,
        settings: RolloutSettings,
        reporter: ErrorReporter,
    ) -> None:
        self.output = output
        self.registry = registry
        self.settings = settings
        self.reporter = reporter

    def show_failure_cause(
        self,
        release_docs: Sequence[ReleaseDoc],
        statuses: Sequence[ReleaseStatus],
    ) -> None:
        try:
            self.print_resource_events(release_docs)
            log_end_time = time.monotonic() + self.settings.log_timeout
            for group, pod in self.debug_pods(statuses):
                self.output.print("")
                self.output.print(f"{group} pod {pod.name}:")
                self.print_pod_events(pod)
                self.output.print("")
                self.print_pod_logs(pod, log_end_time)
                self.output.print(SEPARATOR)
        except Exception as e:
            info = self.reporter.notify(e, phase="diagnostics")
            self.output.print(f"Error showing failure cause: {info}")

    @staticmethod
    def debug_pods(statuses: Sequence[ReleaseStatus]) -> list[tuple[str, PodSnapshot]]:
        """First observed pod that is not live, per role."""
        seen_roles: set[str] = set()
        pods = []
        for status in statuses:
            if status.live or status.pod is None or status.role in seen_roles:
                continue
            seen_roles.add(status.role)
            pods.append((status.group, status.pod))
        return pods

    # =========================================================================
    # Events
    # =========================================================================

    def print_resource_events(self, release_docs: Sequence[ReleaseDoc]) -> None:
        resources = [r for doc in release_docs for r in doc.resources]
        self.registry.warm(doc.deploy_group.cluster for doc in release_docs)
        all_events = parallel_map(
            resources, self._resource_events, concurrency=self.settings.concurrency
        )
        for resource, events in zip(resources, all_events, strict=True):
            if not events:
                continue
            self.output.print(f"RESOURCE EVENTS {resource.namespace}.{resource.name}:")
            self._print_events(events)

    @staticmethod
    def _resource_events(resource: Resource) -> list[dict[str, Any]]:
        # without a uid the events of the old and the new object are shown
        selector = f"involvedObject.name={resource.name}"
        if resource.uid:
            selector += f",involvedObject.uid={resource.uid}"
        return resource.client.list_events(resource.namespace, selector)

    def print_pod_events(self, pod: PodSnapshot) -> None:
        self.output.print("POD EVENTS:")
        self._print_events(pod.events)

    def _print_events(self, events: Sequence[dict[str, Any]]) -> None:
        for line in summarize_events(events):
            self.output.print(line)

    # =========================================================================
    # Logs
    # =========================================================================

    def print_pod_logs(self, pod: PodSnapshot, end_time: float) -> None:
        self.output.print("LOGS:")
        names = [c["name"] for c in pod.containers + pod.init_containers]
        for name in names:
            if len(names) > 1:
                self.output.print(f"Container {name}")
            log = pod.logs(name, end_time) or "No logs found"
            for line in truncate_lines(log.split("\n"), self.settings.log_lines):
                self.output.print(f"  {line}")
