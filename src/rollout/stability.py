"""Supervision of pods until a rollout is stable, unstable or out of time.

The monitor polls the pods of a batch of release docs every tick and moves
through these states:

    WAITING_FOR_CREATION -> WAITING_FOR_LIVE -> STABILITY_CHECK -> SUCCESS
                                    |                  |
                                    +-> UNSTABLE <-----+
                                    +-> TIMEOUT
    (any state) -> CANCELLED

Prerequisite batches succeed as soon as every pod completed and never enter
the stability check.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from src.utils.console_like import ConsoleLike

from .cancellation import CancellationToken
from .cluster_registry import ClusterRegistry
from .constants import DEFAULT_CONSTANTS, RolloutConstants
from .models import Cluster
from .pods import PodSnapshot
from .release import ReleaseDoc
from .settings import RolloutSettings


class RolloutState(Enum):
    WAITING_FOR_CREATION = "waiting_for_creation"
    WAITING_FOR_LIVE = "waiting_for_live"
    STABILITY_CHECK = "stability_check"
    SUCCESS = "success"
    UNSTABLE = "unstable"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ReleaseStatus:
    """Classification of one pod slot of a release doc during one tick.

    Attributes:
        live: Pod is running and ready (completed, for prerequisites)
        details: Human readable state, e.g. ``Waiting (Pending, ContainerCreating)``
        role: Role name
        group: Deploy group name
        pod: Observed pod, None when missing
        stop: Pod will not become live without intervention
    """

    live: bool
    details: str
    role: str
    group: str
    pod: PodSnapshot | None = None
    stop: bool = False

    @property
    def liveliness(self) -> int:
        """Sort key: live pods first, stopped pods last."""
        if self.live:
            return -1
        if self.stop:
            return 1
        return 0


@dataclass(frozen=True)
class RolloutResult:
    state: RolloutState
    statuses: tuple[ReleaseStatus, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.state is RolloutState.SUCCESS


class StabilityMonitor:
    """Watches the pods of a batch of release docs.

    Args:
        output: Sink for operator facing progress
        registry: Cluster controllers of the rollout
        settings: Tick, timeouts and status throttle
        cancellation: Checked every tick
        clock: Monotonic seconds, injectable for simulated time
        sleep: Waits one tick; defaults to waiting on the cancellation token
    """

    def __init__(
        self,
        *,
        output: ConsoleLike,
        registry: ClusterRegistry,
        settings: RolloutSettings,
        cancellation: CancellationToken,
        constants: RolloutConstants = DEFAULT_CONSTANTS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self.output = output
        self.registry = registry
        self.settings = settings
        self.cancellation = cancellation
        self.constants = constants
        self.clock = clock
        self.sleep = sleep if sleep is not None else cancellation.wait
        self.state = RolloutState.WAITING_FOR_CREATION
        self._wait_start: float | None = None
        self._stability_start: float | None = None
        self._last_status_output: float | None = None

    # =========================================================================
    # Main loop
    # =========================================================================

    def wait(self, release_docs: Sequence[ReleaseDoc]) -> RolloutResult:
        """Poll until the batch reaches a terminal state."""
        self.state = RolloutState.WAITING_FOR_CREATION
        self._wait_start = self.clock()
        self._stability_start = None
        self._last_status_output = None

        if sum(doc.desired_pod_count for doc in release_docs) == 0:
            self.output.print("No pods were created")
            return self._success(())

        self.output.print("Waiting for pods to be created")
        statuses: tuple[ReleaseStatus, ...] = ()

        while True:
            if self.cancellation.cancelled:
                return self._finish(RolloutState.CANCELLED, statuses, "CANCELLED")

            statuses = tuple(self.pod_statuses(release_docs))
            not_ready = [s for s in statuses if not s.live]

            if self.state is RolloutState.STABILITY_CHECK:
                if not_ready:
                    self.print_statuses(statuses)
                    return self._unstable("one or more pods are not live", statuses, not_ready)
                remaining = self.stable_time_remaining()
                self.output.print(f"Testing for stability: {remaining}s")
                if remaining == 0:
                    return self._success(statuses)
            else:
                self.print_statuses(statuses)
                if not_ready:
                    if stopped := [s for s in not_ready if s.stop]:
                        return self._unstable("one or more pods stopped", statuses, stopped)
                    if self.seconds_waiting() > self.settings.wait_for_live:
                        return self._finish(
                            RolloutState.TIMEOUT,
                            statuses,
                            "TIMEOUT, pods took too long to get live",
                        )
                    self._transition(
                        RolloutState.WAITING_FOR_LIVE
                        if any(s.pod for s in statuses)
                        else RolloutState.WAITING_FOR_CREATION
                    )
                elif all(s.pod is not None and s.pod.completed for s in statuses):
                    return self._success(statuses)
                else:
                    self.output.print("READY, starting stability test")
                    self._stability_start = self.clock()
                    self._transition(RolloutState.STABILITY_CHECK)

            self.sleep(self.settings.tick)

    def seconds_waiting(self) -> int:
        if self._wait_start is None:
            return 0
        return int(self.clock() - self._wait_start)

    def stable_time_remaining(self) -> int:
        if self._stability_start is None:
            return math.ceil(self.settings.stability_check_duration)
        end = self._stability_start + self.settings.stability_check_duration
        return max(math.ceil(end - self.clock()), 0)

    # =========================================================================
    # Pod classification
    # =========================================================================

    def fetch_pods(self, release_docs: Sequence[ReleaseDoc]) -> list[PodSnapshot]:
        """Fetch the pods of all docs with one list call per cluster."""
        queries: dict[int, tuple[Cluster, set[str], set[int]]] = {}
        for doc in release_docs:
            cluster = doc.deploy_group.cluster
            _, namespaces, release_ids = queries.setdefault(cluster.id, (cluster, set(), set()))
            namespaces.add(doc.deploy_group.namespace)
            release_ids.add(doc.release_id)

        label = self.constants.RELEASE_ID_LABEL
        pods: list[PodSnapshot] = []
        for cluster, namespaces, release_ids in queries.values():
            ids = sorted(release_ids)
            selector = (
                f"{label}={ids[0]}"
                if len(ids) == 1
                else f"{label} in ({','.join(str(i) for i in ids)})"
            )
            namespace = next(iter(namespaces)) if len(namespaces) == 1 else None
            client = self.registry.controller_for(cluster)
            pods.extend(
                PodSnapshot(data, client=client, constants=self.constants)
                for data in client.list_pods(namespace, selector)
            )
        return pods

    def pod_statuses(self, release_docs: Sequence[ReleaseDoc]) -> list[ReleaseStatus]:
        pods = self.fetch_pods(release_docs)
        return [s for doc in release_docs for s in self.release_statuses(pods, doc)]

    def release_statuses(
        self, pods: Sequence[PodSnapshot], release_doc: ReleaseDoc
    ) -> list[ReleaseStatus]:
        """One status per desired pod of the doc, a single one for autoscaled roles."""
        c = self.constants
        group = release_doc.deploy_group
        role = release_doc.role
        matching = [p for p in pods if p.role_id == role.id and p.deploy_group_id == group.id]

        statuses = []
        for index in range(release_doc.desired_pod_count):
            pod = matching[index] if index < len(matching) else None
            stop = False
            if pod is None:
                live, details = False, c.MISSING
            elif pod.restarted:
                live, stop, details = False, True, c.RESTARTED
            elif pod.failed:
                live, stop, details = False, True, c.FAILED
            elif pod.completed if release_doc.prerequisite else pod.live:
                live, details = True, c.LIVE
            elif pod.events_indicate_failure():
                live, stop, details = False, True, c.ERROR
            else:
                live, details = False, f"Waiting ({pod.phase}, {pod.reason})"

            if role.autoscaled:
                details += c.AUTOSCALED_NOTE
            statuses.append(
                ReleaseStatus(
                    live=live,
                    details=details,
                    role=role.name,
                    group=group.name,
                    pod=pod,
                    stop=stop,
                )
            )

        # pods of autoscaled roles come and go; one live pod is enough
        if role.autoscaled and statuses:
            statuses = sorted(statuses, key=lambda s: s.liveliness)[:1]
        return statuses

    # =========================================================================
    # Output
    # =========================================================================

    def print_statuses(self, statuses: Sequence[ReleaseStatus]) -> None:
        """Dump all statuses, at most once per status interval."""
        now = self.clock()
        if (
            self._last_status_output is not None
            and now - self._last_status_output < self.settings.status_interval
        ):
            return
        self._last_status_output = now

        self.output.print(f"Deploy status after {self.seconds_waiting()} seconds:")
        by_group: dict[str, list[ReleaseStatus]] = {}
        for status in statuses:
            by_group.setdefault(status.group, []).append(status)
        for group, group_statuses in by_group.items():
            for status in group_statuses:
                self.output.print(f"  {group} {status.role}: {status.details}")

    def _transition(self, state: RolloutState) -> None:
        if state is not self.state:
            logger.info(f"Rollout state {self.state.value} -> {state.value}")
            self.state = state

    def _finish(
        self,
        state: RolloutState,
        statuses: tuple[ReleaseStatus, ...],
        message: str,
    ) -> RolloutResult:
        self._transition(state)
        self.output.print(message)
        return RolloutResult(state, statuses)

    def _success(self, statuses: tuple[ReleaseStatus, ...]) -> RolloutResult:
        return self._finish(RolloutState.SUCCESS, statuses, "SUCCESS")

    def _unstable(
        self,
        reason: str,
        statuses: tuple[ReleaseStatus, ...],
        bad: Sequence[ReleaseStatus],
    ) -> RolloutResult:
        result = self._finish(RolloutState.UNSTABLE, statuses, f"UNSTABLE: {reason}")
        for status in bad:
            if status.pod is not None:
                self.output.print(f"  {status.group} pod {status.pod.name}: {status.details}")
        return result
