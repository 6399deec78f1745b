"""Tests for failure diagnostics."""

from unittest.mock import MagicMock

import pytest

from src.rollout.cluster_registry import ClusterRegistry
from src.rollout.diagnostics import FailureDiagnostics, summarize_events, truncate_lines
from src.rollout.models import DeployGroup, Role
from src.rollout.pods import PodSnapshot
from src.rollout.settings import RolloutSettings
from src.rollout.stability import ReleaseStatus
from tests.fixtures import (
    FakeCluster,
    RecordingOutput,
    deployment_manifest,
    make_doc,
    make_pod,
)


@pytest.fixture
def reporter() -> MagicMock:
    reporter = MagicMock()
    reporter.notify.return_value = "RuntimeError: boom (error id 123)"
    return reporter


@pytest.fixture
def diagnostics(
    output: RecordingOutput,
    registry: ClusterRegistry,
    reporter: MagicMock,
) -> FailureDiagnostics:
    return FailureDiagnostics(
        output=output,
        registry=registry,
        settings=RolloutSettings(log_lines=4),
        reporter=reporter,
    )


def status_for(pod: PodSnapshot, *, live: bool = False, role: str = "app-server") -> ReleaseStatus:
    return ReleaseStatus(live=live, details="Restarted", role=role, group="Pod1", pod=pod, stop=True)


class TestHelpers:
    def test_summarize_events_collapses_repeats(self) -> None:
        events = [
            {"reason": "BackOff", "message": "b\na", "count": 3},
            {"reason": "BackOff", "message": "a\nb", "count": 2},
            {"reason": "Pulled", "message": "image pulled"},
        ]

        assert summarize_events(events) == [
            "  BackOff: b\na x5",
            "  Pulled: image pulled",
        ]

    def test_truncate_keeps_head_and_tail(self) -> None:
        lines = [str(i) for i in range(10)]

        assert truncate_lines(lines, 4) == ["0", "1", "...", "8", "9"]
        assert truncate_lines(lines[:4], 4) == ["0", "1", "2", "3"]


class TestShowFailureCause:
    def test_prints_resource_events_pod_events_and_logs(
        self,
        diagnostics: FailureDiagnostics,
        registry: ClusterRegistry,
        deploy_group: DeployGroup,
        app_role: Role,
        fake_cluster: FakeCluster,
        output: RecordingOutput,
    ) -> None:
        doc = make_doc(registry, deploy_group, app_role, [deployment_manifest()])
        doc.deploy()
        fake_cluster.events["app-server"] = [
            {"reason": "ScalingReplicaSet", "message": "Scaled up", "count": 1}
        ]
        fake_cluster.events["app-1"] = [
            {"reason": "BackOff", "message": "Back-off restarting", "count": 4}
        ]
        fake_cluster.logs[("app-1", "app")] = "\n".join(f"line {i}" for i in range(10))
        pod = PodSnapshot(
            make_pod("app-1", role_id=100, deploy_group_id=10, namespace="shop", restarts=1),
            client=fake_cluster,  # type: ignore[arg-type]
        )

        diagnostics.show_failure_cause([doc], [status_for(pod)])

        assert output.lines[:2] == [
            "RESOURCE EVENTS shop.app-server:",
            "  ScalingReplicaSet: Scaled up",
        ]
        assert "Pod1 pod app-1:" in output.lines
        assert "  BackOff: Back-off restarting x4" in output.lines
        logs_at = output.lines.index("LOGS:")
        assert output.lines[logs_at + 1 : logs_at + 6] == [
            "  line 0",
            "  line 1",
            "  ...",
            "  line 8",
            "  line 9",
        ]
        # restarted pods show the log of the crashed container
        assert ("logs", ("app-1", "app", True)) in fake_cluster.calls
        # known uids narrow resource events to the deployed object
        assert any(
            call == "events" and "involvedObject.uid=" in str(arg)
            for call, arg in fake_cluster.calls
        )

    def test_one_pod_per_role_with_container_headers(
        self,
        diagnostics: FailureDiagnostics,
        fake_cluster: FakeCluster,
        output: RecordingOutput,
    ) -> None:
        pods = [
            PodSnapshot(
                make_pod(
                    name,
                    role_id=100,
                    deploy_group_id=10,
                    containers=("app",),
                    init_containers=("setup",),
                ),
                client=fake_cluster,  # type: ignore[arg-type]
            )
            for name in ("app-1", "app-2")
        ]

        diagnostics.show_failure_cause([], [status_for(p) for p in pods])

        assert "Pod1 pod app-1:" in output.lines
        assert "Pod1 pod app-2:" not in output.lines
        assert "Container app" in output.lines
        assert "Container setup" in output.lines
        assert output.lines.count("  No logs found") == 2

    def test_errors_are_reported_not_raised(
        self,
        diagnostics: FailureDiagnostics,
        registry: ClusterRegistry,
        deploy_group: DeployGroup,
        app_role: Role,
        fake_cluster: FakeCluster,
        reporter: MagicMock,
        output: RecordingOutput,
    ) -> None:
        doc = make_doc(registry, deploy_group, app_role, [deployment_manifest()])
        fake_cluster.list_events = MagicMock(side_effect=RuntimeError("boom"))  # type: ignore[method-assign]

        diagnostics.show_failure_cause([doc], [])

        reporter.notify.assert_called_once()
        assert output.lines == [
            "Error showing failure cause: RuntimeError: boom (error id 123)"
        ]
