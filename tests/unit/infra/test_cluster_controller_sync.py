"""Tests for the blocking cluster controller facade and its retry policy."""

import contextlib
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import kr8s
import pytest

from src.infra.k8s import (
    ClusterControllerSync,
    ClusterError,
    ClusterTransientError,
    Kr8sClusterController,
    ResourceIdentity,
    run_sync,
)


@pytest.fixture(autouse=True)
def no_retry_wait():
    """Skip tenacity's exponential back-off."""
    with patch("tenacity.nap.time.sleep"):
        yield


class TestResourceIdentity:
    def test_from_manifest(self) -> None:
        identity = ResourceIdentity.from_manifest(
            {
                "apiVersion": "apps/v1",
                "kind": "Deployment",
                "metadata": {"name": "web", "namespace": "shop", "uid": "u1"},
            }
        )

        assert identity == ResourceIdentity("apps/v1", "Deployment", "web", "shop", "u1")

    def test_as_manifest_addresses_object(self) -> None:
        identity = ResourceIdentity("v1", "Service", "web", "shop")

        assert identity.as_manifest() == {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": "web", "namespace": "shop"},
        }


class TestRunSync:
    def test_runs_coroutine_without_loop(self) -> None:
        async def answer() -> int:
            return 42

        assert run_sync(answer()) == 42


class TestClusterControllerSync:
    @pytest.fixture
    def controller(self) -> MagicMock:
        controller = MagicMock()
        controller.list_pods = AsyncMock(return_value=[{"metadata": {"name": "p"}}])
        controller.apply_resource = AsyncMock(return_value={"metadata": {"uid": "u"}})
        controller.get_resource = AsyncMock(return_value=None)
        controller.delete_resource = AsyncMock(return_value=True)
        controller.list_events = AsyncMock(return_value=[])
        controller.get_pod_logs = AsyncMock(return_value="log")
        return controller

    def test_delegates_calls(self, controller: MagicMock) -> None:
        client = ClusterControllerSync(controller, name="prod")

        assert client.list_pods("shop", "release_id=1") == [{"metadata": {"name": "p"}}]
        assert client.get_pod_logs("shop", "p", "app", previous=True) == "log"
        controller.list_pods.assert_awaited_once_with("shop", "release_id=1")
        controller.get_pod_logs.assert_awaited_once_with(
            "shop", "p", "app", previous=True, timeout=20
        )

    def test_retries_transient_errors(self, controller: MagicMock) -> None:
        controller.list_pods = AsyncMock(
            side_effect=[ClusterTransientError("reset"), ClusterTransientError("reset"), []]
        )
        client = ClusterControllerSync(controller)

        assert client.list_pods(None, "release_id=1") == []
        assert controller.list_pods.await_count == 3

    def test_gives_up_after_three_attempts(self, controller: MagicMock) -> None:
        controller.apply_resource = AsyncMock(side_effect=ClusterTransientError("down"))
        client = ClusterControllerSync(controller)

        with pytest.raises(ClusterTransientError):
            client.apply_resource({"kind": "Service"})
        assert controller.apply_resource.await_count == 3

    def test_does_not_retry_other_errors(self, controller: MagicMock) -> None:
        controller.delete_resource = AsyncMock(side_effect=ClusterError("forbidden"))
        client = ClusterControllerSync(controller)

        with pytest.raises(ClusterError, match="forbidden"):
            client.delete_resource(ResourceIdentity("v1", "Service", "web", "shop"))
        assert controller.delete_resource.await_count == 1


class TestKr8sClusterController:
    @pytest.fixture
    def kr8s_controller(self) -> Kr8sClusterController:
        return Kr8sClusterController(context="staging")

    def test_connection_errors_become_transient(
        self, kr8s_controller: Kr8sClusterController
    ) -> None:
        with patch(
            "kr8s.asyncio.api",
            AsyncMock(side_effect=httpx.ConnectError("refused")),
        ):
            with pytest.raises(ClusterTransientError, match="refused"):
                run_sync(kr8s_controller.list_pods("shop", "release_id=1"))

    def test_get_resource_returns_none_when_missing(
        self, kr8s_controller: Kr8sClusterController
    ) -> None:
        obj = MagicMock()
        obj.refresh = AsyncMock(side_effect=kr8s.NotFoundError("gone"))

        with (
            patch.object(kr8s_controller, "_get_api", AsyncMock()),
            patch(
                "src.infra.k8s.kr8s_controller.object_from_spec",
                AsyncMock(return_value=obj),
            ),
        ):
            result = run_sync(
                kr8s_controller.get_resource(ResourceIdentity("v1", "Service", "web", "shop"))
            )

        assert result is None

    def test_apply_creates_missing_object(
        self, kr8s_controller: Kr8sClusterController
    ) -> None:
        obj = MagicMock()
        obj.kind, obj.name = "Service", "web"
        obj.exists = AsyncMock(return_value=False)
        obj.create = AsyncMock()
        obj.raw = {"metadata": {"name": "web", "uid": "new-uid"}}
        manifest: dict[str, Any] = {"apiVersion": "v1", "kind": "Service", "metadata": {"name": "web"}}

        with (
            patch.object(kr8s_controller, "_get_api", AsyncMock()),
            patch(
                "src.infra.k8s.kr8s_controller.object_from_spec",
                AsyncMock(return_value=obj),
            ),
        ):
            result = run_sync(kr8s_controller.apply_resource(manifest))

        obj.create.assert_awaited_once()
        assert result["metadata"]["uid"] == "new-uid"

    def test_apply_replaces_existing_object(
        self, kr8s_controller: Kr8sClusterController
    ) -> None:
        requests: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
        stored = {"metadata": {"name": "web", "uid": "old-uid", "resourceVersion": "8"}}

        @contextlib.asynccontextmanager
        async def call_api(*args: Any, **kwargs: Any):
            requests.append((args, kwargs))
            yield MagicMock(json=MagicMock(return_value=stored))

        obj = MagicMock()
        obj.kind, obj.name, obj.namespace = "Service", "web", "shop"
        obj.version, obj.endpoint = "v1", "services"
        obj.exists = AsyncMock(return_value=True)
        obj.refresh = AsyncMock()
        obj.patch = AsyncMock()
        obj.raw = {"metadata": {"name": "web", "uid": "old-uid", "resourceVersion": "7"}}
        obj.api.call_api = call_api
        manifest: dict[str, Any] = {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": "web"},
            "spec": {"selector": {"role": "web"}},
        }

        with (
            patch.object(kr8s_controller, "_get_api", AsyncMock()),
            patch(
                "src.infra.k8s.kr8s_controller.object_from_spec",
                AsyncMock(return_value=obj),
            ),
        ):
            result = run_sync(kr8s_controller.apply_resource(manifest))

        obj.patch.assert_not_called()
        [(args, kwargs)] = requests
        assert args == ("PUT",)
        assert kwargs["url"] == "services/web"
        assert kwargs["namespace"] == "shop"
        body = json.loads(kwargs["data"])
        assert body["metadata"]["resourceVersion"] == "7"
        assert body["spec"] == {"selector": {"role": "web"}}
        assert "resourceVersion" not in manifest["metadata"]
        assert result["metadata"]["resourceVersion"] == "8"

    def test_missing_previous_logs_fall_back_to_current(
        self, kr8s_controller: Kr8sClusterController
    ) -> None:
        requested: list[bool] = []

        async def logs(container: str, previous: bool):
            requested.append(previous)
            if previous:
                raise kr8s.ServerError("previous terminated container not found")
            yield "current line"

        obj = MagicMock()
        obj.logs = logs

        with (
            patch.object(kr8s_controller, "_get_api", AsyncMock()),
            patch(
                "src.infra.k8s.kr8s_controller.Pod.get",
                AsyncMock(return_value=obj),
            ),
        ):
            result = run_sync(
                kr8s_controller.get_pod_logs("shop", "app-1", "app", previous=True)
            )

        assert result == "current line"
        assert requested == [True, False]
