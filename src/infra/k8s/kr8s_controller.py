"""Kr8s-based implementation of ClusterController.

Uses the kr8s library for native async cluster operations.
"""

from __future__ import annotations

import asyncio
import copy
import functools
import json
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

import httpx
import kr8s
from kr8s.asyncio.objects import Pod, object_from_spec
from loguru import logger

from .controller import ClusterController, ResourceIdentity
from .errors import ClusterError, ClusterTransientError

P = ParamSpec("P")
T = TypeVar("T")


def _translate_errors(
    func: Callable[P, Awaitable[T]],
) -> Callable[P, Awaitable[T]]:
    """Map kr8s/httpx failures onto the cluster error hierarchy."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await func(*args, **kwargs)
        except ClusterError:
            raise
        except (httpx.TransportError, ConnectionError) as e:
            raise ClusterTransientError(f"Cluster connection failed: {e}") from e
        except kr8s.ServerError as e:
            raise ClusterError(str(e)) from e

    return wrapper


class Kr8sClusterController(ClusterController):
    """Cluster controller using the kr8s library.

    Note: The kr8s API client is NOT cached because it is tied to the event
    loop that was running when it was created, and `run_sync()` creates a
    fresh loop per call.
    """

    def __init__(
        self, *, context: str | None = None, kubeconfig: str | None = None
    ) -> None:
        """Initialize the kr8s controller.

        Args:
            context: kubeconfig context to use (default: current context)
            kubeconfig: Path to a kubeconfig file (default: kr8s discovery)
        """
        self.context = context
        self.kubeconfig = kubeconfig

    async def _get_api(self) -> Any:  # Returns kr8s.asyncio.Api
        return await kr8s.asyncio.api(context=self.context, kubeconfig=self.kubeconfig)

    async def _object(self, manifest: dict[str, Any]) -> Any:
        api = await self._get_api()
        return await object_from_spec(manifest, api=api, allow_unknown_type=True)

    # =========================================================================
    # Resource Operations
    # =========================================================================

    @_translate_errors
    async def apply_resource(self, manifest: dict[str, Any]) -> dict[str, Any]:
        obj = await self._object(manifest)
        if not await obj.exists():
            logger.debug(f"Creating {obj.kind}/{obj.name}")
            await obj.create()
            return dict(obj.raw)

        # replace the whole object so keys missing from the manifest are removed
        await obj.refresh()
        body = copy.deepcopy(manifest)
        body.setdefault("metadata", {})["resourceVersion"] = obj.raw["metadata"][
            "resourceVersion"
        ]
        logger.debug(f"Replacing {obj.kind}/{obj.name}")
        async with obj.api.call_api(
            "PUT",
            version=obj.version,
            url=f"{obj.endpoint}/{obj.name}",
            namespace=obj.namespace,
            data=json.dumps(body),
        ) as response:
            obj.raw = response.json()
        return dict(obj.raw)

    @_translate_errors
    async def get_resource(self, identity: ResourceIdentity) -> dict[str, Any] | None:
        obj = await self._object(identity.as_manifest())
        try:
            await obj.refresh()
        except kr8s.NotFoundError:
            return None
        return dict(obj.raw)

    @_translate_errors
    async def delete_resource(self, identity: ResourceIdentity) -> bool:
        obj = await self._object(identity.as_manifest())
        try:
            await obj.delete()
        except kr8s.NotFoundError:
            return False
        logger.debug(f"Deleted {identity.kind}/{identity.name}")
        return True

    # =========================================================================
    # Pod Operations
    # =========================================================================

    @_translate_errors
    async def list_pods(
        self, namespace: str | None, label_selector: str
    ) -> list[dict[str, Any]]:
        api = await self._get_api()
        return [
            dict(pod.raw)
            async for pod in Pod.list(
                namespace=namespace or kr8s.ALL,
                label_selector=label_selector,
                api=api,
            )
        ]

    @_translate_errors
    async def get_pod_logs(
        self,
        namespace: str,
        pod: str,
        container: str,
        *,
        previous: bool = False,
        timeout: float = 20,
    ) -> str:
        api = await self._get_api()
        obj = await Pod.get(pod, namespace=namespace, api=api)

        async def _collect() -> list[str]:
            return [
                line
                async for line in obj.logs(container=container, previous=previous)
            ]

        try:
            lines = await asyncio.wait_for(_collect(), timeout=timeout)
        except TimeoutError:
            logger.debug(f"Timed out reading logs of {pod}/{container}")
            return ""
        except kr8s.ServerError as e:
            # only restarted containers have a previous log
            if previous:
                logger.debug(f"No previous logs for {pod}/{container}: {e}")
                return await self.get_pod_logs(
                    namespace, pod, container, previous=False, timeout=timeout
                )
            raise
        return "\n".join(lines)

    # =========================================================================
    # Event Operations
    # =========================================================================

    @_translate_errors
    async def list_events(
        self, namespace: str | None, field_selector: str
    ) -> list[dict[str, Any]]:
        api = await self._get_api()
        return [
            dict(event.raw)
            async for event in api.get(
                "events",
                namespace=namespace or kr8s.ALL,
                field_selector=field_selector,
            )
        ]
