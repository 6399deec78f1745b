"""Traffic switch at the end of a successful blue/green rollout."""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from src.utils.console_like import ConsoleLike

from .release import Release, ReleaseDoc
from .rollback import delete_blue_green_resources


class BlueGreenFinalizer:
    """Points Services at the new color and removes the previous color."""

    def __init__(self, *, output: ConsoleLike) -> None:
        self.output = output

    def finish(
        self,
        release: Release,
        release_docs: Sequence[ReleaseDoc],
        previous: Release | None,
    ) -> None:
        self.switch_services(release_docs)
        if previous is not None and previous.blue_green_color != release.blue_green_color:
            logger.info(
                f"Removing {previous.blue_green_color} resources of release {previous.id}"
            )
            for doc in previous.release_docs:
                delete_blue_green_resources(self.output, doc)

    def switch_services(self, release_docs: Sequence[ReleaseDoc]) -> None:
        for doc in release_docs:
            services = doc.service_resources
            if not services:
                continue
            color = (doc.blue_green_color or "").upper()
            self.output.print(f"Switching service for {doc.describe()} to {color}")
            for service in services:
                service.deploy()
