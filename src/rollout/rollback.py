"""Undoing an unstable batch."""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from src.utils.console_like import ConsoleLike

from .release import ReleaseDoc, describe_action
from .reporting import ErrorReporter


def delete_blue_green_resources(output: ConsoleLike, release_doc: ReleaseDoc) -> None:
    """Delete a colored doc's resources; its Services still point at the other color."""
    output.print(describe_action("Deleting", release_doc))
    for resource in release_doc.non_service_resources:
        resource.delete()


class RollbackManager:
    """Reverts every doc of a batch, not only the ones that failed."""

    def __init__(self, *, output: ConsoleLike, reporter: ErrorReporter) -> None:
        self.output = output
        self.reporter = reporter

    def rollback(self, release_docs: Sequence[ReleaseDoc]) -> None:
        logger.info(f"Rolling back {len(release_docs)} release docs")
        for doc in release_docs:
            try:
                if doc.blue_green_color:
                    delete_blue_green_resources(self.output, doc)
                else:
                    action = "Rolling back" if doc.previous_resources else "Deleting"
                    self.output.print(describe_action(action, doc))
                    doc.revert()
            except Exception as e:
                # keep going so the remaining docs and the diagnostics still run
                self.reporter.notify(e, phase="rollback", release_doc=doc.describe())
                self.output.print(f"FAILED: {e}")
