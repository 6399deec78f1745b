"""Error reporting for failures that must not abort a rollout."""

from __future__ import annotations

import uuid
from typing import Any, Protocol

from loguru import logger


class ErrorReporter(Protocol):
    def notify(self, error: BaseException, **context: Any) -> str:
        """Record ``error`` and return a short reference to show the operator."""
        ...


class LoguruErrorReporter:
    """Reports errors through loguru with a correlation id."""

    def notify(self, error: BaseException, **context: Any) -> str:
        error_id = uuid.uuid4().hex[:12]
        logger.bind(error_id=error_id, **context).opt(exception=error).error(
            f"Rollout error {error_id}: {type(error).__name__}: {error}"
        )
        return f"{type(error).__name__}: {error} (error id {error_id})"
