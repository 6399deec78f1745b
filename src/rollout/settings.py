"""Rollout tunables loaded from the process environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import UserError

# environment variable -> (field, multiplier to seconds)
_ENV_FIELDS: dict[str, tuple[str, float]] = {
    "KUBE_WAIT_FOR_LIVE": ("wait_for_live", 60.0),
    "KUBE_STABILITY_CHECK_DURATION": ("stability_check_duration", 1.0),
    "KUBE_TICK": ("tick", 1.0),
    "KUBERNETES_LOG_LINES": ("log_lines", 1.0),
    "KUBERNETES_LOG_TIMEOUT": ("log_timeout", 1.0),
    "KUBE_ROLLOUT_CONCURRENCY": ("concurrency", 1.0),
}


class RolloutSettings(BaseModel):
    """Timing and diagnostic limits of a rollout.

    Durations are in seconds. ``KUBE_WAIT_FOR_LIVE`` is given in minutes to
    stay compatible with existing deploy environments.
    """

    model_config = ConfigDict(frozen=True)

    wait_for_live: float = Field(default=600.0, gt=0)
    stability_check_duration: float = Field(default=60.0, ge=0)
    tick: float = Field(default=2.0, gt=0)
    status_interval: float = Field(default=10.0, ge=0)
    log_lines: int = Field(default=50, ge=2)
    log_timeout: float = Field(default=20.0, gt=0)
    concurrency: int = Field(default=10, ge=1)

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        *,
        dotenv_path: Path | None = None,
    ) -> RolloutSettings:
        """Build settings from environment variables.

        Args:
            env: Environment to read (default: ``os.environ`` after loading
                ``.env`` without overriding existing variables)
            dotenv_path: Optional explicit .env file

        Returns:
            Validated settings

        Raises:
            UserError: If a variable is not a valid number
        """
        if env is None:
            load_dotenv(dotenv_path, override=False)
            env = os.environ

        values: dict[str, float | int] = {}
        for var, (field, multiplier) in _ENV_FIELDS.items():
            raw = env.get(var)
            if raw is None or raw == "":
                continue
            try:
                number = float(raw) * multiplier
            except ValueError as e:
                raise UserError(f"{var} must be a number, got {raw!r}") from e
            values[field] = int(number) if field in ("log_lines", "concurrency") else number
            logger.debug(f"Rollout setting {field}={values[field]} from {var}")

        try:
            return cls(**values)
        except ValidationError as e:
            raise UserError(f"Invalid rollout settings: {e}") from e
