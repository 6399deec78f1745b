"""Rollout plan loading with environment variable substitution."""

import os
import re
from collections.abc import Mapping
from pathlib import Path

import yaml
from loguru import logger
from pydantic import ValidationError

from src.rollout.errors import UserError
from src.rollout.plan.schema import RolloutPlan

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(text: str, env: Mapping[str, str] | None = None) -> str:
    """
    Substitute environment variable placeholders in text.

    Supports formats:
    - ${VAR_NAME} - required variable (raises error if missing)
    - ${VAR_NAME:-default} - optional with default value
    """
    env = os.environ if env is None else env

    def replacer(match: re.Match[str]) -> str:
        var_expr = match.group(1)

        # Handle default values: ${VAR:-default}
        if ":-" in var_expr:
            var_name, default = var_expr.split(":-", 1)
            return env.get(var_name, default)

        value = env.get(var_expr)
        if value is None:
            raise UserError(f"Required environment variable {var_expr} not set")
        return value

    return _ENV_PATTERN.sub(replacer, text)


def load_plan(file_path: Path, env: Mapping[str, str] | None = None) -> RolloutPlan:
    """
    Load and validate a rollout plan.

    Relative ``config_dir`` and ``state_file`` paths are resolved against the
    directory of the plan file.

    Raises:
        UserError: If the file is missing, is not valid YAML, references an
                   unset environment variable or fails validation
    """
    try:
        content = file_path.read_text()
    except OSError as e:
        raise UserError(f"Cannot read rollout plan {file_path}: {e}") from e

    content = substitute_env_vars(content, env)

    try:
        loaded = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise UserError(f"Error parsing YAML: {e}") from e
    if not isinstance(loaded, dict):
        raise UserError(f"Rollout plan {file_path} must be a mapping")

    try:
        plan = RolloutPlan(**loaded)
    except ValidationError as e:
        raise UserError(f"Invalid rollout plan: {e}") from e

    base = file_path.parent
    updates: dict[str, Path] = {}
    if not plan.config_dir.is_absolute():
        updates["config_dir"] = base / plan.config_dir
    if plan.state_file is not None and not plan.state_file.is_absolute():
        updates["state_file"] = base / plan.state_file
    if updates:
        plan = plan.model_copy(update=updates)

    logger.info(
        f"Loaded rollout plan for {plan.project} at {plan.commit} "
        f"({len(plan.deploy_groups)} deploy groups, {len(plan.roles)} roles)"
    )
    return plan
