"""CLI command modules.

Commands:
- deploy: Validate, release, apply and watch a rollout plan
- validate: Validate the role configs of a rollout plan only
"""

from .rollout import deploy, validate

__all__ = [
    "deploy",
    "validate",
]
