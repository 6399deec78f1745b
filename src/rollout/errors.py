"""Rollout error types."""

from __future__ import annotations


class RolloutError(Exception):
    """Base class for rollout failures."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class UserError(RolloutError):
    """Raised for problems the operator has to fix.

    Missing or invalid role configuration, deploy groups whose roles do not
    match the repository, and builds that cannot be resolved. The message is
    shown verbatim.
    """


class ReleasePersistenceError(RolloutError):
    """Raised by a release repository that could not store a release."""
