"""Errors raised by the cluster API layer."""

from __future__ import annotations


class ClusterError(Exception):
    """Raised when a cluster API call fails."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ClusterTransientError(ClusterError):
    """Raised for connection-level failures that are worth retrying."""
