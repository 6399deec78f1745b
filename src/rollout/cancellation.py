"""Cooperative cancellation of a running rollout."""

from __future__ import annotations

import threading


class CancellationToken:
    """Flag that can be set from any thread and polled by the rollout.

    In-flight cluster calls are never aborted; the rollout notices the flag
    at its next check, at the latest one poll tick later.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation.

        Returns:
            True if cancelled
        """
        return self._event.wait(timeout)
