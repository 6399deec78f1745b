"""Retry policy for transient cluster connection errors."""

from __future__ import annotations

from loguru import logger
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import ClusterTransientError

CONNECTION_ATTEMPTS = 3


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.debug(
        f"Retrying {retry_state.fn.__name__ if retry_state.fn else 'cluster call'} "
        f"after connection error (attempt {retry_state.attempt_number}): {error}"
    )


retry_on_connection_errors = retry(
    retry=retry_if_exception_type(ClusterTransientError),
    stop=stop_after_attempt(CONNECTION_ATTEMPTS),
    wait=wait_exponential(multiplier=0.5, max=4),
    before_sleep=_log_retry,
    reraise=True,
)
