"""Retry policy for optimistic webhook writes.

Counter increments bump a webhook's version, so an operator update that
read the record just before a delivery completed loses the conditional
write. Such conflicts are transient: re-read and re-apply.
"""

from __future__ import annotations

import logging

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from courier.exceptions import ConflictError

logger = logging.getLogger(__name__)


def _log_conflict(retry_state: RetryCallState) -> None:
    logger.warning(
        "Retrying %s after write conflict (attempt %d): %s",
        retry_state.fn.__name__ if retry_state.fn else "unknown",
        retry_state.attempt_number,
        retry_state.outcome.exception() if retry_state.outcome else None,
    )


# Only version conflicts are retried; NotFoundError and ValidationError propagate
conflict_retry = retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=0.01, min=0.01, max=0.2),
    retry=retry_if_exception_type(ConflictError),
    before_sleep=_log_conflict,
    reraise=True,
)
