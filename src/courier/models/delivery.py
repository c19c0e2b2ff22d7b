"""Delivery tracking model.

A WebhookDelivery is one tracked attempt-sequence of sending one event to
one webhook. Its `id` is the idempotency key receivers can dedupe on; it
stays the same across every retry of the delivery.

Status only moves forward:

    PENDING  -> SUCCESS | RETRYING | EXHAUSTED | FAILED
    RETRYING -> SUCCESS | RETRYING | EXHAUSTED | FAILED

SUCCESS, FAILED and EXHAUSTED are terminal.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from courier.exceptions import DeliveryStateError

from .base import generate_id, utcnow
from .webhook import EventType


class DeliveryStatus(str, Enum):
    """Lifecycle state of a delivery."""

    PENDING = "PENDING"
    RETRYING = "RETRYING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    EXHAUSTED = "EXHAUSTED"


TERMINAL_STATUSES: frozenset[DeliveryStatus] = frozenset(
    {DeliveryStatus.SUCCESS, DeliveryStatus.FAILED, DeliveryStatus.EXHAUSTED}
)

# Terminal states that an operator may replay
FAILURE_STATUSES: frozenset[DeliveryStatus] = frozenset(
    {DeliveryStatus.FAILED, DeliveryStatus.EXHAUSTED}
)

_ALLOWED_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset(
        {
            DeliveryStatus.SUCCESS,
            DeliveryStatus.RETRYING,
            DeliveryStatus.EXHAUSTED,
            DeliveryStatus.FAILED,
        }
    ),
    DeliveryStatus.RETRYING: frozenset(
        {DeliveryStatus.SUCCESS, DeliveryStatus.RETRYING, DeliveryStatus.EXHAUSTED}
    ),
    DeliveryStatus.SUCCESS: frozenset(),
    DeliveryStatus.FAILED: frozenset(),
    DeliveryStatus.EXHAUSTED: frozenset(),
}


class WebhookDelivery(BaseModel):
    """Record of one event being delivered to one webhook.

    Attributes:
        id: Unique identifier and idempotency key.
        webhook_id: Owning webhook.
        event_id: ID of the domain event being delivered.
        event_type: Type of the domain event.
        payload: Frozen JSON of the event (eventId, eventType, occurredAt, data).
        status: Current lifecycle state.
        attempt_count: HTTP attempts made so far.
        max_attempts: Initial attempt plus the webhook's max_retries.
        response_status: Last HTTP status observed.
        response_body: Last response body (truncated).
        error_message: Last error description.
        created_at: When the delivery was created.
        delivered_at: Set iff status is SUCCESS.
        next_retry_at: Set only while RETRYING.
        is_test: Operator test send; excluded from counters and statistics.
        replay_of: Original delivery when this one was replayed by an operator.
        claimed_by: Worker currently holding the delivery.
        claimed_at: When the current claim was taken.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    webhook_id: str
    event_id: str
    event_type: EventType
    payload: str = Field(description="Frozen event JSON, fixed at dispatch time")
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempt_count: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=4, ge=1)
    response_status: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    delivered_at: datetime | None = None
    next_retry_at: datetime | None = None
    is_test: bool = False
    replay_of: str | None = None
    claimed_by: str | None = None
    claimed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def attempts_remaining(self) -> int:
        return self.max_attempts - self.attempt_count

    def is_due(self, now: datetime) -> bool:
        """Whether a worker may start the next attempt now."""
        if self.status == DeliveryStatus.PENDING:
            return True
        return (
            self.status == DeliveryStatus.RETRYING
            and self.next_retry_at is not None
            and self.next_retry_at <= now
        )

    def begin_attempt(self) -> int:
        """Count a new HTTP attempt and return its 1-based number."""
        if self.is_terminal:
            raise DeliveryStateError(self.id, self.status.value)
        if self.attempt_count >= self.max_attempts:
            raise DeliveryStateError(
                self.id,
                self.status.value,
                f"delivery {self.id} already used all {self.max_attempts} attempts",
            )
        self.attempt_count += 1
        return self.attempt_count

    def mark_success(
        self,
        response_status: int,
        response_body: str | None = None,
        now: datetime | None = None,
    ) -> "WebhookDelivery":
        """Receiver accepted the delivery."""
        self._transition(DeliveryStatus.SUCCESS)
        self.response_status = response_status
        self.response_body = response_body
        self.error_message = None
        self.delivered_at = now or utcnow()
        self.next_retry_at = None
        return self

    def mark_failed(
        self,
        error: str,
        response_status: int | None = None,
        response_body: str | None = None,
    ) -> "WebhookDelivery":
        """Permanent failure: no further attempts.

        A delivery that has already been retried ends EXHAUSTED instead;
        FAILED is only reachable from PENDING.
        """
        if self.status == DeliveryStatus.RETRYING:
            self._transition(DeliveryStatus.EXHAUSTED)
        else:
            self._transition(DeliveryStatus.FAILED)
        self.response_status = response_status
        self.response_body = response_body
        self.error_message = error
        self.next_retry_at = None
        return self

    def mark_retryable_failure(
        self,
        error: str,
        next_retry_at: datetime,
        response_status: int | None = None,
        response_body: str | None = None,
    ) -> "WebhookDelivery":
        """Transient failure: schedule a retry, or exhaust if out of attempts."""
        exhausted = self.attempt_count >= self.max_attempts
        self._transition(DeliveryStatus.EXHAUSTED if exhausted else DeliveryStatus.RETRYING)
        self.response_status = response_status
        self.response_body = response_body
        self.error_message = error
        self.next_retry_at = None if exhausted else next_retry_at
        return self

    def _transition(self, new_status: DeliveryStatus) -> None:
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise DeliveryStateError(
                self.id,
                self.status.value,
                f"delivery {self.id} cannot move from {self.status.value} to {new_status.value}",
            )
        self.status = new_status


__all__ = [
    "FAILURE_STATUSES",
    "TERMINAL_STATUSES",
    "DeliveryStatus",
    "WebhookDelivery",
]
