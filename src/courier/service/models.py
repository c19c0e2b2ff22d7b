"""Service layer result models for Courier.

- TestDeliveryResult: Outcome of an operator test send
- RetryFailedResult: Summary of a bulk replay of failed deliveries
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from courier.models import DeliveryStatus, WebhookDelivery


class TestDeliveryResult(BaseModel):
    """Outcome of a synthetic delivery sent by an operator.

    Attributes:
        webhook_id: Webhook that was tested.
        delivery: The test delivery record (marked `is_test`).
        success: Whether the receiver answered 2xx.
    """

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    delivery: WebhookDelivery
    success: bool

    @property
    def response_status(self) -> int | None:
        return self.delivery.response_status

    @property
    def error_message(self) -> str | None:
        return self.delivery.error_message


class RetryFailedResult(BaseModel):
    """Summary of `retry_failed_deliveries`.

    Attributes:
        replayed: Original delivery ID -> ID of the new delivery replaying it.
        skipped: Failed deliveries left alone (webhook deleted or inactive,
            or already replayed).
    """

    model_config = ConfigDict(extra="forbid")

    replayed: dict[str, str] = Field(default_factory=dict)
    skipped: int = Field(default=0, ge=0)

    @property
    def count(self) -> int:
        return len(self.replayed)


# Statuses `retry_delivery` attempts in place rather than replaying
IN_PROGRESS_STATUSES: frozenset[DeliveryStatus] = frozenset(
    {DeliveryStatus.PENDING, DeliveryStatus.RETRYING}
)
