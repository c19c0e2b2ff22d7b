"""Per-webhook delivery statistics derived from stored deliveries."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from courier.exceptions import NotFoundError
from courier.models import DeliveryStatus

if TYPE_CHECKING:
    from courier.storage import DeliveryStore, WebhookStore


class DeliveryStatistics(BaseModel):
    """Delivery counts for one webhook.

    Test deliveries are never included.

    Attributes:
        webhook_id: Webhook the numbers are for.
        total: Deliveries with an outcome (successful plus failed).
        successful: Deliveries that reached SUCCESS.
        failed: Deliveries that reached FAILED or EXHAUSTED.
        pending: Deliveries still PENDING or RETRYING.
        success_rate: successful / total, 0.0 when there are none. Deliveries
            still in progress do not lower it.
        last_delivery_at: When the most recent delivery started.
        last_success_at: When the most recent delivery succeeded.
    """

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    total: int = Field(ge=0)
    successful: int = Field(ge=0)
    failed: int = Field(ge=0)
    pending: int = Field(ge=0)
    success_rate: float = Field(ge=0.0, le=1.0)
    last_delivery_at: datetime | None = None
    last_success_at: datetime | None = None


class StatisticsAggregator:
    """Computes statistics with a grouped count over the delivery store.

    Deriving the numbers on demand means they are always consistent with
    delivery history, independent of the rolling counters on the webhook.
    """

    def __init__(self, webhooks: WebhookStore, deliveries: DeliveryStore) -> None:
        self._webhooks = webhooks
        self._deliveries = deliveries

    async def statistics(self, webhook_id: str) -> DeliveryStatistics:
        """Raises NotFoundError if the webhook does not exist."""
        webhook = await self._webhooks.get(webhook_id)
        if webhook is None:
            raise NotFoundError("webhook", webhook_id)

        counts = await self._deliveries.count_by_status(webhook_id)
        successful = counts.get(DeliveryStatus.SUCCESS, 0)
        failed = counts.get(DeliveryStatus.FAILED, 0) + counts.get(DeliveryStatus.EXHAUSTED, 0)
        pending = counts.get(DeliveryStatus.PENDING, 0) + counts.get(DeliveryStatus.RETRYING, 0)
        total = successful + failed

        return DeliveryStatistics(
            webhook_id=webhook_id,
            total=total,
            successful=successful,
            failed=failed,
            pending=pending,
            success_rate=successful / total if total > 0 else 0.0,
            last_delivery_at=webhook.last_delivery_at,
            last_success_at=webhook.last_success_at,
        )
