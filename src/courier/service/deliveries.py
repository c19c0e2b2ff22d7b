"""Delivery operations mixin for WebhookService.

Provides delivery history, operator retries, test sends and statistics.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from courier.exceptions import ConflictError, DeliveryStateError, NotFoundError
from courier.models import (
    FAILURE_STATUSES,
    DeliveryStatus,
    DomainEvent,
    EventType,
    Webhook,
    WebhookDelivery,
)

from .models import IN_PROGRESS_STATUSES, RetryFailedResult, TestDeliveryResult

if TYPE_CHECKING:
    from courier.storage import DeliveryStore
    from courier.webhooks import (
        DeliveryAttemptExecutor,
        DeliveryStatistics,
        DispatchCoordinator,
        PayloadBuilder,
        StatisticsAggregator,
        WebhookRegistry,
    )

logger = logging.getLogger(__name__)

DEFAULT_TEST_DATA: dict[str, Any] = {
    "test": True,
    "message": "This is a test webhook delivery",
}


class DeliveryOpsMixin:
    """Mixin providing delivery history and operator actions.

    Expects these attributes from the base class:
    - registry: WebhookRegistry
    - deliveries: DeliveryStore
    - executor: DeliveryAttemptExecutor
    - dispatcher: DispatchCoordinator
    - aggregator: StatisticsAggregator
    - payloads: PayloadBuilder
    """

    registry: WebhookRegistry
    deliveries: DeliveryStore
    executor: DeliveryAttemptExecutor
    dispatcher: DispatchCoordinator
    aggregator: StatisticsAggregator
    payloads: PayloadBuilder

    async def list_deliveries(
        self,
        webhook_id: str,
        status: DeliveryStatus | None = None,
        limit: int = 100,
    ) -> list[WebhookDelivery]:
        """Delivery history for a webhook, newest first.

        Raises:
            NotFoundError: If the webhook does not exist.
        """
        await self.registry.get(webhook_id)
        return await self.deliveries.list_for_webhook(webhook_id, status=status, limit=limit)

    async def get_delivery(self, webhook_id: str, delivery_id: str) -> WebhookDelivery:
        """Get one delivery of a webhook.

        Raises:
            NotFoundError: If the delivery does not exist or belongs to
                another webhook.
        """
        delivery = await self.deliveries.get(delivery_id)
        if delivery is None or delivery.webhook_id != webhook_id:
            raise NotFoundError("delivery", delivery_id)
        return delivery

    async def retry_delivery(self, webhook_id: str, delivery_id: str) -> WebhookDelivery:
        """Retry one delivery now.

        A PENDING or RETRYING delivery gets its next attempt immediately,
        ignoring `next_retry_at`. A FAILED or EXHAUSTED delivery is terminal,
        so it is replayed: a new delivery with the same payload and a fresh
        attempt budget is created and attempted. The original stays as is.

        Returns:
            The delivery that was attempted, after the attempt.

        Raises:
            NotFoundError: If the webhook or delivery does not exist.
            DeliveryStateError: If the delivery already succeeded.
            ConflictError: If another worker is attempting it right now.
        """
        delivery = await self.get_delivery(webhook_id, delivery_id)

        if delivery.status == DeliveryStatus.SUCCESS:
            raise DeliveryStateError(delivery.id, delivery.status.value)

        if delivery.status in IN_PROGRESS_STATUSES:
            attempted = await self.executor.execute(delivery.id, force=True)
            if attempted is None:
                raise ConflictError(f"delivery {delivery.id} is being attempted by another worker")
            return attempted

        webhook = await self.registry.get(webhook_id)
        replay = await self._replay(delivery, webhook)
        attempted = await self.executor.execute(replay.id)
        return attempted or replay

    async def retry_failed_deliveries(self) -> RetryFailedResult:
        """Replay every FAILED or EXHAUSTED delivery across all webhooks.

        Used for recovery after a receiver outage. Each failure is replayed
        at most once: a delivery that already has a replay is skipped, as are
        deliveries of deleted or inactive webhooks. Replays are attempted in
        the background, bypassing the backoff schedule.
        """
        failed = await self.deliveries.list_by_status(FAILURE_STATUSES)
        if not failed:
            return RetryFailedResult()

        everything = await self.deliveries.list_by_status(list(DeliveryStatus))
        already_replayed = {d.replay_of for d in everything if d.replay_of}

        result = RetryFailedResult()
        webhooks: dict[str, Webhook | None] = {}
        for delivery in failed:
            if delivery.id in already_replayed:
                result.skipped += 1
                continue

            if delivery.webhook_id not in webhooks:
                try:
                    webhooks[delivery.webhook_id] = await self.registry.get(delivery.webhook_id)
                except NotFoundError:
                    webhooks[delivery.webhook_id] = None
            webhook = webhooks[delivery.webhook_id]
            if webhook is None or not webhook.is_active:
                result.skipped += 1
                continue

            replay = await self._replay(delivery, webhook)
            self.dispatcher.submit(replay.id)
            result.replayed[delivery.id] = replay.id

        logger.info(
            "Replaying %d failed deliveries (%d skipped)", result.count, result.skipped
        )
        return result

    async def statistics(self, webhook_id: str) -> DeliveryStatistics:
        """Delivery counts and success rate for a webhook."""
        return await self.aggregator.statistics(webhook_id)

    async def test(
        self,
        webhook_id: str,
        event_type: EventType | str | None = None,
        sample_data: dict[str, Any] | None = None,
    ) -> TestDeliveryResult:
        """Send one synthetic delivery and wait for its outcome.

        The delivery is stored with `is_test=True` and a single attempt. It
        is never retried and never counted in webhook counters or statistics.

        Example:
            ```python
            result = await service.test(webhook.id)
            if not result.success:
                print(result.response_status, result.error_message)
            ```
        """
        webhook = await self.registry.get(webhook_id)
        event = DomainEvent(
            type=EventType(event_type) if event_type else webhook.event_types[0],
            data=sample_data or dict(DEFAULT_TEST_DATA),
        )
        delivery = WebhookDelivery(
            webhook_id=webhook.id,
            event_id=event.id,
            event_type=event.type,
            payload=self.payloads.freeze(event),
            max_attempts=1,
            is_test=True,
        )
        await self.deliveries.add(delivery)
        logger.info("Sending test %s to webhook %s", event.type.value, webhook.id)

        attempted = await self.executor.execute(delivery.id) or delivery
        return TestDeliveryResult(
            webhook_id=webhook.id,
            delivery=attempted,
            success=attempted.status == DeliveryStatus.SUCCESS,
        )

    async def _replay(self, original: WebhookDelivery, webhook: Webhook) -> WebhookDelivery:
        replay = WebhookDelivery(
            webhook_id=webhook.id,
            event_id=original.event_id,
            event_type=original.event_type,
            payload=original.payload,
            max_attempts=webhook.max_attempts,
            is_test=original.is_test,
            replay_of=original.id,
        )
        await self.deliveries.add(replay)
        logger.info("Replaying delivery %s as %s", original.id, replay.id)
        return replay
