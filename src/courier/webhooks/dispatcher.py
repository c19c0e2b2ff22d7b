"""Fan-out of domain events to subscribed webhooks."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from courier.models import WebhookDelivery

from .payload import PayloadBuilder

if TYPE_CHECKING:
    from courier.models import DomainEvent, Webhook
    from courier.storage import DeliveryStore

    from .executor import DeliveryAttemptExecutor
    from .registry import WebhookRegistry

logger = logging.getLogger(__name__)


class DispatchCoordinator:
    """Creates deliveries for a domain event and runs their first attempt.

    `deliver_event` only persists PENDING deliveries and schedules the
    attempts as background tasks, so the publisher never waits on a
    receiver. Attempts run concurrently up to `max_concurrent`; each
    webhook's attempt is independent of the others.

    Example:
        ```python
        coordinator = DispatchCoordinator(registry, deliveries, executor)
        event_bus.subscribe_all(coordinator.handle)

        delivery_ids = await coordinator.deliver_event(event)
        await coordinator.drain()  # wait for in-flight attempts
        ```
    """

    def __init__(
        self,
        registry: WebhookRegistry,
        deliveries: DeliveryStore,
        executor: DeliveryAttemptExecutor,
        payloads: PayloadBuilder | None = None,
        max_concurrent: int = 10,
    ) -> None:
        self._registry = registry
        self._deliveries = deliveries
        self._executor = executor
        self._payloads = payloads or PayloadBuilder()
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        """Number of attempts scheduled or running."""
        return len(self._tasks)

    async def deliver_event(self, event: DomainEvent) -> list[str]:
        """Create one PENDING delivery per matching webhook and schedule attempts.

        Publishing an event nobody subscribes to is a no-op.

        Returns:
            IDs of the deliveries created.
        """
        webhooks = await self._registry.active_webhooks_for_event_type(event.type)
        if not webhooks:
            logger.debug("No webhooks subscribed to event %s", event.type.value)
            return []

        payload = self._payloads.freeze(event)
        delivery_ids: list[str] = []
        for webhook in webhooks:
            try:
                delivery_id = await self._create_delivery(webhook, event, payload)
            except Exception:
                # One webhook's bookkeeping failure must not starve the others
                logger.exception(
                    "Failed to create delivery of %s for webhook %s", event.id, webhook.id
                )
                continue
            delivery_ids.append(delivery_id)
            self.submit(delivery_id)

        logger.info(
            "Dispatched %s %s to %d webhook(s)",
            event.type.value,
            event.id,
            len(delivery_ids),
        )
        return delivery_ids

    async def handle(self, event: DomainEvent) -> None:
        """EventBus handler."""
        await self.deliver_event(event)

    def submit(self, delivery_id: str, force: bool = False) -> asyncio.Task[None]:
        """Schedule an attempt for an existing delivery in the background."""
        task = asyncio.create_task(self._attempt(delivery_id, force))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every scheduled attempt has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding attempts.

        Cancelled deliveries stay PENDING or RETRYING and are picked up
        again by the retry sweep.
        """
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _create_delivery(self, webhook: Webhook, event: DomainEvent, payload: str) -> str:
        delivery = WebhookDelivery(
            webhook_id=webhook.id,
            event_id=event.id,
            event_type=event.type,
            payload=payload,
            max_attempts=webhook.max_attempts,
        )
        return await self._deliveries.add(delivery)

    async def _attempt(self, delivery_id: str, force: bool) -> None:
        async with self._semaphore:
            try:
                await self._executor.execute(delivery_id, force=force)
            except Exception:
                logger.exception("Delivery attempt for %s failed", delivery_id)
