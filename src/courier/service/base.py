"""Core Courier service layer.

This module provides the WebhookService that wires the stores, the HTTP
transport and the delivery engine together behind one administrative
interface.

Example:
    ```python
    from courier.models import DomainEvent
    from courier.service import WebhookService

    async with WebhookService.create() as courier:
        webhook = await courier.create_webhook(
            name="CRM sync",
            url="https://crm.example.com/hooks",
            event_types=["USER_REGISTERED"],
        )

        # Business code publishes; delivery happens in the background
        await courier.publish(
            DomainEvent.for_user_registered(
                registration_id="reg_1",
                event_id="conf_2026",
                user_email="ada@example.com",
                user_name="Ada",
            )
        )

        stats = await courier.statistics(webhook.id)
        print(f"{stats.successful}/{stats.total} delivered")
    ```
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from courier.config import Settings, load_settings
from courier.events import EventBus
from courier.models import DomainEvent
from courier.storage import (
    DeliveryStore,
    InMemoryDeliveryStore,
    InMemoryWebhookStore,
    WebhookStore,
)
from courier.webhooks import (
    DeliveryAttemptExecutor,
    DispatchCoordinator,
    HttpTransport,
    HttpxTransport,
    PayloadBuilder,
    RetryScheduler,
    StatisticsAggregator,
    WebhookRegistry,
)

from .admin import WebhookAdminMixin
from .deliveries import DeliveryOpsMixin

logger = logging.getLogger(__name__)


@dataclass
class WebhookService(WebhookAdminMixin, DeliveryOpsMixin):
    """High-level façade over the webhook delivery engine.

    This service provides:
    - Webhook administration: create/update/delete, activate/deactivate,
      secret rotation
    - publish(): hand a domain event to every subscriber on the event bus
    - Delivery history, single and bulk retries, test sends, statistics

    Uses dependency injection for the stores and the HTTP transport, making
    it easy to test and configure. Engine components are built in
    `__post_init__`.

    Attributes:
        webhooks: Webhook store.
        deliveries: Delivery store.
        transport: Outbound HTTP transport.
        settings: Configuration settings.
        event_bus: Bus the dispatcher subscribes to (created if omitted).
    """

    webhooks: WebhookStore
    deliveries: DeliveryStore
    transport: HttpTransport
    settings: Settings
    event_bus: EventBus = field(default_factory=EventBus)

    registry: WebhookRegistry = field(init=False, repr=False)
    payloads: PayloadBuilder = field(init=False, repr=False)
    executor: DeliveryAttemptExecutor = field(init=False, repr=False)
    dispatcher: DispatchCoordinator = field(init=False, repr=False)
    scheduler: RetryScheduler = field(init=False, repr=False)
    aggregator: StatisticsAggregator = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Build the engine components around the injected dependencies."""
        self.registry = WebhookRegistry(self.webhooks, self.settings)
        self.payloads = PayloadBuilder()
        self.executor = DeliveryAttemptExecutor(
            webhooks=self.webhooks,
            deliveries=self.deliveries,
            transport=self.transport,
            settings=self.settings,
            payloads=self.payloads,
        )
        self.dispatcher = DispatchCoordinator(
            registry=self.registry,
            deliveries=self.deliveries,
            executor=self.executor,
            payloads=self.payloads,
            max_concurrent=self.settings.max_concurrent_deliveries,
        )
        self.scheduler = RetryScheduler(self.deliveries, self.executor, self.settings)
        self.aggregator = StatisticsAggregator(self.webhooks, self.deliveries)
        self.event_bus.subscribe_all(self.dispatcher.handle)

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        transport: HttpTransport | None = None,
    ) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
            transport: Optional HTTP transport. An httpx-based one if None.

        Returns:
            Configured WebhookService backed by in-memory stores.
        """
        if settings is None:
            settings = load_settings()

        return cls(
            webhooks=InMemoryWebhookStore(),
            deliveries=InMemoryDeliveryStore(),
            transport=transport or HttpxTransport(),
            settings=settings,
        )

    async def start(self) -> None:
        """Start the background retry sweep."""
        await self.scheduler.start()

    async def close(self) -> None:
        """Stop the sweep, cancel in-flight attempts and close the transport."""
        await self.scheduler.stop()
        await self.dispatcher.close()
        await self.transport.aclose()

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def publish(self, event: DomainEvent) -> int:
        """Publish a domain event on the event bus.

        Returns as soon as deliveries are recorded; HTTP attempts run in the
        background and their failures never reach the caller.

        Returns:
            Number of handlers that accepted the event.
        """
        return await self.event_bus.publish(event)

    async def deliver_event(self, event: DomainEvent) -> list[str]:
        """Dispatch an event straight to its webhooks.

        Returns:
            IDs of the deliveries created.
        """
        return await self.dispatcher.deliver_event(event)

    async def drain(self) -> None:
        """Wait for every background attempt scheduled so far."""
        await self.dispatcher.drain()


__all__ = ["WebhookService"]
