"""Webhook administration mixin for WebhookService.

Thin wrappers over WebhookRegistry that the admin API calls directly.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from courier.models import EventType, Webhook, WebhookStatus

if TYPE_CHECKING:
    from courier.webhooks import WebhookRegistry


class WebhookAdminMixin:
    """Mixin providing webhook CRUD and lifecycle operations.

    Expects these attributes from the base class:
    - registry: WebhookRegistry
    """

    registry: WebhookRegistry

    async def create_webhook(
        self,
        name: str,
        url: str,
        event_types: Iterable[EventType | str],
        max_retries: int | None = None,
        timeout_seconds: int | None = None,
        created_by: str | None = None,
    ) -> Webhook:
        """Register a webhook.

        Example:
            ```python
            webhook = await service.create_webhook(
                name="CRM sync",
                url="https://crm.example.com/hooks",
                event_types=["USER_REGISTERED", "USER_CANCELLED"],
                created_by="ops@example.com",
            )
            print(webhook.secret)  # share with the receiver
            ```
        """
        return await self.registry.create(
            name=name,
            url=url,
            event_types=event_types,
            max_retries=max_retries,
            timeout_seconds=timeout_seconds,
            created_by=created_by,
        )

    async def get_webhook(self, webhook_id: str) -> Webhook:
        return await self.registry.get(webhook_id)

    async def list_webhooks(
        self,
        status: WebhookStatus | None = None,
        created_by: str | None = None,
    ) -> list[Webhook]:
        return await self.registry.list_webhooks(status=status, created_by=created_by)

    async def update_webhook(
        self,
        webhook_id: str,
        *,
        name: str | None = None,
        url: str | None = None,
        event_types: Iterable[EventType | str] | None = None,
        status: WebhookStatus | None = None,
        max_retries: int | None = None,
        timeout_seconds: int | None = None,
    ) -> Webhook:
        return await self.registry.update(
            webhook_id,
            name=name,
            url=url,
            event_types=event_types,
            status=status,
            max_retries=max_retries,
            timeout_seconds=timeout_seconds,
        )

    async def delete_webhook(self, webhook_id: str) -> None:
        await self.registry.delete(webhook_id)

    async def activate_webhook(self, webhook_id: str) -> Webhook:
        return await self.registry.set_status(webhook_id, WebhookStatus.ACTIVE)

    async def deactivate_webhook(self, webhook_id: str) -> Webhook:
        """Stop matching new events. Deliveries already created still run."""
        return await self.registry.set_status(webhook_id, WebhookStatus.INACTIVE)

    async def regenerate_secret(self, webhook_id: str) -> Webhook:
        return await self.registry.regenerate_secret(webhook_id)
