"""In-process stores backed by dictionaries.

Each store serializes access with an asyncio.Lock and hands out deep
copies, so callers can never mutate a stored record (in particular a
delivery's frozen payload) except through the store's write methods.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from courier.exceptions import ConflictError, NotFoundError
from courier.models import (
    DeliveryStatus,
    EventType,
    Webhook,
    WebhookDelivery,
    WebhookStatus,
)

from .base import DeliveryStore, WebhookStore

logger = logging.getLogger(__name__)


class InMemoryWebhookStore(WebhookStore):
    """Webhook store with an event type -> webhook id subscription index."""

    def __init__(self) -> None:
        self._webhooks: dict[str, Webhook] = {}
        self._subscriptions: dict[EventType, set[str]] = {}
        self._lock = asyncio.Lock()

    def _index(self, webhook: Webhook) -> None:
        for event_type in webhook.event_types:
            self._subscriptions.setdefault(event_type, set()).add(webhook.id)

    def _unindex(self, webhook: Webhook) -> None:
        for event_type in webhook.event_types:
            ids = self._subscriptions.get(event_type)
            if ids is not None:
                ids.discard(webhook.id)

    async def add(self, webhook: Webhook) -> str:
        async with self._lock:
            if webhook.id in self._webhooks:
                raise ConflictError(f"webhook already exists: {webhook.id}")
            stored = webhook.model_copy(deep=True)
            self._webhooks[stored.id] = stored
            self._index(stored)
        return webhook.id

    async def get(self, webhook_id: str) -> Webhook | None:
        async with self._lock:
            stored = self._webhooks.get(webhook_id)
            return stored.model_copy(deep=True) if stored else None

    async def list_webhooks(
        self,
        status: WebhookStatus | None = None,
        created_by: str | None = None,
    ) -> list[Webhook]:
        async with self._lock:
            webhooks = [
                w.model_copy(deep=True)
                for w in self._webhooks.values()
                if (status is None or w.status == status)
                and (created_by is None or w.created_by == created_by)
            ]
        webhooks.sort(key=lambda w: w.created_at)
        return webhooks

    async def find_active_for_event(self, event_type: EventType) -> list[Webhook]:
        async with self._lock:
            ids = self._subscriptions.get(event_type, set())
            return [
                self._webhooks[webhook_id].model_copy(deep=True)
                for webhook_id in ids
                if self._webhooks[webhook_id].subscribes_to(event_type)
            ]

    async def replace(self, webhook: Webhook, expected_version: int) -> Webhook:
        async with self._lock:
            current = self._webhooks.get(webhook.id)
            if current is None:
                raise NotFoundError("webhook", webhook.id)
            if current.version != expected_version:
                raise ConflictError(
                    f"webhook {webhook.id} changed concurrently "
                    f"(expected version {expected_version}, found {current.version})"
                )
            stored = webhook.model_copy(deep=True)
            stored.version = current.version + 1
            self._unindex(current)
            self._webhooks[stored.id] = stored
            self._index(stored)
            return stored.model_copy(deep=True)

    async def delete(self, webhook_id: str) -> bool:
        async with self._lock:
            current = self._webhooks.pop(webhook_id, None)
            if current is None:
                return False
            self._unindex(current)
            return True

    async def increment_counters(
        self,
        webhook_id: str,
        *,
        total: int = 0,
        successful: int = 0,
        failed: int = 0,
        delivered_at: datetime | None = None,
        succeeded_at: datetime | None = None,
    ) -> Webhook | None:
        async with self._lock:
            current = self._webhooks.get(webhook_id)
            if current is None:
                return None
            current.total_deliveries += total
            current.successful_deliveries += successful
            current.failed_deliveries += failed
            if delivered_at is not None:
                current.last_delivery_at = delivered_at
            if succeeded_at is not None:
                current.last_success_at = succeeded_at
            current.version += 1
            return current.model_copy(deep=True)


class InMemoryDeliveryStore(DeliveryStore):
    """Delivery store with claim-based attempt exclusion."""

    def __init__(self) -> None:
        self._deliveries: dict[str, WebhookDelivery] = {}
        self._lock = asyncio.Lock()

    async def add(self, delivery: WebhookDelivery) -> str:
        async with self._lock:
            if delivery.id in self._deliveries:
                raise ConflictError(f"delivery already exists: {delivery.id}")
            self._deliveries[delivery.id] = delivery.model_copy(deep=True)
        return delivery.id

    async def get(self, delivery_id: str) -> WebhookDelivery | None:
        async with self._lock:
            stored = self._deliveries.get(delivery_id)
            return stored.model_copy(deep=True) if stored else None

    async def list_for_webhook(
        self,
        webhook_id: str,
        status: DeliveryStatus | None = None,
        limit: int = 100,
    ) -> list[WebhookDelivery]:
        async with self._lock:
            deliveries = [
                d.model_copy(deep=True)
                for d in self._deliveries.values()
                if d.webhook_id == webhook_id and (status is None or d.status == status)
            ]
        deliveries.sort(key=lambda d: d.created_at, reverse=True)
        return deliveries[:limit]

    async def list_by_status(
        self,
        statuses: Iterable[DeliveryStatus],
        include_test: bool = False,
    ) -> list[WebhookDelivery]:
        wanted = set(statuses)
        async with self._lock:
            deliveries = [
                d.model_copy(deep=True)
                for d in self._deliveries.values()
                if d.status in wanted and (include_test or not d.is_test)
            ]
        deliveries.sort(key=lambda d: d.created_at)
        return deliveries

    async def list_due(
        self,
        now: datetime,
        lease_seconds: float,
        limit: int = 100,
    ) -> list[WebhookDelivery]:
        lease = timedelta(seconds=lease_seconds)
        async with self._lock:
            due = [
                d.model_copy(deep=True)
                for d in self._deliveries.values()
                if self._is_sweepable(d, now, lease)
            ]
        due.sort(key=lambda d: d.next_retry_at or d.created_at)
        return due[:limit]

    @staticmethod
    def _is_sweepable(delivery: WebhookDelivery, now: datetime, lease: timedelta) -> bool:
        if _claim_is_live(delivery, now, lease):
            return False
        if delivery.status == DeliveryStatus.RETRYING:
            return delivery.next_retry_at is not None and delivery.next_retry_at <= now
        if delivery.status == DeliveryStatus.PENDING:
            # Dispatch task never ran (or died before claiming)
            return delivery.created_at <= now - lease
        return False

    async def count_by_status(
        self,
        webhook_id: str,
        include_test: bool = False,
    ) -> dict[DeliveryStatus, int]:
        counts = {status: 0 for status in DeliveryStatus}
        async with self._lock:
            for d in self._deliveries.values():
                if d.webhook_id == webhook_id and (include_test or not d.is_test):
                    counts[d.status] += 1
        return counts

    async def claim(
        self,
        delivery_id: str,
        worker_id: str,
        now: datetime,
        lease_seconds: float,
        force: bool = False,
        due_at: datetime | None = None,
    ) -> WebhookDelivery | None:
        lease = timedelta(seconds=lease_seconds)
        async with self._lock:
            current = self._deliveries.get(delivery_id)
            if current is None or current.is_terminal:
                return None
            if _claim_is_live(current, now, lease):
                return None
            if not force and not current.is_due(due_at or now):
                return None
            if current.claimed_by is not None:
                logger.warning(
                    "Reclaiming delivery %s from expired claim held by %s",
                    delivery_id,
                    current.claimed_by,
                )
            current.claimed_by = worker_id
            current.claimed_at = now
            return current.model_copy(deep=True)

    async def save_claimed(self, delivery: WebhookDelivery, worker_id: str) -> None:
        async with self._lock:
            current = self._deliveries.get(delivery.id)
            if current is None:
                raise NotFoundError("delivery", delivery.id)
            if current.claimed_by != worker_id:
                raise ConflictError(
                    f"delivery {delivery.id} is no longer claimed by {worker_id}"
                )
            stored = delivery.model_copy(deep=True)
            # The frozen payload is never rewritten by an attempt
            stored.payload = current.payload
            stored.claimed_by = None
            stored.claimed_at = None
            self._deliveries[stored.id] = stored

    async def release(self, delivery_id: str, worker_id: str) -> None:
        async with self._lock:
            current = self._deliveries.get(delivery_id)
            if current is not None and current.claimed_by == worker_id:
                current.claimed_by = None
                current.claimed_at = None


def _claim_is_live(delivery: WebhookDelivery, now: datetime, lease: timedelta) -> bool:
    if delivery.claimed_by is None or delivery.claimed_at is None:
        return False
    return delivery.claimed_at + lease > now


__all__ = [
    "InMemoryDeliveryStore",
    "InMemoryWebhookStore",
]
