"""Storage interfaces for webhooks and deliveries.

The engine treats persistence as a keyed-record repository. Every mutation
is a single-record write keyed by id; the only multi-writer hazards are
counter increments (atomic in the store) and concurrent attempts on the same
delivery (guarded by `claim`).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from courier.models import (
        DeliveryStatus,
        EventType,
        Webhook,
        WebhookDelivery,
        WebhookStatus,
    )


class WebhookStore(ABC):
    """Persistence for Webhook records."""

    @abstractmethod
    async def add(self, webhook: Webhook) -> str:
        """Store a new webhook and return its ID."""

    @abstractmethod
    async def get(self, webhook_id: str) -> Webhook | None:
        """Get a webhook by ID, or None if unknown."""

    @abstractmethod
    async def list_webhooks(
        self,
        status: WebhookStatus | None = None,
        created_by: str | None = None,
    ) -> list[Webhook]:
        """List webhooks, optionally filtered by status and creator."""

    @abstractmethod
    async def find_active_for_event(self, event_type: EventType) -> list[Webhook]:
        """Webhooks with status ACTIVE that subscribe to the event type."""

    @abstractmethod
    async def replace(self, webhook: Webhook, expected_version: int) -> Webhook:
        """Write a webhook only if the stored version still matches.

        Returns the stored record with its version bumped.

        Raises:
            NotFoundError: If the webhook no longer exists.
            ConflictError: If another writer changed it first.
        """

    @abstractmethod
    async def delete(self, webhook_id: str) -> bool:
        """Delete a webhook. Returns False if it did not exist."""

    @abstractmethod
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
        """Atomically bump delivery counters. Returns None if the webhook is gone."""


class DeliveryStore(ABC):
    """Persistence for WebhookDelivery records."""

    @abstractmethod
    async def add(self, delivery: WebhookDelivery) -> str:
        """Store a new delivery and return its ID."""

    @abstractmethod
    async def get(self, delivery_id: str) -> WebhookDelivery | None:
        """Get a delivery by ID, or None if unknown."""

    @abstractmethod
    async def list_for_webhook(
        self,
        webhook_id: str,
        status: DeliveryStatus | None = None,
        limit: int = 100,
    ) -> list[WebhookDelivery]:
        """Deliveries for one webhook, newest first."""

    @abstractmethod
    async def list_by_status(
        self,
        statuses: Iterable[DeliveryStatus],
        include_test: bool = False,
    ) -> list[WebhookDelivery]:
        """Deliveries in any of the given statuses, oldest first."""

    @abstractmethod
    async def list_due(
        self,
        now: datetime,
        lease_seconds: float,
        limit: int = 100,
    ) -> list[WebhookDelivery]:
        """Deliveries a retry sweep should attempt now.

        Includes RETRYING deliveries whose `next_retry_at` has elapsed and
        PENDING deliveries that never got an attempt within one lease of
        creation. Deliveries under a live claim are skipped. Ordered by
        due time.
        """

    @abstractmethod
    async def count_by_status(
        self,
        webhook_id: str,
        include_test: bool = False,
    ) -> dict[DeliveryStatus, int]:
        """Delivery counts for one webhook grouped by status."""

    @abstractmethod
    async def claim(
        self,
        delivery_id: str,
        worker_id: str,
        now: datetime,
        lease_seconds: float,
        force: bool = False,
        due_at: datetime | None = None,
    ) -> WebhookDelivery | None:
        """Reserve a delivery for one attempt.

        Succeeds only if the delivery is PENDING or RETRYING, is due (unless
        `force`), and is not held by a live claim. This conditional update is
        the only gate in front of an attempt, so two workers can never run
        attempts on the same delivery concurrently.

        `now` is the wall-clock time the claim is taken; it stamps
        `claimed_at` and decides whether an existing claim is still live.
        `due_at` (default `now`) is only compared against `next_retry_at`.

        Returns:
            The claimed delivery, or None if it is not claimable.
        """

    @abstractmethod
    async def save_claimed(self, delivery: WebhookDelivery, worker_id: str) -> None:
        """Write the outcome of an attempt and drop the claim.

        Raises:
            ConflictError: If the claim is no longer held by `worker_id`.
        """

    @abstractmethod
    async def release(self, delivery_id: str, worker_id: str) -> None:
        """Drop a claim without recording an attempt."""
