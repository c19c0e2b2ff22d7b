"""Wire format for outbound deliveries.

A delivery stores a frozen snapshot of the domain event at dispatch time.
Each HTTP attempt wraps that snapshot in an envelope carrying the delivery
id (the receiver's idempotency key), the send timestamp and per-attempt
metadata:

    {
      "id": "dlv_...",
      "eventId": "evt_...",
      "eventType": "USER_REGISTERED",
      "occurredAt": "...",
      "timestamp": "...",
      "data": {...},
      "metadata": {"webhookId": "whk_...", "attempt": 1, "maxAttempts": 4, "test": false}
    }
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from courier.models import EventType, utcnow

if TYPE_CHECKING:
    from courier.models import DomainEvent, WebhookDelivery


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class EventSnapshot(_WireModel):
    """The part of the envelope fixed when the delivery is created."""

    event_id: str
    event_type: EventType
    occurred_at: datetime
    aggregate_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class EnvelopeMetadata(_WireModel):
    """Per-attempt metadata."""

    webhook_id: str
    attempt: int
    max_attempts: int
    test: bool = False


class WebhookEnvelope(_WireModel):
    """JSON body POSTed to the receiver."""

    id: str
    event_id: str
    event_type: EventType
    occurred_at: datetime
    timestamp: datetime
    data: dict[str, Any]
    metadata: EnvelopeMetadata

    def to_bytes(self) -> bytes:
        """Serialize exactly as sent (and signed)."""
        return self.model_dump_json(by_alias=True).encode("utf-8")


class PayloadBuilder:
    """Builds stored snapshots and per-attempt envelopes."""

    @staticmethod
    def freeze(event: DomainEvent) -> str:
        """Snapshot a domain event as JSON for storage on a delivery.

        The snapshot is a value copy: later changes to `event.data` do not
        affect it.
        """
        snapshot = EventSnapshot(
            event_id=event.id,
            event_type=event.type,
            occurred_at=event.occurred_at,
            aggregate_id=event.aggregate_id,
            data=event.data,
        )
        return snapshot.model_dump_json(by_alias=True)

    @staticmethod
    def build(
        delivery: WebhookDelivery,
        attempt: int,
        now: datetime | None = None,
    ) -> WebhookEnvelope:
        """Wrap a delivery's frozen snapshot for one HTTP attempt."""
        snapshot = EventSnapshot.model_validate_json(delivery.payload)
        return WebhookEnvelope(
            id=delivery.id,
            event_id=snapshot.event_id,
            event_type=snapshot.event_type,
            occurred_at=snapshot.occurred_at,
            timestamp=now or utcnow(),
            data=snapshot.data,
            metadata=EnvelopeMetadata(
                webhook_id=delivery.webhook_id,
                attempt=attempt,
                max_attempts=delivery.max_attempts,
                test=delivery.is_test,
            ),
        )
