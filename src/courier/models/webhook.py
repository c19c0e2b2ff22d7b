"""Webhook registration model.

A webhook is an externally registered HTTP endpoint subscribed to one or
more domain event types. Its rolling counters are maintained by the store
with atomic increments; `version` supports optimistic read-modify-write.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import generate_id, utcnow


class EventType(str, Enum):
    """Domain event types a webhook can subscribe to."""

    USER_REGISTERED = "USER_REGISTERED"
    USER_CANCELLED = "USER_CANCELLED"
    USER_CHECKED_IN = "USER_CHECKED_IN"
    USER_CHECKED_OUT = "USER_CHECKED_OUT"
    SESSION_CREATED = "SESSION_CREATED"
    SESSION_UPDATED = "SESSION_UPDATED"
    SESSION_CANCELLED = "SESSION_CANCELLED"
    EVENT_CREATED = "EVENT_CREATED"
    EVENT_UPDATED = "EVENT_UPDATED"
    EVENT_CANCELLED = "EVENT_CANCELLED"
    RESOURCE_BOOKED = "RESOURCE_BOOKED"
    RESOURCE_CANCELLED = "RESOURCE_CANCELLED"
    CONFLICT_DETECTED = "CONFLICT_DETECTED"
    CONFLICT_RESOLVED = "CONFLICT_RESOLVED"


ALL_EVENT_TYPES: list[EventType] = list(EventType)


class WebhookStatus(str, Enum):
    """Whether a webhook receives new events."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Webhook(BaseModel):
    """A registered subscriber.

    Attributes:
        id: Unique identifier, immutable after creation.
        name: Human-readable name.
        url: Destination endpoint.
        secret: HMAC key used to sign deliveries (rotatable).
        status: ACTIVE or INACTIVE.
        event_types: Event types this webhook receives (no duplicates).
        created_by: Operator who registered the webhook.
        max_retries: Retries after the initial attempt.
        timeout_seconds: HTTP timeout per attempt.
        total_deliveries: Deliveries that made at least one attempt.
        successful_deliveries: Deliveries that reached SUCCESS.
        failed_deliveries: Deliveries that reached FAILED or EXHAUSTED.
        last_delivery_at: When the most recent delivery made its first attempt.
        last_success_at: When the most recent delivery succeeded.
        version: Incremented on every write; used for conditional updates.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    name: str = Field(min_length=1, description="Human-readable name")
    url: str = Field(description="Destination endpoint")
    secret: str = Field(description="Shared secret for HMAC-SHA256 signatures")
    status: WebhookStatus = Field(default=WebhookStatus.ACTIVE)
    event_types: list[EventType] = Field(min_length=1, description="Subscribed event types")
    created_by: str | None = Field(default=None, description="Operator who registered it")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    max_retries: int = Field(default=3, ge=0, description="Retries after the initial attempt")
    timeout_seconds: int = Field(default=30, ge=1, description="HTTP timeout per attempt")

    total_deliveries: int = Field(default=0, ge=0)
    successful_deliveries: int = Field(default=0, ge=0)
    failed_deliveries: int = Field(default=0, ge=0)
    last_delivery_at: datetime | None = None
    last_success_at: datetime | None = None

    version: int = Field(default=0, ge=0)

    @field_validator("event_types")
    @classmethod
    def _dedupe_event_types(cls, value: list[EventType]) -> list[EventType]:
        return list(dict.fromkeys(value))

    @property
    def is_active(self) -> bool:
        return self.status == WebhookStatus.ACTIVE

    @property
    def max_attempts(self) -> int:
        """Initial attempt plus configured retries."""
        return self.max_retries + 1

    @property
    def success_rate(self) -> float:
        if self.total_deliveries == 0:
            return 0.0
        return self.successful_deliveries / self.total_deliveries

    def subscribes_to(self, event_type: EventType) -> bool:
        """Check if this webhook is active and subscribed to the event type."""
        return self.is_active and event_type in self.event_types


__all__ = [
    "ALL_EVENT_TYPES",
    "EventType",
    "Webhook",
    "WebhookStatus",
]
