"""Domain events raised by business operations.

Publishers only need to supply `{id, type, occurred_at, data}`; the engine
passes `data` through to receivers without inspecting it.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utcnow
from .webhook import EventType


class DomainEvent(BaseModel):
    """A typed fact emitted by a business operation.

    Attributes:
        id: Unique identifier for this event.
        type: Event type tag used for webhook matching.
        occurred_at: When the business operation happened.
        aggregate_id: ID of the entity the event is about (optional).
        data: Event-specific payload, passed through untouched.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("evt"))
    type: EventType = Field(description="Event type")
    occurred_at: datetime = Field(default_factory=utcnow)
    aggregate_id: str | None = Field(default=None, description="Entity the event is about")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")

    @classmethod
    def for_user_registered(
        cls,
        registration_id: str,
        event_id: str,
        user_email: str,
        user_name: str,
        registration_status: str = "REGISTERED",
    ) -> "DomainEvent":
        """Create event for a new registration."""
        return cls(
            type=EventType.USER_REGISTERED,
            aggregate_id=registration_id,
            data={
                "eventId": event_id,
                "userEmail": user_email,
                "userName": user_name,
                "registrationStatus": registration_status,
            },
        )

    @classmethod
    def for_user_cancelled(
        cls,
        registration_id: str,
        event_id: str,
        user_email: str,
        user_name: str,
        cancellation_reason: str | None = None,
    ) -> "DomainEvent":
        """Create event for a cancelled registration."""
        return cls(
            type=EventType.USER_CANCELLED,
            aggregate_id=registration_id,
            data={
                "eventId": event_id,
                "userEmail": user_email,
                "userName": user_name,
                "cancellationReason": cancellation_reason or "",
            },
        )

    @classmethod
    def for_user_checked_in(
        cls,
        registration_id: str,
        event_id: str,
        user_email: str,
        check_in_method: str,
        session_id: str | None = None,
        location: str | None = None,
    ) -> "DomainEvent":
        """Create event for a check-in."""
        return cls(
            type=EventType.USER_CHECKED_IN,
            aggregate_id=registration_id,
            data={
                "registrationId": registration_id,
                "eventId": event_id,
                "sessionId": session_id or "",
                "userEmail": user_email,
                "checkInMethod": check_in_method,
                "location": location or "",
            },
        )

    @classmethod
    def for_event_created(
        cls,
        event_id: str,
        event_name: str,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
        venue: str | None = None,
        max_capacity: int | None = None,
        created_by: str | None = None,
    ) -> "DomainEvent":
        """Create event for a newly published event."""
        return cls(
            type=EventType.EVENT_CREATED,
            aggregate_id=event_id,
            data={
                "eventName": event_name,
                "startsAt": starts_at.isoformat() if starts_at else "",
                "endsAt": ends_at.isoformat() if ends_at else "",
                "venue": venue or "",
                "maxCapacity": max_capacity or 0,
                "createdBy": created_by or "",
            },
        )

    @classmethod
    def for_event_cancelled(
        cls,
        event_id: str,
        event_name: str,
        affected_registrations: int,
        cancellation_reason: str | None = None,
        cancelled_by: str | None = None,
    ) -> "DomainEvent":
        """Create event for a cancelled event."""
        return cls(
            type=EventType.EVENT_CANCELLED,
            aggregate_id=event_id,
            data={
                "eventName": event_name,
                "cancellationReason": cancellation_reason or "",
                "affectedRegistrations": affected_registrations,
                "cancelledBy": cancelled_by or "",
            },
        )


__all__ = ["DomainEvent"]
