"""Data models for Courier.

Records:
    - Webhook: A registered subscriber with rolling delivery counters
    - WebhookDelivery: One event delivered to one webhook, across retries

Inputs:
    - DomainEvent: A typed fact raised by a business operation

Supporting Types:
    - EventType: Event type tags webhooks subscribe to
    - WebhookStatus: ACTIVE / INACTIVE
    - DeliveryStatus: PENDING / RETRYING / SUCCESS / FAILED / EXHAUSTED
"""

from .base import generate_id, utcnow
from .delivery import FAILURE_STATUSES, TERMINAL_STATUSES, DeliveryStatus, WebhookDelivery
from .event import DomainEvent
from .webhook import ALL_EVENT_TYPES, EventType, Webhook, WebhookStatus

__all__ = [
    # Helpers
    "generate_id",
    "utcnow",
    # Webhooks
    "ALL_EVENT_TYPES",
    "EventType",
    "Webhook",
    "WebhookStatus",
    # Deliveries
    "DeliveryStatus",
    "FAILURE_STATUSES",
    "TERMINAL_STATUSES",
    "WebhookDelivery",
    # Events
    "DomainEvent",
]
