"""Courier: signed, retried webhook delivery for domain events.

Turns internal domain events into HMAC-signed HTTP notifications with
at-least-once delivery, fixed-delay retries and per-webhook statistics.

Quick Start:
    from courier.models import DomainEvent
    from courier.service import WebhookService

    async with WebhookService.create() as courier:
        webhook = await courier.create_webhook(
            name="CRM sync",
            url="https://crm.example.com/hooks",
            event_types=["USER_REGISTERED"],
        )

        # Publish from business code; delivery runs in the background
        await courier.publish(
            DomainEvent.for_user_registered(
                registration_id="reg_1",
                event_id="conf_2026",
                user_email="ada@example.com",
                user_name="Ada",
            )
        )

Records:
    - Webhook: A registered receiver and its subscriptions
    - WebhookDelivery: One event sent to one webhook, across retries
    - DomainEvent: The fact being delivered
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    ConflictError,
    CourierError,
    DeliveryStateError,
    NotFoundError,
    ReceiverRejected,
    ReceiverUnavailable,
    TransportError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    DeliveryStatus,
    DomainEvent,
    EventType,
    Webhook,
    WebhookDelivery,
    WebhookStatus,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    # Exceptions
    "CourierError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "DeliveryStateError",
    "ConfigurationError",
    "TransportError",
    "ReceiverRejected",
    "ReceiverUnavailable",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "DeliveryStatus",
    "DomainEvent",
    "EventType",
    "Webhook",
    "WebhookDelivery",
    "WebhookStatus",
]
