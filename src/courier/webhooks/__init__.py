"""Webhook delivery engine.

Signs, sends and retries domain events to registered HTTP endpoints with
at-least-once semantics. The delivery id doubles as the receiver's
idempotency key.

Example:
    ```python
    from courier.webhooks import DispatchCoordinator, RetryScheduler, verify_signature

    # Fan an event out to every subscribed webhook
    await coordinator.deliver_event(event)

    # Periodically retry failed attempts
    await scheduler.start()

    # Receiver side
    verify_signature(request_body, request.headers["X-Webhook-Signature"], secret)
    ```
"""

from .dispatcher import DispatchCoordinator
from .executor import (
    DELIVERY_ID_HEADER,
    EVENT_TYPE_HEADER,
    SIGNATURE_HEADER,
    DeliveryAttemptExecutor,
    backoff_delay,
)
from .payload import EnvelopeMetadata, EventSnapshot, PayloadBuilder, WebhookEnvelope
from .registry import WebhookRegistry
from .scheduler import RetryScheduler
from .signature import SIGNATURE_PREFIX, compute_signature, generate_secret, verify_signature
from .statistics import DeliveryStatistics, StatisticsAggregator
from .transport import HttpTransport, HttpxTransport, TransportResponse

__all__ = [
    # Signing
    "SIGNATURE_PREFIX",
    "compute_signature",
    "generate_secret",
    "verify_signature",
    # Registration
    "WebhookRegistry",
    # Wire format
    "EnvelopeMetadata",
    "EventSnapshot",
    "PayloadBuilder",
    "WebhookEnvelope",
    # Transport
    "HttpTransport",
    "HttpxTransport",
    "TransportResponse",
    # Delivery
    "DELIVERY_ID_HEADER",
    "EVENT_TYPE_HEADER",
    "SIGNATURE_HEADER",
    "DeliveryAttemptExecutor",
    "DispatchCoordinator",
    "RetryScheduler",
    "backoff_delay",
    # Statistics
    "DeliveryStatistics",
    "StatisticsAggregator",
]
