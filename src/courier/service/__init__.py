"""Courier service layer.

Provides the high-level WebhookService for administering webhooks and
publishing domain events.

Example:
    ```python
    from courier.service import WebhookService

    async with WebhookService.create() as courier:
        webhook = await courier.create_webhook(
            name="CRM sync",
            url="https://crm.example.com/hooks",
            event_types=["USER_REGISTERED"],
        )
        result = await courier.test(webhook.id)
    ```
"""

from .base import WebhookService
from .deliveries import DEFAULT_TEST_DATA
from .models import RetryFailedResult, TestDeliveryResult

__all__ = [
    "DEFAULT_TEST_DATA",
    "RetryFailedResult",
    "TestDeliveryResult",
    "WebhookService",
]
