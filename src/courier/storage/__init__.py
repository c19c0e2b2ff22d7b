"""Storage backends for Courier.

Webhooks and deliveries live behind the `WebhookStore` and `DeliveryStore`
interfaces. The bundled in-memory implementations serialize access per
store and hand out copies of stored records.

Example:
    ```python
    from courier.storage import InMemoryDeliveryStore, InMemoryWebhookStore

    webhooks = InMemoryWebhookStore()
    deliveries = InMemoryDeliveryStore()
    due = await deliveries.list_due(now, lease_seconds=180)
    ```
"""

from .base import DeliveryStore, WebhookStore
from .memory import InMemoryDeliveryStore, InMemoryWebhookStore
from .retry import conflict_retry

__all__ = [
    "DeliveryStore",
    "InMemoryDeliveryStore",
    "InMemoryWebhookStore",
    "WebhookStore",
    "conflict_retry",
]
