"""Webhook registration lifecycle.

Create, update, delete, activate/deactivate and rotate secrets for
webhooks, and answer the matching question the dispatcher asks for every
domain event: which active webhooks want this event type?
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from courier.config import Settings
from courier.exceptions import NotFoundError, ValidationError
from courier.models import EventType, Webhook, WebhookStatus, utcnow
from courier.storage import WebhookStore, conflict_retry

from .signature import generate_secret

logger = logging.getLogger(__name__)

_http_url = TypeAdapter(HttpUrl)


class WebhookRegistry:
    """CRUD and matching over Webhook records.

    Example:
        ```python
        registry = WebhookRegistry(InMemoryWebhookStore())
        webhook = await registry.create(
            name="CRM sync",
            url="https://crm.example.com/hooks",
            event_types=[EventType.USER_REGISTERED],
            created_by="ops@example.com",
        )
        matches = await registry.active_webhooks_for_event_type(EventType.USER_REGISTERED)
        ```
    """

    def __init__(self, store: WebhookStore, settings: Settings | None = None) -> None:
        self._store = store
        self._settings = settings or Settings()

    async def create(
        self,
        name: str,
        url: str,
        event_types: Iterable[EventType | str],
        max_retries: int | None = None,
        timeout_seconds: int | None = None,
        created_by: str | None = None,
    ) -> Webhook:
        """Register a new ACTIVE webhook with a freshly generated secret.

        Raises:
            ValidationError: If any field is out of bounds.
        """
        webhook = Webhook(
            name=self._validate_name(name),
            url=self._validate_url(url),
            secret=generate_secret(),
            status=WebhookStatus.ACTIVE,
            event_types=self._validate_event_types(event_types),
            created_by=created_by,
            max_retries=self._validate_max_retries(
                self._settings.default_max_retries if max_retries is None else max_retries
            ),
            timeout_seconds=self._validate_timeout(
                self._settings.default_timeout_seconds
                if timeout_seconds is None
                else timeout_seconds
            ),
        )
        await self._store.add(webhook)
        logger.info("Created webhook %s (%s) for %s", webhook.id, webhook.name, webhook.url)
        return webhook

    async def get(self, webhook_id: str) -> Webhook:
        """Get a webhook by ID.

        Raises:
            NotFoundError: If the webhook does not exist.
        """
        webhook = await self._store.get(webhook_id)
        if webhook is None:
            raise NotFoundError("webhook", webhook_id)
        return webhook

    async def list_webhooks(
        self,
        status: WebhookStatus | None = None,
        created_by: str | None = None,
    ) -> list[Webhook]:
        """List webhooks, oldest first."""
        return await self._store.list_webhooks(status=status, created_by=created_by)

    async def update(
        self,
        webhook_id: str,
        *,
        name: str | None = None,
        url: str | None = None,
        event_types: Iterable[EventType | str] | None = None,
        status: WebhookStatus | None = None,
        max_retries: int | None = None,
        timeout_seconds: int | None = None,
    ) -> Webhook:
        """Partially update a webhook. Fields left as None are unchanged.

        Raises:
            NotFoundError: If the webhook does not exist.
            ValidationError: If any provided field is out of bounds.
        """
        changes: dict[str, object] = {}
        if name is not None:
            changes["name"] = self._validate_name(name)
        if url is not None:
            changes["url"] = self._validate_url(url)
        if event_types is not None:
            changes["event_types"] = self._validate_event_types(event_types)
        if status is not None:
            changes["status"] = WebhookStatus(status)
        if max_retries is not None:
            changes["max_retries"] = self._validate_max_retries(max_retries)
        if timeout_seconds is not None:
            changes["timeout_seconds"] = self._validate_timeout(timeout_seconds)

        webhook = await self._apply(webhook_id, changes)
        logger.info("Updated webhook %s: %s", webhook_id, sorted(changes))
        return webhook

    async def delete(self, webhook_id: str) -> None:
        """Delete a webhook so it receives no further events.

        Existing delivery records are left untouched.

        Raises:
            NotFoundError: If the webhook does not exist.
        """
        if not await self._store.delete(webhook_id):
            raise NotFoundError("webhook", webhook_id)
        logger.info("Deleted webhook %s", webhook_id)

    async def set_status(self, webhook_id: str, status: WebhookStatus) -> Webhook:
        """Activate or deactivate a webhook."""
        webhook = await self._apply(webhook_id, {"status": WebhookStatus(status)})
        logger.info("Set webhook %s status to %s", webhook_id, webhook.status.value)
        return webhook

    async def regenerate_secret(self, webhook_id: str) -> Webhook:
        """Replace the webhook's secret.

        Attempts started after this call are signed with the new secret;
        requests already signed keep the signature they were sent with.
        """
        webhook = await self._apply(webhook_id, {"secret": generate_secret()})
        logger.info("Regenerated secret for webhook %s", webhook_id)
        return webhook

    async def active_webhooks_for_event_type(self, event_type: EventType) -> list[Webhook]:
        """Webhooks with status ACTIVE whose event types include `event_type`.

        Order is unspecified.
        """
        return await self._store.find_active_for_event(EventType(event_type))

    @conflict_retry
    async def _apply(self, webhook_id: str, changes: dict[str, object]) -> Webhook:
        webhook = await self.get(webhook_id)
        expected_version = webhook.version
        for key, value in changes.items():
            setattr(webhook, key, value)
        webhook.updated_at = utcnow()
        return await self._store.replace(webhook, expected_version)

    @staticmethod
    def _validate_name(name: str) -> str:
        name = name.strip()
        if not name:
            raise ValidationError("name", "must not be empty")
        return name

    def _validate_url(self, url: str) -> str:
        if len(url) > self._settings.max_url_length:
            raise ValidationError(
                "url", f"must be at most {self._settings.max_url_length} characters"
            )
        try:
            _http_url.validate_python(url)
        except PydanticValidationError as e:
            raise ValidationError("url", f"not a valid http(s) URL: {url!r}") from e
        return url

    def _validate_event_types(self, event_types: Iterable[EventType | str]) -> list[EventType]:
        parsed: list[EventType] = []
        for value in event_types:
            try:
                event_type = EventType(value)
            except ValueError as e:
                raise ValidationError("event_types", f"unknown event type: {value!r}") from e
            if event_type not in parsed:
                parsed.append(event_type)

        if not parsed:
            raise ValidationError("event_types", "at least one event type is required")
        if len(parsed) > self._settings.max_event_types:
            raise ValidationError(
                "event_types", f"at most {self._settings.max_event_types} event types allowed"
            )
        return parsed

    def _validate_max_retries(self, max_retries: int) -> int:
        if not 0 <= max_retries <= self._settings.max_retries_limit:
            raise ValidationError(
                "max_retries", f"must be between 0 and {self._settings.max_retries_limit}"
            )
        return max_retries

    def _validate_timeout(self, timeout_seconds: int) -> int:
        if not 1 <= timeout_seconds <= self._settings.max_timeout_seconds:
            raise ValidationError(
                "timeout_seconds", f"must be between 1 and {self._settings.max_timeout_seconds}"
            )
        return timeout_seconds
