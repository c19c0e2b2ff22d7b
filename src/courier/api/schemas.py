"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from courier.models import (
    DeliveryStatus,
    EventType,
    Webhook,
    WebhookDelivery,
    WebhookStatus,
)
from courier.service import RetryFailedResult, TestDeliveryResult


class WebhookCreateRequest(BaseModel):
    """Request body for registering a webhook.

    Bounds (URL length, number of event types, retry and timeout limits)
    are enforced by the registry and reported as 400 validation errors.

    Attributes:
        name: Display name.
        url: Receiver endpoint (http or https).
        event_types: Event types to deliver.
        max_retries: Retries after the first attempt (default from settings).
        timeout_seconds: Per-attempt HTTP timeout (default from settings).
        created_by: Who registered the webhook.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(description="Display name")
    url: str = Field(description="Receiver endpoint")
    event_types: list[EventType] = Field(description="Event types to deliver")
    max_retries: int | None = Field(default=None, description="Retries after the first attempt")
    timeout_seconds: int | None = Field(default=None, description="Per-attempt HTTP timeout")
    created_by: str | None = Field(default=None, description="Who registered the webhook")


class WebhookUpdateRequest(BaseModel):
    """Request body for a partial webhook update. Omitted fields are unchanged."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    url: str | None = None
    event_types: list[EventType] | None = None
    status: WebhookStatus | None = None
    max_retries: int | None = None
    timeout_seconds: int | None = None


class WebhookResponse(BaseModel):
    """Response model for a webhook. The secret is never included."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    url: str
    status: WebhookStatus
    event_types: list[EventType]
    created_by: str | None
    created_at: datetime
    updated_at: datetime
    max_retries: int
    timeout_seconds: int
    total_deliveries: int
    successful_deliveries: int
    failed_deliveries: int
    success_rate: float
    last_delivery_at: datetime | None
    last_success_at: datetime | None

    @classmethod
    def from_webhook(cls, webhook: Webhook) -> WebhookResponse:
        return cls(
            id=webhook.id,
            name=webhook.name,
            url=webhook.url,
            status=webhook.status,
            event_types=list(webhook.event_types),
            created_by=webhook.created_by,
            created_at=webhook.created_at,
            updated_at=webhook.updated_at,
            max_retries=webhook.max_retries,
            timeout_seconds=webhook.timeout_seconds,
            total_deliveries=webhook.total_deliveries,
            successful_deliveries=webhook.successful_deliveries,
            failed_deliveries=webhook.failed_deliveries,
            success_rate=webhook.success_rate,
            last_delivery_at=webhook.last_delivery_at,
            last_success_at=webhook.last_success_at,
        )


class WebhookSecretResponse(WebhookResponse):
    """Webhook plus its signing secret.

    Returned only on creation and secret rotation, so the caller can pass
    the secret on to the receiver.
    """

    secret: str

    @classmethod
    def from_webhook(cls, webhook: Webhook) -> WebhookSecretResponse:
        data = WebhookResponse.from_webhook(webhook).model_dump()
        return cls(**data, secret=webhook.secret)


class WebhookListResponse(BaseModel):
    """Response for listing webhooks."""

    model_config = ConfigDict(extra="forbid")

    webhooks: list[WebhookResponse]
    count: int


class DeliveryResponse(BaseModel):
    """Response model for a delivery (payload omitted)."""

    model_config = ConfigDict(extra="forbid")

    id: str
    webhook_id: str
    event_id: str
    event_type: EventType
    status: DeliveryStatus
    attempt_count: int
    max_attempts: int
    response_status: int | None
    response_body: str | None
    error_message: str | None
    created_at: datetime
    delivered_at: datetime | None
    next_retry_at: datetime | None
    is_test: bool
    replay_of: str | None

    @classmethod
    def from_delivery(cls, delivery: WebhookDelivery) -> DeliveryResponse:
        return cls(
            id=delivery.id,
            webhook_id=delivery.webhook_id,
            event_id=delivery.event_id,
            event_type=delivery.event_type,
            status=delivery.status,
            attempt_count=delivery.attempt_count,
            max_attempts=delivery.max_attempts,
            response_status=delivery.response_status,
            response_body=delivery.response_body,
            error_message=delivery.error_message,
            created_at=delivery.created_at,
            delivered_at=delivery.delivered_at,
            next_retry_at=delivery.next_retry_at,
            is_test=delivery.is_test,
            replay_of=delivery.replay_of,
        )


class DeliveryListResponse(BaseModel):
    """Response for a webhook's delivery history."""

    model_config = ConfigDict(extra="forbid")

    deliveries: list[DeliveryResponse]
    count: int


class TestWebhookRequest(BaseModel):
    """Request body for a test send.

    Attributes:
        event_type: Event type to simulate (defaults to the webhook's first).
        test_data: Payload data (defaults to a short test message).
    """

    __test__ = False

    model_config = ConfigDict(extra="forbid")

    event_type: EventType | None = None
    test_data: dict[str, Any] = Field(default_factory=dict)


class TestWebhookResponse(BaseModel):
    """Outcome of a test send."""

    __test__ = False

    model_config = ConfigDict(extra="forbid")

    success: bool
    delivery: DeliveryResponse

    @classmethod
    def from_result(cls, result: TestDeliveryResult) -> TestWebhookResponse:
        return cls(
            success=result.success,
            delivery=DeliveryResponse.from_delivery(result.delivery),
        )


class RetryFailedResponse(BaseModel):
    """Response for the bulk replay of failed deliveries."""

    model_config = ConfigDict(extra="forbid")

    replayed: dict[str, str] = Field(description="Original delivery ID -> replay delivery ID")
    count: int
    skipped: int

    @classmethod
    def from_result(cls, result: RetryFailedResult) -> RetryFailedResponse:
        return cls(replayed=result.replayed, count=result.count, skipped=result.skipped)


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status (healthy, unhealthy).
        version: API version.
        scheduler_running: Whether the retry sweep is running.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    scheduler_running: bool = False
