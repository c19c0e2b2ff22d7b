"""FastAPI router for Courier admin endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from courier import __version__
from courier.models import DeliveryStatus, WebhookStatus
from courier.service import WebhookService
from courier.webhooks import DeliveryStatistics

from .schemas import (
    DeliveryListResponse,
    DeliveryResponse,
    HealthResponse,
    RetryFailedResponse,
    TestWebhookRequest,
    TestWebhookResponse,
    WebhookCreateRequest,
    WebhookListResponse,
    WebhookResponse,
    WebhookSecretResponse,
    WebhookUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: WebhookService | None = None


def set_service(service: WebhookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> WebhookService:
    """Dependency to get the WebhookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[WebhookService, Depends(get_service)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__)
    return HealthResponse(
        status="healthy",
        version=__version__,
        scheduler_running=_service.scheduler.is_running,
    )


@router.post(
    "/webhooks",
    response_model=WebhookSecretResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(
    request: WebhookCreateRequest,
    service: ServiceDep,
) -> WebhookSecretResponse:
    """Register a webhook.

    The response is the only place (besides secret rotation) where the
    signing secret is returned.
    """
    webhook = await service.create_webhook(
        name=request.name,
        url=request.url,
        event_types=request.event_types,
        max_retries=request.max_retries,
        timeout_seconds=request.timeout_seconds,
        created_by=request.created_by,
    )
    return WebhookSecretResponse.from_webhook(webhook)


@router.get("/webhooks", response_model=WebhookListResponse, tags=["webhooks"])
async def list_webhooks(
    service: ServiceDep,
    status_filter: Annotated[WebhookStatus | None, Query(alias="status")] = None,
    created_by: str | None = None,
) -> WebhookListResponse:
    """List webhooks, optionally filtered by status and creator."""
    webhooks = await service.list_webhooks(status=status_filter, created_by=created_by)
    return WebhookListResponse(
        webhooks=[WebhookResponse.from_webhook(w) for w in webhooks],
        count=len(webhooks),
    )


@router.post(
    "/webhooks/retry-failed",
    response_model=RetryFailedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["deliveries"],
)
async def retry_failed_deliveries(service: ServiceDep) -> RetryFailedResponse:
    """Replay every failed or exhausted delivery in the background."""
    result = await service.retry_failed_deliveries()
    return RetryFailedResponse.from_result(result)


@router.get("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def get_webhook(webhook_id: str, service: ServiceDep) -> WebhookResponse:
    webhook = await service.get_webhook(webhook_id)
    return WebhookResponse.from_webhook(webhook)


@router.put("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def update_webhook(
    webhook_id: str,
    request: WebhookUpdateRequest,
    service: ServiceDep,
) -> WebhookResponse:
    """Partially update a webhook."""
    webhook = await service.update_webhook(
        webhook_id,
        name=request.name,
        url=request.url,
        event_types=request.event_types,
        status=request.status,
        max_retries=request.max_retries,
        timeout_seconds=request.timeout_seconds,
    )
    return WebhookResponse.from_webhook(webhook)


@router.delete(
    "/webhooks/{webhook_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["webhooks"],
)
async def delete_webhook(webhook_id: str, service: ServiceDep) -> Response:
    """Delete a webhook. Its delivery history is kept."""
    await service.delete_webhook(webhook_id)
    logger.info("Webhook %s deleted via API", webhook_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/webhooks/{webhook_id}/activate",
    response_model=WebhookResponse,
    tags=["webhooks"],
)
async def activate_webhook(webhook_id: str, service: ServiceDep) -> WebhookResponse:
    webhook = await service.activate_webhook(webhook_id)
    return WebhookResponse.from_webhook(webhook)


@router.post(
    "/webhooks/{webhook_id}/deactivate",
    response_model=WebhookResponse,
    tags=["webhooks"],
)
async def deactivate_webhook(webhook_id: str, service: ServiceDep) -> WebhookResponse:
    webhook = await service.deactivate_webhook(webhook_id)
    return WebhookResponse.from_webhook(webhook)


@router.post(
    "/webhooks/{webhook_id}/regenerate-secret",
    response_model=WebhookSecretResponse,
    tags=["webhooks"],
)
async def regenerate_secret(webhook_id: str, service: ServiceDep) -> WebhookSecretResponse:
    """Rotate the signing secret and return the new one."""
    webhook = await service.regenerate_secret(webhook_id)
    return WebhookSecretResponse.from_webhook(webhook)


@router.get(
    "/webhooks/{webhook_id}/deliveries",
    response_model=DeliveryListResponse,
    tags=["deliveries"],
)
async def list_deliveries(
    webhook_id: str,
    service: ServiceDep,
    status_filter: Annotated[DeliveryStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> DeliveryListResponse:
    """Delivery history for a webhook, newest first."""
    deliveries = await service.list_deliveries(webhook_id, status=status_filter, limit=limit)
    return DeliveryListResponse(
        deliveries=[DeliveryResponse.from_delivery(d) for d in deliveries],
        count=len(deliveries),
    )


@router.get(
    "/webhooks/{webhook_id}/deliveries/{delivery_id}",
    response_model=DeliveryResponse,
    tags=["deliveries"],
)
async def get_delivery(webhook_id: str, delivery_id: str, service: ServiceDep) -> DeliveryResponse:
    delivery = await service.get_delivery(webhook_id, delivery_id)
    return DeliveryResponse.from_delivery(delivery)


@router.post(
    "/webhooks/{webhook_id}/deliveries/{delivery_id}/retry",
    response_model=DeliveryResponse,
    tags=["deliveries"],
)
async def retry_delivery(
    webhook_id: str,
    delivery_id: str,
    service: ServiceDep,
) -> DeliveryResponse:
    """Attempt a delivery now, or replay it if it already failed."""
    delivery = await service.retry_delivery(webhook_id, delivery_id)
    return DeliveryResponse.from_delivery(delivery)


@router.post(
    "/webhooks/{webhook_id}/test",
    response_model=TestWebhookResponse,
    tags=["webhooks"],
)
async def test_webhook(
    webhook_id: str,
    request: TestWebhookRequest,
    service: ServiceDep,
) -> TestWebhookResponse:
    """Send a synthetic delivery and report the receiver's answer."""
    result = await service.test(
        webhook_id,
        event_type=request.event_type,
        sample_data=request.test_data or None,
    )
    return TestWebhookResponse.from_result(result)


@router.get(
    "/webhooks/{webhook_id}/statistics",
    response_model=DeliveryStatistics,
    tags=["deliveries"],
)
async def get_statistics(webhook_id: str, service: ServiceDep) -> DeliveryStatistics:
    return await service.statistics(webhook_id)
