"""Single delivery attempts and the delivery state machine.

One call to `DeliveryAttemptExecutor.execute` performs at most one HTTP
attempt for one delivery:

1. Claim the delivery in the store (the only gate in front of an attempt).
2. Count the attempt, render the envelope and sign it with the webhook's
   current secret.
3. POST it within the webhook's timeout.
4. Classify the outcome and record the next state:

   - 2xx: SUCCESS
   - 4xx: FAILED, never retried (EXHAUSTED if the delivery was already
     retrying)
   - anything else, or a transport error: RETRYING with the next backoff
     delay, or EXHAUSTED once the last allowed attempt has failed
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from courier.config import Settings
from courier.exceptions import (
    ConflictError,
    CourierError,
    ReceiverRejected,
    ReceiverUnavailable,
    TransportError,
)
from courier.logging import delivery_context
from courier.models import DeliveryStatus, Webhook, WebhookDelivery, generate_id, utcnow

from .payload import PayloadBuilder
from .signature import compute_signature

if TYPE_CHECKING:
    from courier.storage import DeliveryStore, WebhookStore

    from .transport import HttpTransport, TransportResponse

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_TYPE_HEADER = "X-Webhook-Event-Type"
DELIVERY_ID_HEADER = "X-Webhook-Delivery-Id"


def backoff_delay(attempt: int, delays_minutes: Sequence[int]) -> timedelta:
    """Delay before the attempt that follows failed attempt number `attempt`.

    With the default schedule [1, 5, 15], attempt 2 waits one minute,
    attempt 3 five minutes, attempt 4 and any later attempt fifteen minutes.
    """
    index = min(max(attempt, 1) - 1, len(delays_minutes) - 1)
    return timedelta(minutes=delays_minutes[index])


class DeliveryAttemptExecutor:
    """Runs one HTTP attempt for a delivery and records its outcome.

    Safe to call from any number of workers for the same delivery id: the
    store claim lets exactly one of them proceed, the others get None.
    """

    def __init__(
        self,
        webhooks: WebhookStore,
        deliveries: DeliveryStore,
        transport: HttpTransport,
        settings: Settings | None = None,
        payloads: PayloadBuilder | None = None,
        worker_id: str | None = None,
    ) -> None:
        self._webhooks = webhooks
        self._deliveries = deliveries
        self._transport = transport
        self._settings = settings or Settings()
        self._payloads = payloads or PayloadBuilder()
        self.worker_id = worker_id or generate_id("wrk")

    async def execute(
        self,
        delivery_id: str,
        *,
        force: bool = False,
        due_at: datetime | None = None,
    ) -> WebhookDelivery | None:
        """Attempt a delivery if it can be claimed.

        Args:
            delivery_id: Delivery to attempt.
            force: Attempt a RETRYING delivery before its next_retry_at.
            due_at: Time the RETRYING schedule is checked against; defaults
                to the moment of the claim. The claim itself, the outcome
                and the next backoff are always stamped with the current time.

        Returns:
            The delivery after the attempt, or None if it was terminal,
            not yet due, or held by another worker.
        """
        claimed_at = utcnow()
        delivery = await self._deliveries.claim(
            delivery_id,
            self.worker_id,
            claimed_at,
            self._settings.claim_lease_seconds,
            force=force,
            due_at=due_at,
        )
        if delivery is None:
            logger.debug("Delivery %s not claimable, skipping", delivery_id)
            return None

        with delivery_context(delivery.id, delivery.webhook_id):
            try:
                return await self._run(delivery, claimed_at)
            finally:
                # No-op once the outcome was saved
                await self._deliveries.release(delivery.id, self.worker_id)

    async def _run(self, delivery: WebhookDelivery, started_at: datetime) -> WebhookDelivery:
        webhook = await self._webhooks.get(delivery.webhook_id)
        if webhook is None:
            delivery.mark_failed("webhook deleted")
            logger.warning("Webhook %s no longer exists, failing delivery", delivery.webhook_id)
            await self._save(delivery)
            return delivery

        attempt = delivery.begin_attempt()
        if attempt == 1 and not delivery.is_test:
            await self._webhooks.increment_counters(webhook.id, total=1, delivered_at=started_at)

        try:
            try:
                response = await self._send(webhook, delivery, attempt)
            finally:
                # Backoff and delivered_at count from when the outcome is known
                finished_at = utcnow()
            self._classify(response)
        except ReceiverRejected as e:
            delivery.mark_failed(str(e), e.status_code, e.body)
            logger.warning(
                "Webhook rejected: %s to %s (status %d), not retrying",
                delivery.event_type.value,
                webhook.url,
                e.status_code,
            )
        except ReceiverUnavailable as e:
            self._schedule_retry(delivery, webhook, finished_at, str(e), e.status_code, e.body)
        except TransportError as e:
            self._schedule_retry(delivery, webhook, finished_at, e.message)
        except Exception as e:
            logger.exception("Unexpected error delivering %s", delivery.id)
            self._schedule_retry(delivery, webhook, finished_at, f"Unexpected error: {e}")
        else:
            delivery.mark_success(
                response.status_code, self._truncate(response.body), now=finished_at
            )
            logger.info(
                "Webhook delivered: %s to %s (status %d, attempt %d, %.0fms)",
                delivery.event_type.value,
                webhook.url,
                response.status_code,
                attempt,
                response.elapsed_ms,
            )

        if await self._save(delivery):
            await self._record_outcome(delivery, finished_at)
        return delivery

    async def _send(
        self,
        webhook: Webhook,
        delivery: WebhookDelivery,
        attempt: int,
    ) -> TransportResponse:
        body = self._payloads.build(delivery, attempt).to_bytes()
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._settings.user_agent,
            SIGNATURE_HEADER: compute_signature(body, webhook.secret),
            EVENT_TYPE_HEADER: delivery.event_type.value,
            DELIVERY_ID_HEADER: delivery.id,
        }
        logger.debug(
            "Attempting delivery %s (attempt %d/%d) to %s",
            delivery.id,
            attempt,
            delivery.max_attempts,
            webhook.url,
        )
        return await self._transport.post(
            webhook.url,
            body,
            headers,
            timeout_seconds=webhook.timeout_seconds,
        )

    def _classify(self, response: TransportResponse) -> None:
        """Raise the delivery error for a non-2xx response."""
        if response.is_success:
            return
        body = self._truncate(response.body)
        if response.is_client_error:
            raise ReceiverRejected(response.status_code, body)
        raise ReceiverUnavailable(response.status_code, body)

    def _schedule_retry(
        self,
        delivery: WebhookDelivery,
        webhook: Webhook,
        finished_at: datetime,
        error: str,
        response_status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        next_retry_at = finished_at + backoff_delay(
            delivery.attempt_count, self._settings.retry_delays_minutes
        )
        delivery.mark_retryable_failure(error, next_retry_at, response_status, response_body)

        if delivery.status == DeliveryStatus.EXHAUSTED:
            logger.warning(
                "Webhook max attempts exceeded: %s to %s after %d attempts: %s",
                delivery.event_type.value,
                webhook.url,
                delivery.attempt_count,
                error,
            )
        else:
            logger.info(
                "Webhook scheduled for retry: %s to %s (attempt %d at %s): %s",
                delivery.event_type.value,
                webhook.url,
                delivery.attempt_count + 1,
                next_retry_at.isoformat(),
                error,
            )

    async def _save(self, delivery: WebhookDelivery) -> bool:
        try:
            await self._deliveries.save_claimed(delivery, self.worker_id)
        except ConflictError:
            # Lease expired mid-attempt and another worker took over
            logger.warning("Lost claim on delivery %s, outcome discarded", delivery.id)
            return False
        except CourierError:
            logger.exception("Failed to record outcome of delivery %s", delivery.id)
            raise
        return True

    async def _record_outcome(self, delivery: WebhookDelivery, finished_at: datetime) -> None:
        if delivery.is_test:
            return
        if delivery.status == DeliveryStatus.SUCCESS:
            await self._webhooks.increment_counters(
                delivery.webhook_id, successful=1, succeeded_at=finished_at
            )
        elif delivery.status in (DeliveryStatus.FAILED, DeliveryStatus.EXHAUSTED):
            await self._webhooks.increment_counters(delivery.webhook_id, failed=1)

    def _truncate(self, body: str | None) -> str | None:
        if not body:
            return None
        return body[: self._settings.response_body_max_chars]
