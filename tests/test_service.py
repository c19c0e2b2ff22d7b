"""Tests for WebhookService operations."""

import json
from datetime import timedelta

import pytest
from conftest import FakeTransport, respond

from courier.config import Settings
from courier.exceptions import ConflictError, DeliveryStateError, NotFoundError
from courier.models import DeliveryStatus, EventType, WebhookStatus, utcnow
from courier.service import DEFAULT_TEST_DATA, WebhookService
from courier.storage import InMemoryDeliveryStore, InMemoryWebhookStore


async def create_webhook(service, **overrides):
    fields = {
        "name": "CRM sync",
        "url": "https://crm.example.com/hooks",
        "event_types": [EventType.USER_REGISTERED],
    }
    fields.update(overrides)
    return await service.create_webhook(**fields)


async def deliver(service, event):
    """Publish an event and wait for its first attempts."""
    delivery_ids = await service.deliver_event(event)
    await service.drain()
    return delivery_ids


class TestCreate:
    """Tests for WebhookService.create."""

    @pytest.mark.asyncio
    async def test_create_with_defaults(self):
        transport = FakeTransport()
        service = WebhookService.create(transport=transport)

        assert isinstance(service.webhooks, InMemoryWebhookStore)
        assert isinstance(service.deliveries, InMemoryDeliveryStore)
        assert service.settings.retry_enabled is True

        await service.close()
        assert transport.closed

    @pytest.mark.asyncio
    async def test_context_manager_starts_and_stops(self):
        settings = Settings(retry_enabled=True, retry_interval_seconds=60)
        async with WebhookService.create(settings, transport=FakeTransport()) as service:
            assert service.scheduler.is_running
        assert not service.scheduler.is_running


class TestPublish:
    """Tests for publishing domain events."""

    @pytest.mark.asyncio
    async def test_publish_through_bus(self, service, delivery_store, transport, registered_event):
        """Publishing on the bus should reach every subscribed webhook."""
        webhook = await create_webhook(service)

        assert await service.publish(registered_event) == 1
        await service.drain()

        deliveries = await service.list_deliveries(webhook.id)
        assert len(deliveries) == 1
        assert deliveries[0].status == DeliveryStatus.SUCCESS
        assert json.loads(transport.requests[0].body)["eventId"] == registered_event.id

    @pytest.mark.asyncio
    async def test_publish_never_raises_on_receiver_failure(
        self, service, transport, registered_event
    ):
        transport.default = respond(500)
        await create_webhook(service)

        await service.publish(registered_event)
        await service.drain()

    @pytest.mark.asyncio
    async def test_other_bus_subscribers_still_run(self, service, registered_event):
        seen = []

        @service.event_bus.on(EventType.USER_REGISTERED)
        async def audit(event):
            seen.append(event.id)

        assert await service.publish(registered_event) == 2
        assert seen == [registered_event.id]


class TestDeliveryHistory:
    """Tests for list_deliveries and get_delivery."""

    @pytest.mark.asyncio
    async def test_list_unknown_webhook(self, service):
        with pytest.raises(NotFoundError):
            await service.list_deliveries("whk_missing")

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, service, transport, registered_event):
        transport.queue(respond(200), respond(500))
        webhook = await create_webhook(service)
        await deliver(service, registered_event)
        await deliver(service, registered_event)

        succeeded = await service.list_deliveries(webhook.id, status=DeliveryStatus.SUCCESS)
        retrying = await service.list_deliveries(webhook.id, status=DeliveryStatus.RETRYING)
        assert len(succeeded) == 1
        assert len(retrying) == 1

    @pytest.mark.asyncio
    async def test_get_delivery_checks_owner(self, service, registered_event):
        webhook = await create_webhook(service)
        other = await create_webhook(service, name="Other")
        await deliver(service, registered_event)

        # Both webhooks subscribe, so pick the one that belongs to `webhook`
        owned = await service.list_deliveries(webhook.id)
        assert (await service.get_delivery(webhook.id, owned[0].id)).id == owned[0].id

        with pytest.raises(NotFoundError):
            await service.get_delivery(other.id, owned[0].id)
        with pytest.raises(NotFoundError):
            await service.get_delivery(webhook.id, "dlv_missing")


class TestRetryDelivery:
    """Tests for retrying a single delivery."""

    @pytest.mark.asyncio
    async def test_retry_now_ignores_backoff(self, service, transport, registered_event):
        """An operator retry of a RETRYING delivery should attempt it immediately."""
        transport.queue(respond(503), respond(200))
        webhook = await create_webhook(service)
        (delivery_id,) = await deliver(service, registered_event)

        retried = await service.retry_delivery(webhook.id, delivery_id)

        assert retried.id == delivery_id
        assert retried.status == DeliveryStatus.SUCCESS
        assert retried.attempt_count == 2

    @pytest.mark.asyncio
    async def test_retry_success_rejected(self, service, registered_event):
        webhook = await create_webhook(service)
        (delivery_id,) = await deliver(service, registered_event)

        with pytest.raises(DeliveryStateError):
            await service.retry_delivery(webhook.id, delivery_id)

    @pytest.mark.asyncio
    async def test_retry_failed_replays(self, service, transport, registered_event):
        """A FAILED delivery is left alone; a new delivery with the same payload is sent."""
        transport.queue(respond(400, "bad"), respond(200))
        webhook = await create_webhook(service)
        (delivery_id,) = await deliver(service, registered_event)
        original = await service.get_delivery(webhook.id, delivery_id)

        replay = await service.retry_delivery(webhook.id, delivery_id)

        assert replay.id != delivery_id
        assert replay.replay_of == delivery_id
        assert replay.status == DeliveryStatus.SUCCESS
        assert replay.payload == original.payload
        assert (await service.get_delivery(webhook.id, delivery_id)).status == (
            DeliveryStatus.FAILED
        )
        first, second = (json.loads(r.body) for r in transport.requests)
        assert first["data"] == second["data"]
        assert second["id"] == replay.id

    @pytest.mark.asyncio
    async def test_retry_while_claimed_conflicts(
        self, service, delivery_store, transport, registered_event
    ):
        transport.queue(respond(500))
        webhook = await create_webhook(service)
        (delivery_id,) = await deliver(service, registered_event)
        await delivery_store.claim(
            delivery_id, "wrk_other", utcnow(), service.settings.claim_lease_seconds, force=True
        )

        with pytest.raises(ConflictError):
            await service.retry_delivery(webhook.id, delivery_id)


class TestRetryFailedDeliveries:
    """Tests for the bulk replay of failed deliveries."""

    @pytest.mark.asyncio
    async def test_nothing_failed(self, service):
        result = await service.retry_failed_deliveries()
        assert result.count == 0
        assert result.skipped == 0

    @pytest.mark.asyncio
    async def test_replays_each_failure_once(self, service, transport, registered_event):
        transport.queue(respond(404), respond(422))
        webhook = await create_webhook(service)
        failed_ids = await deliver(service, registered_event)
        failed_ids += await deliver(service, registered_event)

        result = await service.retry_failed_deliveries()
        await service.drain()

        assert set(result.replayed) == set(failed_ids)
        deliveries = await service.list_deliveries(webhook.id)
        replays = [d for d in deliveries if d.replay_of]
        assert {d.replay_of for d in replays} == set(failed_ids)
        assert all(d.status == DeliveryStatus.SUCCESS for d in replays)

        again = await service.retry_failed_deliveries()
        assert again.count == 0
        assert again.skipped == 2

    @pytest.mark.asyncio
    async def test_skips_inactive_and_deleted(self, service, transport, registered_event):
        transport.default = respond(410)
        paused = await create_webhook(service, name="paused")
        removed = await create_webhook(service, name="removed")
        await deliver(service, registered_event)
        await service.deactivate_webhook(paused.id)
        await service.delete_webhook(removed.id)

        result = await service.retry_failed_deliveries()

        assert result.count == 0
        assert result.skipped == 2

    @pytest.mark.asyncio
    async def test_exhausted_deliveries_replayed(
        self, service, transport, delivery_store, registered_event
    ):
        transport.queue(respond(500))
        webhook = await create_webhook(service, max_retries=0)
        (delivery_id,) = await deliver(service, registered_event)
        assert (await delivery_store.get(delivery_id)).status == DeliveryStatus.EXHAUSTED

        result = await service.retry_failed_deliveries()
        await service.drain()

        replay = await delivery_store.get(result.replayed[delivery_id])
        assert replay.webhook_id == webhook.id
        assert replay.status == DeliveryStatus.SUCCESS


class TestTestSend:
    """Tests for operator test sends."""

    @pytest.mark.asyncio
    async def test_default_test_payload(self, service, transport, webhook_store):
        webhook = await create_webhook(service)

        result = await service.test(webhook.id)

        assert result.success is True
        assert result.response_status == 200
        body = json.loads(transport.requests[0].body)
        assert body["eventType"] == "USER_REGISTERED"
        assert body["data"] == DEFAULT_TEST_DATA
        assert body["metadata"]["test"] is True
        assert body["metadata"]["maxAttempts"] == 1

        counted = await webhook_store.get(webhook.id)
        assert counted.total_deliveries == 0
        stats = await service.statistics(webhook.id)
        assert stats.total == 0

    @pytest.mark.asyncio
    async def test_custom_event_and_data(self, service, transport):
        webhook = await create_webhook(
            service, event_types=[EventType.USER_REGISTERED, EventType.EVENT_CANCELLED]
        )

        await service.test(webhook.id, event_type="EVENT_CANCELLED", sample_data={"eventId": "e1"})

        body = json.loads(transport.requests[0].body)
        assert body["eventType"] == "EVENT_CANCELLED"
        assert body["data"] == {"eventId": "e1"}

    @pytest.mark.asyncio
    async def test_failed_test_send_is_not_retried(self, service, transport, delivery_store):
        transport.queue(respond(503, "maintenance"))
        webhook = await create_webhook(service)

        result = await service.test(webhook.id)

        assert result.success is False
        assert result.response_status == 503
        assert result.delivery.status == DeliveryStatus.EXHAUSTED
        assert await delivery_store.list_due(utcnow() + timedelta(days=1), 180) == []

    @pytest.mark.asyncio
    async def test_unknown_webhook(self, service):
        with pytest.raises(NotFoundError):
            await service.test("whk_missing")


class TestAdmin:
    """Tests for administrative wrappers."""

    @pytest.mark.asyncio
    async def test_deactivate_stops_new_deliveries(self, service, registered_event):
        webhook = await create_webhook(service)
        await service.deactivate_webhook(webhook.id)

        assert await deliver(service, registered_event) == []

        await service.activate_webhook(webhook.id)
        assert len(await deliver(service, registered_event)) == 1

    @pytest.mark.asyncio
    async def test_update_and_list(self, service):
        webhook = await create_webhook(service, created_by="alice")
        await service.update_webhook(webhook.id, status=WebhookStatus.INACTIVE)

        assert await service.list_webhooks(status=WebhookStatus.ACTIVE) == []
        listed = await service.list_webhooks(created_by="alice")
        assert [w.id for w in listed] == [webhook.id]
