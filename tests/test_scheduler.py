"""Tests for the periodic retry sweep."""

import asyncio
import json
from datetime import timedelta
from unittest.mock import patch

import pytest
from conftest import SlowTransport, respond

from courier.config import Settings
from courier.models import DeliveryStatus, EventType, WebhookDelivery, utcnow
from courier.webhooks import DeliveryAttemptExecutor, PayloadBuilder, RetryScheduler


async def subscribe(registry, **overrides):
    fields = {
        "name": "CRM",
        "url": "https://crm.example.com/hooks",
        "event_types": [EventType.USER_REGISTERED],
    }
    fields.update(overrides)
    return await registry.create(**fields)


class TestRunOnce:
    """Tests for RetryScheduler.run_once."""

    @pytest.mark.asyncio
    async def test_nothing_due(self, scheduler):
        assert await scheduler.run_once() == 0

    @pytest.mark.asyncio
    async def test_retries_until_exhausted(
        self,
        scheduler,
        dispatcher,
        registry,
        delivery_store,
        webhook_store,
        transport,
        registered_event,
    ):
        """A receiver that always fails should see four attempts, then EXHAUSTED."""
        transport.default = respond(500, "down")
        webhook = await subscribe(registry, max_retries=3)

        (delivery_id,) = await dispatcher.deliver_event(registered_event)
        await dispatcher.drain()
        first = await delivery_store.get(delivery_id)
        assert first.status == DeliveryStatus.RETRYING
        assert first.attempt_count == 1

        base = utcnow()
        # Before the first backoff elapses nothing is due
        assert await scheduler.run_once(now=first.next_retry_at - timedelta(seconds=1)) == 0

        assert await scheduler.run_once(now=base + timedelta(minutes=2)) == 1
        assert (await delivery_store.get(delivery_id)).attempt_count == 2

        assert await scheduler.run_once(now=base + timedelta(minutes=8)) == 1
        assert (await delivery_store.get(delivery_id)).attempt_count == 3

        assert await scheduler.run_once(now=base + timedelta(minutes=30)) == 1
        final = await delivery_store.get(delivery_id)
        assert final.status == DeliveryStatus.EXHAUSTED
        assert final.attempt_count == 4
        assert final.next_retry_at is None
        assert final.response_status == 500

        assert await scheduler.run_once(now=base + timedelta(days=1)) == 0
        assert len(transport.requests) == 4

        counted = await webhook_store.get(webhook.id)
        assert counted.total_deliveries == 1
        assert counted.failed_deliveries == 1

    @pytest.mark.asyncio
    async def test_recovers_after_outage(
        self, scheduler, dispatcher, registry, delivery_store, transport, registered_event
    ):
        transport.queue(respond(503), respond(200, "ok"))
        await subscribe(registry)

        (delivery_id,) = await dispatcher.deliver_event(registered_event)
        await dispatcher.drain()
        await scheduler.run_once(now=utcnow() + timedelta(minutes=2))

        delivery = await delivery_store.get(delivery_id)
        assert delivery.status == DeliveryStatus.SUCCESS
        assert delivery.attempt_count == 2
        assert delivery.delivered_at is not None

    @pytest.mark.asyncio
    async def test_picks_up_stale_pending(
        self, scheduler, registry, delivery_store, transport, settings, registered_event
    ):
        """A PENDING delivery whose first attempt never ran is swept after one lease."""
        webhook = await subscribe(registry)
        delivery = WebhookDelivery(
            webhook_id=webhook.id,
            event_id=registered_event.id,
            event_type=registered_event.type,
            payload=PayloadBuilder.freeze(registered_event),
            max_attempts=webhook.max_attempts,
            created_at=utcnow() - timedelta(seconds=settings.claim_lease_seconds + 5),
        )
        await delivery_store.add(delivery)

        assert await scheduler.run_once() == 1
        assert (await delivery_store.get(delivery.id)).status == DeliveryStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_sweep(
        self, scheduler, executor, registry, delivery_store, registered_event
    ):
        webhook = await subscribe(registry)
        due_at = utcnow() - timedelta(minutes=1)
        ids = []
        for _ in range(3):
            delivery = WebhookDelivery(
                webhook_id=webhook.id,
                event_id=registered_event.id,
                event_type=registered_event.type,
                payload=PayloadBuilder.freeze(registered_event),
                status=DeliveryStatus.RETRYING,
                attempt_count=1,
                next_retry_at=due_at,
            )
            ids.append(await delivery_store.add(delivery))

        real_execute = executor.execute

        async def flaky_execute(delivery_id, **kwargs):
            if delivery_id == ids[1]:
                raise RuntimeError("store hiccup")
            return await real_execute(delivery_id, **kwargs)

        with patch.object(executor, "execute", side_effect=flaky_execute):
            attempted = await scheduler.run_once()

        assert attempted == 2
        assert (await delivery_store.get(ids[0])).status == DeliveryStatus.SUCCESS
        assert (await delivery_store.get(ids[1])).status == DeliveryStatus.RETRYING
        assert (await delivery_store.get(ids[2])).status == DeliveryStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_concurrent_sweeps_attempt_once(
        self, registry, webhook_store, delivery_store, transport, settings, registered_event
    ):
        """Two workers sweeping the same store should attempt a delivery once."""
        webhook = await subscribe(registry)
        delivery = WebhookDelivery(
            webhook_id=webhook.id,
            event_id=registered_event.id,
            event_type=registered_event.type,
            payload=PayloadBuilder.freeze(registered_event),
            status=DeliveryStatus.RETRYING,
            attempt_count=1,
            next_retry_at=utcnow() - timedelta(seconds=1),
        )
        await delivery_store.add(delivery)

        schedulers = [
            RetryScheduler(
                delivery_store,
                DeliveryAttemptExecutor(
                    webhook_store, delivery_store, transport, settings, worker_id=f"wrk_{i}"
                ),
                settings,
            )
            for i in range(2)
        ]
        now = utcnow()
        results = await asyncio.gather(*(s.run_once(now=now) for s in schedulers))

        assert sum(results) == 1
        assert len(transport.requests) == 1
        assert (await delivery_store.get(delivery.id)).attempt_count == 2

    @pytest.mark.asyncio
    async def test_queued_claim_not_stolen_by_later_sweep(
        self, registry, webhook_store, delivery_store, registered_event, clock
    ):
        """A delivery claimed late in a long sweep keeps a full lease.

        Worker A has one slot and two due deliveries, so the second is claimed
        only after the first answers. Worker B sweeps while that second
        request is in flight and must not take it over.
        """
        settings = Settings(
            retry_enabled=False,
            claim_lease_seconds=121,
            max_timeout_seconds=120,
            max_concurrent_deliveries=1,
        )
        transport = SlowTransport(clock, 100)
        webhook = await subscribe(registry)
        start = clock.now
        ids = []
        for _ in range(2):
            delivery = WebhookDelivery(
                webhook_id=webhook.id,
                event_id=registered_event.id,
                event_type=registered_event.type,
                payload=PayloadBuilder.freeze(registered_event),
                status=DeliveryStatus.RETRYING,
                attempt_count=1,
                next_retry_at=start - timedelta(seconds=1),
            )
            ids.append(await delivery_store.add(delivery))

        def worker(name):
            executor = DeliveryAttemptExecutor(
                webhook_store, delivery_store, transport, settings, worker_id=name
            )
            return RetryScheduler(delivery_store, executor, settings)

        first, second = worker("wrk_a"), worker("wrk_b")
        swept = []

        async def sweep_in_flight(sent):
            if sent == 2 and not swept:
                # start+200s: past the sweep start plus the lease
                swept.append(await second.run_once(now=clock.now))

        transport.during = sweep_in_flight

        assert await first.run_once(now=start) == 2
        assert swept == [0]
        assert len(transport.requests) == 2
        assert sorted(json.loads(r.body)["id"] for r in transport.requests) == sorted(ids)
        for delivery_id in ids:
            assert (await delivery_store.get(delivery_id)).attempt_count == 2


class TestLifecycle:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_disabled_does_not_start(self, scheduler):
        await scheduler.start()
        assert not scheduler.is_running
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, delivery_store, executor):
        settings = Settings(retry_enabled=True, retry_interval_seconds=0.01)
        scheduler = RetryScheduler(delivery_store, executor, settings)

        with patch.object(scheduler, "run_once", wraps=scheduler.run_once) as mock_run:
            await scheduler.start()
            assert scheduler.is_running
            await asyncio.sleep(0.05)
            await scheduler.stop()

        assert not scheduler.is_running
        assert mock_run.call_count >= 1

    @pytest.mark.asyncio
    async def test_loop_survives_sweep_errors(self, delivery_store, executor):
        settings = Settings(retry_enabled=True, retry_interval_seconds=0.01)
        scheduler = RetryScheduler(delivery_store, executor, settings)

        with patch.object(
            scheduler, "run_once", side_effect=RuntimeError("store down")
        ) as mock_run:
            await scheduler.start()
            await asyncio.sleep(0.05)
            assert scheduler.is_running
            await scheduler.stop()

        assert mock_run.call_count >= 2

    @pytest.mark.asyncio
    async def test_double_start_keeps_one_loop(self, delivery_store, executor):
        settings = Settings(retry_enabled=True, retry_interval_seconds=60)
        scheduler = RetryScheduler(delivery_store, executor, settings)

        await scheduler.start()
        task = scheduler._task
        await scheduler.start()
        assert scheduler._task is task

        await scheduler.stop()
        assert not scheduler.is_running
