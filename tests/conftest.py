"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from courier.config import Settings
from courier.models import DomainEvent, EventType, utcnow
from courier.service import WebhookService
from courier.storage import InMemoryDeliveryStore, InMemoryWebhookStore
from courier.webhooks import (
    DeliveryAttemptExecutor,
    DispatchCoordinator,
    RetryScheduler,
    TransportResponse,
    WebhookRegistry,
)

# Add tests directory to path so FakeTransport can be imported from test modules
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))


@dataclass
class SentRequest:
    """One request captured by FakeTransport."""

    url: str
    body: bytes
    headers: dict[str, str]
    timeout_seconds: float


class FakeTransport:
    """HttpTransport double that records requests and replays scripted outcomes.

    Outcomes are consumed in order; once exhausted, `default` is returned.
    An exception instance in the script is raised instead of returned.
    """

    def __init__(
        self,
        *outcomes: TransportResponse | Exception,
        default: TransportResponse | None = None,
    ) -> None:
        self.requests: list[SentRequest] = []
        self._outcomes = list(outcomes)
        self.default = default or TransportResponse(status_code=200, body="ok")
        self.closed = False

    def queue(self, *outcomes: TransportResponse | Exception) -> None:
        self._outcomes.extend(outcomes)

    async def post(
        self,
        url: str,
        body: bytes,
        headers: dict[str, str],
        timeout_seconds: float,
    ) -> TransportResponse:
        self.requests.append(SentRequest(url, body, headers, timeout_seconds))
        outcome = self._outcomes.pop(0) if self._outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


def respond(status_code: int, body: str = "") -> TransportResponse:
    """Shorthand for a scripted receiver answer."""
    return TransportResponse(status_code=status_code, body=body, elapsed_ms=1.0)


class FakeClock:
    """Settable stand-in for `utcnow` as seen by the executor."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class SlowTransport(FakeTransport):
    """FakeTransport whose requests take `seconds` on `clock`.

    `during`, if set, is awaited while a request is in flight, with the
    number of requests sent so far.
    """

    def __init__(self, clock: FakeClock, seconds: float, *outcomes, **kwargs) -> None:
        super().__init__(*outcomes, **kwargs)
        self.clock = clock
        self.seconds = seconds
        self.during = None

    async def post(self, url, body, headers, timeout_seconds):
        self.clock.advance(self.seconds)
        if self.during is not None:
            await self.during(len(self.requests) + 1)
        return await super().post(url, body, headers, timeout_seconds)


@pytest.fixture
def settings() -> Settings:
    """Settings for tests: no background sweep, text logs."""
    return Settings(env="test", retry_enabled=False, log_format="text")


@pytest.fixture
def clock():
    """Executor clock that only moves when a test moves it."""
    fake = FakeClock(utcnow())
    with patch("courier.webhooks.executor.utcnow", fake):
        yield fake


@pytest.fixture
def webhook_store() -> InMemoryWebhookStore:
    return InMemoryWebhookStore()


@pytest.fixture
def delivery_store() -> InMemoryDeliveryStore:
    return InMemoryDeliveryStore()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def registry(webhook_store: InMemoryWebhookStore, settings: Settings) -> WebhookRegistry:
    return WebhookRegistry(webhook_store, settings)


@pytest.fixture
def executor(
    webhook_store: InMemoryWebhookStore,
    delivery_store: InMemoryDeliveryStore,
    transport: FakeTransport,
    settings: Settings,
) -> DeliveryAttemptExecutor:
    return DeliveryAttemptExecutor(
        webhooks=webhook_store,
        deliveries=delivery_store,
        transport=transport,
        settings=settings,
        worker_id="wrk_test",
    )


@pytest.fixture
def dispatcher(
    registry: WebhookRegistry,
    delivery_store: InMemoryDeliveryStore,
    executor: DeliveryAttemptExecutor,
) -> DispatchCoordinator:
    return DispatchCoordinator(registry, delivery_store, executor)


@pytest.fixture
def scheduler(
    delivery_store: InMemoryDeliveryStore,
    executor: DeliveryAttemptExecutor,
    settings: Settings,
) -> RetryScheduler:
    return RetryScheduler(delivery_store, executor, settings)


@pytest.fixture
def service(
    webhook_store: InMemoryWebhookStore,
    delivery_store: InMemoryDeliveryStore,
    transport: FakeTransport,
    settings: Settings,
) -> WebhookService:
    return WebhookService(
        webhooks=webhook_store,
        deliveries=delivery_store,
        transport=transport,
        settings=settings,
    )


@pytest.fixture
def registered_event() -> DomainEvent:
    """A USER_REGISTERED domain event."""
    return DomainEvent.for_user_registered(
        registration_id="reg_123",
        event_id="conf_2026",
        user_email="ada@example.com",
        user_name="Ada Lovelace",
    )


@pytest.fixture
def checked_in_event() -> DomainEvent:
    """A USER_CHECKED_IN domain event."""
    return DomainEvent(
        type=EventType.USER_CHECKED_IN,
        aggregate_id="reg_123",
        data={"checkInMethod": "QR_CODE"},
    )
