"""Periodic sweep that resubmits due deliveries to the executor."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from courier.config import Settings
from courier.models import utcnow

if TYPE_CHECKING:
    from courier.models import WebhookDelivery
    from courier.storage import DeliveryStore

    from .executor import DeliveryAttemptExecutor

logger = logging.getLogger(__name__)


class RetryScheduler:
    """Runs `run_once` every `retry_interval_seconds` while started.

    Several schedulers (in one process or many) may sweep the same store:
    the executor's claim step lets only one of them attempt a given
    delivery, so overlapping sweeps cause at most a skipped claim.

    Example:
        ```python
        scheduler = RetryScheduler(deliveries, executor, settings)
        await scheduler.start()
        ...
        await scheduler.stop()
        ```
    """

    def __init__(
        self,
        deliveries: DeliveryStore,
        executor: DeliveryAttemptExecutor,
        settings: Settings | None = None,
    ) -> None:
        self._deliveries = deliveries
        self._executor = executor
        self._settings = settings or Settings()
        self._semaphore = asyncio.Semaphore(self._settings.max_concurrent_deliveries)
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, now: datetime | None = None) -> int:
        """Attempt every delivery that is due at `now`.

        An exception from one delivery is logged and does not stop the rest
        of the sweep.

        Returns:
            Number of deliveries actually attempted (claimed by this worker).
        """
        now = now or utcnow()
        due = await self._deliveries.list_due(
            now,
            self._settings.claim_lease_seconds,
            limit=self._settings.retry_batch_size,
        )
        if not due:
            return 0

        logger.debug("Retry sweep found %d due deliveries", len(due))
        results = await asyncio.gather(
            *(self._attempt(delivery.id, now) for delivery in due),
            return_exceptions=True,
        )

        attempted = 0
        for delivery, result in zip(due, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Retry of delivery %s failed: %s",
                    delivery.id,
                    result,
                    exc_info=result,
                )
            elif result is not None:
                attempted += 1

        if attempted:
            logger.info("Retry sweep attempted %d of %d due deliveries", attempted, len(due))
        return attempted

    async def start(self) -> None:
        """Start the periodic sweep. Does nothing if retries are disabled."""
        if not self._settings.retry_enabled:
            logger.info("Retry scheduler disabled by configuration")
            return
        if self.is_running:
            logger.warning("Retry scheduler already running")
            return

        self._stopping.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Retry scheduler started (interval %.0fs)", self._settings.retry_interval_seconds
        )

    async def stop(self) -> None:
        """Stop the sweep, letting an in-progress pass finish."""
        if self._task is None:
            return

        self._stopping.set()
        try:
            await asyncio.wait_for(self._task, timeout=self._settings.max_timeout_seconds)
        except TimeoutError:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Retry scheduler stopped")

    async def _attempt(self, delivery_id: str, now: datetime) -> WebhookDelivery | None:
        # `now` only selects what is due; the claim is stamped when the
        # semaphore is acquired, which may be long after the sweep started
        async with self._semaphore:
            return await self._executor.execute(delivery_id, due_at=now)

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Error in retry sweep")

            try:
                await asyncio.wait_for(
                    self._stopping.wait(),
                    timeout=self._settings.retry_interval_seconds,
                )
            except TimeoutError:
                pass
