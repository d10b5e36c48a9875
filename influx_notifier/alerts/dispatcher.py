"""Evaluates read results and fires one-shot notifications.

A single dispatcher task consumes the scheduler's result queue, so results
are handled one at a time in the order they were published.

Delivery happens before the notification is retired. The record is retired
even when delivery fails, so a failed send loses that alert for good.
"""

from __future__ import annotations

import asyncio
from enum import Enum

from ..core.utils import get_logger
from ..scheduler.poller import IntervalScheduler, ReadResult
from ..storage.store import RecordStore
from .base import Alert, MessageTransport

logger = get_logger(__name__)


class DispatchOutcome(Enum):
    """What handling a read result led to."""

    SKIPPED = "skipped"
    ORPHANED = "orphaned"
    NOT_SATISFIED = "not_satisfied"
    NO_OWNER = "no_owner"
    FIRED = "fired"


class Dispatcher:
    """Turns read results into silence, orphan cleanup or an alert.

    Usage:
        dispatcher = Dispatcher(store, scheduler, transport)
        dispatcher.start()
        ...
        await dispatcher.stop()
    """

    def __init__(
        self,
        store: RecordStore,
        scheduler: IntervalScheduler,
        transport: MessageTransport,
        results: asyncio.Queue[ReadResult] | None = None,
    ):
        """Initialize dispatcher.

        Args:
            store: Record store holding the notifications.
            scheduler: Scheduler whose jobs are retired here.
            transport: Message transport for alerts.
            results: Queue to consume. Defaults to the scheduler's queue.
        """
        self.store = store
        self.scheduler = scheduler
        self.transport = transport
        self._results = results if results is not None else scheduler.results
        self._task: asyncio.Task | None = None
        self._counts: dict[DispatchOutcome, int] = {outcome: 0 for outcome in DispatchOutcome}

    async def handle(self, result: ReadResult) -> DispatchOutcome:
        """Handle one read result.

        Args:
            result: Result published by the scheduler.

        Returns:
            What happened.
        """
        outcome = await self._handle(result)
        self._counts[outcome] += 1
        return outcome

    async def _handle(self, result: ReadResult) -> DispatchOutcome:
        sample = result.sample
        if sample is None:
            return DispatchOutcome.SKIPPED

        notification = self.store.get_notification(result.id)
        if notification is None:
            # Timer outlived its record
            logger.info("orphaned_poll_job", notification_id=result.id)
            self.scheduler.remove(result.id)
            return DispatchOutcome.ORPHANED

        if not notification.operator.evaluate(sample.value, notification.threshold):
            logger.debug(
                "notification_not_satisfied",
                notification_id=notification.id,
                value=sample.value,
                threshold=notification.threshold,
            )
            return DispatchOutcome.NOT_SATISFIED

        owner = self.store.get_notification_owner(notification.id)
        if owner is None:
            logger.warning("notification_owner_missing", notification_id=notification.id)
            return DispatchOutcome.NO_OWNER

        alert = Alert.from_notification(notification, sample)
        delivered = await self.transport.safe_deliver(owner.chat_address, alert)

        self.scheduler.remove(notification.id)
        await self.store.remove_notification(owner.id, notification.id)

        logger.info(
            "notification_fired",
            notification_id=notification.id,
            user_id=owner.id,
            value=sample.value,
            delivered=delivered,
        )
        return DispatchOutcome.FIRED

    async def run(self) -> None:
        """Consume read results until cancelled."""
        logger.info("dispatcher_started")

        while True:
            result = await self._results.get()
            try:
                await self.handle(result)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("dispatch_failed", notification_id=result.id)
            finally:
                self._results.task_done()

    def start(self) -> asyncio.Task:
        """Start consuming in a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="dispatcher")
        return self._task

    async def stop(self) -> None:
        """Stop the consuming task."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("dispatcher_stopped")

    def get_stats(self) -> dict:
        """Get dispatcher statistics."""
        return {
            "outcomes": {outcome.value: count for outcome, count in self._counts.items()},
            "pending_results": self._results.qsize(),
            "transport": self.transport.get_stats(),
        }
