"""Tests for evaluating read results and firing notifications."""

import asyncio

import pytest

from conftest import FakeSource, RecordingTransport, make_input, make_row
from influx_notifier.alerts.dispatcher import DispatchOutcome, Dispatcher
from influx_notifier.bot.service import NotificationService
from influx_notifier.scheduler.poller import IntervalScheduler, ReadResult
from influx_notifier.storage.models import ComparisonOperator
from influx_notifier.storage.store import RecordStore


def _result(notification_id: str, value: float) -> ReadResult:
    return ReadResult(id=notification_id, rows=[make_row(value)])


class TestDispatcher:
    """Tests for Dispatcher.handle."""

    @pytest.mark.asyncio
    async def test_fires_once_when_threshold_crossed(self, store: RecordStore):
        """GreaterThan 10 stays silent on 5 and 8 and fires once on 12."""
        await store.create_user_if_not_exists(1, 100)
        scheduler = IntervalScheduler(FakeSource([]))
        service = NotificationService(store, scheduler)
        transport = RecordingTransport()
        dispatcher = Dispatcher(store, scheduler, transport)

        notification = await service.add_notification(1, make_input(
            operator=ComparisonOperator.GREATER_THAN,
            threshold=10,
        ))

        assert await dispatcher.handle(_result(notification.id, 5)) == DispatchOutcome.NOT_SATISFIED
        assert await dispatcher.handle(_result(notification.id, 8)) == DispatchOutcome.NOT_SATISFIED
        assert transport.sent == []

        assert await dispatcher.handle(_result(notification.id, 12)) == DispatchOutcome.FIRED

        assert len(transport.sent) == 1
        assert transport.sent[0][0] == 100
        assert notification.id not in {n.id for n in store.get_all_notifications()}
        assert notification.id not in scheduler

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_orphaned_result_removes_timer(self, store: RecordStore):
        """A result for a record deleted behind the scheduler's back stops its timer."""
        await store.create_user_if_not_exists(1, 100)
        scheduler = IntervalScheduler(FakeSource([]))
        transport = RecordingTransport()
        dispatcher = Dispatcher(store, scheduler, transport)

        notification = await store.add_notification(1, make_input())
        scheduler.create(notification)
        await store.remove_notification(1, notification.id)

        outcome = await dispatcher.handle(_result(notification.id, 50))

        assert outcome == DispatchOutcome.ORPHANED
        assert notification.id not in scheduler
        assert transport.sent == []

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_empty_rows_skipped(self, store: RecordStore):
        """A result without rows is ignored."""
        scheduler = IntervalScheduler(FakeSource([]))
        dispatcher = Dispatcher(store, scheduler, RecordingTransport())

        assert await dispatcher.handle(ReadResult(id="n1", rows=[])) == DispatchOutcome.SKIPPED

    @pytest.mark.asyncio
    async def test_failed_delivery_still_retires(self, store: RecordStore):
        """The notification is retired even when the message is not delivered."""
        await store.create_user_if_not_exists(1, 100)
        scheduler = IntervalScheduler(FakeSource([]))
        transport = RecordingTransport(ok=False)
        dispatcher = Dispatcher(store, scheduler, transport)

        notification = await store.add_notification(1, make_input(threshold=10))

        outcome = await dispatcher.handle(_result(notification.id, 20))

        assert outcome == DispatchOutcome.FIRED
        assert store.get_notification(notification.id) is None
        assert transport.get_stats()["messages_failed"] == 1

    @pytest.mark.asyncio
    async def test_alert_text(self, store: RecordStore):
        """The message names the notification, its condition and the value."""
        await store.create_user_if_not_exists(1, 100)
        scheduler = IntervalScheduler(FakeSource([]))
        transport = RecordingTransport()
        dispatcher = Dispatcher(store, scheduler, transport)

        notification = await store.add_notification(1, make_input(name="boiler", threshold=10))
        await dispatcher.handle(_result(notification.id, 12.5))

        text = transport.sent[0][1]
        assert "Notification (boiler)" in text
        assert "temperature > 10" in text
        assert "12.5" in text

    @pytest.mark.asyncio
    async def test_stats(self, store: RecordStore):
        """Outcomes are counted."""
        scheduler = IntervalScheduler(FakeSource([]))
        dispatcher = Dispatcher(store, scheduler, RecordingTransport())

        await dispatcher.handle(ReadResult(id="n1", rows=[]))
        await dispatcher.handle(_result("gone", 1))

        stats = dispatcher.get_stats()
        assert stats["outcomes"]["skipped"] == 1
        assert stats["outcomes"]["orphaned"] == 1


class TestEndToEnd:
    """Scheduler and dispatcher running together."""

    @pytest.mark.asyncio
    async def test_greater_or_equal_scenario(self, store: RecordStore):
        """50 keeps the notification, 150 fires exactly one message and retires it."""
        await store.create_user_if_not_exists(7, 700)

        source = FakeSource([50.0, 150.0])
        scheduler = IntervalScheduler(source)
        transport = RecordingTransport()
        dispatcher = Dispatcher(store, scheduler, transport)
        service = NotificationService(store, scheduler)

        notification = await service.add_notification(7, make_input(
            operator=ComparisonOperator.GREATER_OR_EQUAL,
            threshold=100,
            interval_ms=1000,
            bucket="b",
            measurement="m",
            field="f",
        ))
        job = scheduler.get_job(notification.id)

        # Tick 1
        await scheduler._tick(job)
        outcome = await dispatcher.handle(scheduler.results.get_nowait())
        assert outcome == DispatchOutcome.NOT_SATISFIED
        assert transport.sent == []
        assert store.list_notifications(7) == [notification]

        # Tick 2
        await scheduler._tick(job)
        outcome = await dispatcher.handle(scheduler.results.get_nowait())
        assert outcome == DispatchOutcome.FIRED
        assert len(transport.sent) == 1
        assert transport.sent[0][0] == 700
        assert store.list_notifications(7) == []
        assert notification.id not in scheduler

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_dispatcher_task_consumes_queue(self, store: RecordStore):
        """The background task handles published results."""
        await store.create_user_if_not_exists(1, 100)
        scheduler = IntervalScheduler(FakeSource([]))
        transport = RecordingTransport()
        dispatcher = Dispatcher(store, scheduler, transport)

        notification = await store.add_notification(1, make_input(threshold=10))
        dispatcher.start()

        await scheduler.results.put(_result(notification.id, 11))
        await asyncio.wait_for(scheduler.results.join(), timeout=1.0)

        assert len(transport.sent) == 1
        assert store.get_notification(notification.id) is None

        await dispatcher.stop()
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_dispatcher_survives_handler_error(self, store: RecordStore):
        """An exception for one result does not stop the consumer."""
        scheduler = IntervalScheduler(FakeSource([]))
        dispatcher = Dispatcher(store, scheduler, RecordingTransport())

        calls = []
        original = dispatcher._handle

        async def flaky(result):
            calls.append(result.id)
            if result.id == "bad":
                raise RuntimeError("boom")
            return await original(result)

        dispatcher._handle = flaky
        dispatcher.start()

        await scheduler.results.put(ReadResult(id="bad", rows=[]))
        await scheduler.results.put(ReadResult(id="good", rows=[]))
        await asyncio.wait_for(scheduler.results.join(), timeout=1.0)

        assert calls == ["bad", "good"]
        await dispatcher.stop()
