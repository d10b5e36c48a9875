"""Shared test fixtures."""

import tempfile
from pathlib import Path

import pytest_asyncio

from influx_notifier.alerts.base import MessageTransport
from influx_notifier.influx.models import SeriesRow
from influx_notifier.storage.models import ComparisonOperator, Notification, NotificationInput
from influx_notifier.storage.store import RecordStore


def make_input(
    name: str = "hot",
    operator: ComparisonOperator = ComparisonOperator.GREATER_THAN,
    threshold: float = 10.0,
    interval_ms: int = 1000,
    **kwargs,
) -> NotificationInput:
    """Build a valid notification definition."""
    return NotificationInput(
        name=name,
        bucket=kwargs.get("bucket", "home"),
        measurement=kwargs.get("measurement", "climate"),
        field=kwargs.get("field", "temperature"),
        filters=kwargs.get("filters", []),
        operator=operator,
        threshold=threshold,
        interval_ms=interval_ms,
    )


def make_fast_notification(notification_id: str = "n1", interval_ms: int = 10) -> Notification:
    """Build a notification polled faster than the validated minimum."""
    return Notification.model_construct(
        id=notification_id,
        name=notification_id,
        bucket="home",
        measurement="climate",
        field="temperature",
        filters=[],
        operator=ComparisonOperator.GREATER_THAN,
        threshold=10.0,
        interval_ms=interval_ms,
    )


def make_row(value: float, **tags: str) -> SeriesRow:
    return SeriesRow(
        time="2024-01-01T12:00:00Z",
        value=value,
        field="temperature",
        measurement="climate",
        tags=tags,
    )


class FakeSource:
    """Series source returning queued values, then repeating the last one."""

    def __init__(self, values=None, error: Exception | None = None):
        self.values = list(values or [])
        self.error = error
        self.calls = []

    async def get_latest(self, bucket, measurement, field, filters=(), window="-1h"):
        self.calls.append((bucket, measurement, field, list(filters), window))
        if self.error is not None:
            raise self.error
        if not self.values:
            return None
        value = self.values.pop(0) if len(self.values) > 1 else self.values[0]
        return None if value is None else make_row(value)


class RecordingTransport(MessageTransport):
    """Transport that records sent messages."""

    def __init__(self, ok: bool = True):
        super().__init__()
        self.ok = ok
        self.sent = []

    @property
    def name(self) -> str:
        return "recording"

    async def send(self, chat_address, text):
        self.sent.append((chat_address, text))
        return self.ok


@pytest_asyncio.fixture
async def store():
    """Create a loaded store in a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        record_store = RecordStore(Path(tmpdir) / "storage.json")
        await record_store.init()
        yield record_store
