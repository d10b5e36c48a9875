"""Per-notification interval polling using asyncio.

Every active notification gets its own repeating task. On each tick the
latest sample of the notification's series is queried and, if there is one,
published onto a queue as a ReadResult. The poller knows nothing about
thresholds or owners; the dispatcher on the other end of the queue does.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Protocol

from ..core.utils import get_logger, utc_now
from ..influx.models import SeriesRow
from ..storage.models import Notification, SeriesSelector, TagFilter

logger = get_logger(__name__)


class SeriesSource(Protocol):
    """Anything that can return the latest sample of a series."""

    async def get_latest(
        self,
        bucket: str,
        measurement: str,
        field: str,
        filters: Iterable[TagFilter] = (),
        window: str = "-1h",
    ) -> SeriesRow | None:
        ...


@dataclass(frozen=True)
class ReadResult:
    """Sample read for a notification.

    Attributes:
        id: Notification id the read belongs to.
        rows: Returned rows; empty means nothing to evaluate.
    """

    id: str
    rows: list[SeriesRow] = field(default_factory=list)

    @property
    def sample(self) -> SeriesRow | None:
        """The row evaluated against the threshold."""
        return self.rows[0] if self.rows else None


@dataclass
class PollJob:
    """Polling timer of one notification.

    Attributes:
        notification_id: Notification being polled.
        interval_seconds: Seconds between ticks.
        selector: Series to sample.
        ticks: Ticks started.
        results: Ticks that published a result.
        failures: Ticks whose query failed.
        last_tick_at: When the last tick started.
        last_error: Error of the last failed tick.
    """

    notification_id: str
    interval_seconds: float
    selector: SeriesSelector

    # Runtime state
    ticks: int = 0
    results: int = 0
    failures: int = 0
    last_tick_at: datetime | None = None
    last_error: str | None = None
    _task: asyncio.Task | None = field(default=None, repr=False)
    _in_flight: set[asyncio.Task] = field(default_factory=set, repr=False)

    @property
    def active(self) -> bool:
        """Whether the repeating task is still scheduled."""
        return self._task is not None and not self._task.done()

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "notification_id": self.notification_id,
            "interval_seconds": self.interval_seconds,
            "bucket": self.selector.bucket,
            "measurement": self.selector.measurement,
            "field": self.selector.field,
            "ticks": self.ticks,
            "results": self.results,
            "failures": self.failures,
            "in_flight": len(self._in_flight),
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "last_error": self.last_error,
        }


class IntervalScheduler:
    """Owns one repeating poll task per notification id.

    Usage:
        scheduler = IntervalScheduler(influx_client)
        scheduler.init(store.get_all_notifications())

        # Later, for a new notification
        scheduler.create(notification)

        # Consume results
        result = await scheduler.results.get()

        scheduler.remove(notification.id)
        await scheduler.stop()

    Removing a job stops future ticks only. A tick whose query is already in
    flight still publishes its result once the query returns.
    """

    def __init__(
        self,
        source: SeriesSource,
        results: asyncio.Queue[ReadResult] | None = None,
        lookback: str = "-1h",
    ):
        """Initialize scheduler.

        Args:
            source: Series query service.
            results: Queue read results are published to.
            lookback: Range start passed to every query.
        """
        self._source = source
        self._results: asyncio.Queue[ReadResult] = results if results is not None else asyncio.Queue()
        self._lookback = lookback
        self._jobs: dict[str, PollJob] = {}
        self._ticks: set[asyncio.Task] = set()

    @property
    def results(self) -> asyncio.Queue[ReadResult]:
        """Queue of published read results."""
        return self._results

    def init(self, definitions: Iterable[Notification]) -> None:
        """Start polling for every given notification."""
        count = 0
        for definition in definitions:
            self.create(definition)
            count += 1
        logger.info("scheduler_initialized", jobs=count)

    def create(self, definition: Notification) -> PollJob:
        """Start polling a notification.

        Must be called from within a running event loop.

        Args:
            definition: Notification to poll.

        Returns:
            The job polling it. An already polled id keeps its existing job.
        """
        existing = self._jobs.get(definition.id)
        if existing is not None:
            logger.warning("poll_job_exists", notification_id=definition.id)
            return existing

        job = PollJob(
            notification_id=definition.id,
            interval_seconds=definition.interval_ms / 1000,
            selector=definition.selector,
        )
        job._task = asyncio.create_task(
            self._job_loop(job),
            name=f"poll:{definition.id}",
        )

        self._jobs[definition.id] = job
        logger.info(
            "poll_job_created",
            notification_id=definition.id,
            interval_seconds=job.interval_seconds,
        )
        return job

    def remove(self, notification_id: str) -> bool:
        """Stop polling a notification.

        Args:
            notification_id: Notification id.

        Returns:
            True if a job was removed, False if none existed.
        """
        job = self._jobs.pop(notification_id, None)
        if job is None:
            logger.info("poll_job_not_found", notification_id=notification_id)
            return False

        if job._task and not job._task.done():
            job._task.cancel()

        logger.info("poll_job_removed", notification_id=notification_id)
        return True

    def get_job(self, notification_id: str) -> PollJob | None:
        """Get a job by notification id."""
        return self._jobs.get(notification_id)

    def get_all_jobs(self) -> list[PollJob]:
        """Get all jobs."""
        return list(self._jobs.values())

    def __contains__(self, notification_id: object) -> bool:
        return notification_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    async def _job_loop(self, job: PollJob) -> None:
        """Repeating timer for a single job.

        Each tick runs as its own task so a slow query does not delay the
        next tick.
        """
        try:
            while True:
                await asyncio.sleep(job.interval_seconds)

                if job._in_flight:
                    logger.warning(
                        "poll_tick_overlap",
                        notification_id=job.notification_id,
                        in_flight=len(job._in_flight),
                    )

                tick = asyncio.create_task(self._tick(job))
                job._in_flight.add(tick)
                tick.add_done_callback(job._in_flight.discard)
                self._ticks.add(tick)
                tick.add_done_callback(self._ticks.discard)

        except asyncio.CancelledError:
            logger.debug("poll_job_cancelled", notification_id=job.notification_id)

    async def _tick(self, job: PollJob) -> ReadResult | None:
        """Query the job's series once and publish the result.

        Returns:
            The published result, or None if nothing was published.
        """
        job.ticks += 1
        job.last_tick_at = utc_now()
        selector = job.selector

        try:
            row = await self._source.get_latest(
                selector.bucket,
                selector.measurement,
                selector.field,
                selector.filters,
                window=self._lookback,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            job.failures += 1
            job.last_error = str(e)
            logger.warning(
                "poll_query_failed",
                notification_id=job.notification_id,
                error=str(e),
            )
            return None

        if row is None:
            logger.debug("poll_no_data", notification_id=job.notification_id)
            return None

        result = ReadResult(id=job.notification_id, rows=[row])
        await self._results.put(result)
        job.results += 1
        return result

    async def stop(self, timeout: float = 10.0) -> None:
        """Cancel every job and in-flight tick.

        Args:
            timeout: Max seconds to wait for tasks to finish.
        """
        tasks = [
            job._task for job in self._jobs.values()
            if job._task and not job._task.done()
        ]
        # Includes ticks of jobs that were already removed
        tasks.extend(t for t in self._ticks if not t.done())

        for task in tasks:
            task.cancel()

        if tasks:
            await asyncio.wait(tasks, timeout=timeout)

        self._jobs.clear()
        logger.info("scheduler_stopped", cancelled=len(tasks))

    def get_status(self) -> dict[str, Any]:
        """Get scheduler status.

        Returns:
            Dictionary with scheduler metrics.
        """
        return {
            "jobs": [job.to_dict() for job in self._jobs.values()],
            "total_jobs": len(self._jobs),
            "queued_results": self._results.qsize(),
        }
