"""Interval polling of notification series.

This module provides:
- One asyncio task per notification id
- Read results published onto a queue for the dispatcher
"""

from .poller import (
    IntervalScheduler,
    PollJob,
    ReadResult,
    SeriesSource,
)

__all__ = [
    "IntervalScheduler",
    "PollJob",
    "ReadResult",
    "SeriesSource",
]
