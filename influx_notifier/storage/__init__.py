"""Storage module for data persistence.

This module provides the JSON document store for users, their saved
actions and their threshold notifications.
"""

from .models import (
    MIN_INTERVAL_MS,
    Action,
    ActionInput,
    ComparisonOperator,
    Notification,
    NotificationInput,
    SeriesSelector,
    TagFilter,
    User,
)
from .store import RecordStore

__all__ = [
    "MIN_INTERVAL_MS",
    "Action",
    "ActionInput",
    "ComparisonOperator",
    "Notification",
    "NotificationInput",
    "RecordStore",
    "SeriesSelector",
    "TagFilter",
    "User",
]
