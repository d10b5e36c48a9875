"""Chat command layer.

This module provides:
- Notification lifecycle service (store + scheduler)
- Command parsing and replies
- Telegram update polling
"""

from .commands import CommandHandler, IncomingMessage, UsageError
from .service import NotificationService
from .updates import UpdatePoller

__all__ = [
    "CommandHandler",
    "IncomingMessage",
    "NotificationService",
    "UpdatePoller",
    "UsageError",
]
