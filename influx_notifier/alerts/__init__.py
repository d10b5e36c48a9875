"""Alert delivery for fired notifications.

This module provides:
- Message transports (Telegram, console)
- The dispatcher evaluating read results against stored notifications
"""

from .base import Alert, ConsoleTransport, MessageTransport
from .dispatcher import DispatchOutcome, Dispatcher
from .telegram import TelegramTransport

__all__ = [
    "Alert",
    "ConsoleTransport",
    "DispatchOutcome",
    "Dispatcher",
    "MessageTransport",
    "TelegramTransport",
]
