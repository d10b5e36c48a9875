"""Base messaging infrastructure.

Provides:
- Alert dataclass for a fired notification
- MessageTransport abstract base class
- ConsoleTransport for local runs without a bot token
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..core.errors import DeliveryError
from ..core.utils import format_value, get_logger
from ..influx.models import SeriesRow
from ..storage.models import Notification

logger = get_logger(__name__)


@dataclass
class Alert:
    """Message sent when a notification fires.

    Attributes:
        title: Alert title.
        message: Condition that was met.
        value: Sampled value that met it.
        data: Additional fields (series, tags, sample time).
        timestamp: When the alert was created.
        notification_id: Notification that fired.
    """

    title: str
    message: str
    value: float
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    notification_id: str = ""

    @classmethod
    def from_notification(cls, notification: Notification, sample: SeriesRow) -> Alert:
        """Build the alert for a notification whose condition was met."""
        data: dict[str, Any] = {
            "bucket": notification.bucket,
            "measurement": notification.measurement,
        }
        data.update(sample.tags)
        if sample.time:
            data["time"] = sample.time

        return cls(
            title=f"Notification ({notification.name})",
            message=notification.describe_condition(),
            value=sample.value,
            data=data,
            notification_id=notification.id,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "notification_id": self.notification_id,
            "title": self.title,
            "message": self.message,
            "value": self.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }

    def format_text(self) -> str:
        """Format as plain text."""
        lines = [
            self.title,
            f"{self.message} (value: {format_value(self.value)})",
        ]

        if self.data:
            lines.append("")
            for key, value in self.data.items():
                lines.append(f"  {key}: {value}")

        lines.append(f"\n{self.timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}")

        return "\n".join(lines)


class MessageTransport(ABC):
    """Abstract base class for chat message delivery.

    Subclasses must implement send(). Delivery is never retried; failures
    are counted and logged.
    """

    def __init__(self):
        self._messages_sent: int = 0
        self._messages_failed: int = 0
        self._last_sent_at: datetime | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport name used in logs."""
        pass

    @abstractmethod
    async def send(self, chat_address: int | str, text: str) -> bool:
        """Send a plain text message.

        Args:
            chat_address: Target chat.
            text: Message text.

        Returns:
            True if delivered.
        """
        pass

    def format_alert(self, alert: Alert) -> str:
        """Render an alert for this transport."""
        return alert.format_text()

    async def deliver_alert(self, chat_address: int | str, alert: Alert) -> bool:
        """Send an alert.

        Args:
            chat_address: Target chat.
            alert: Alert to send.

        Returns:
            True if delivered.
        """
        return await self.send(chat_address, self.format_alert(alert))

    async def safe_deliver(self, chat_address: int | str, alert: Alert) -> bool:
        """Deliver an alert, logging instead of raising on failure."""
        try:
            delivered = await self.deliver_alert(chat_address, alert)
            if not delivered:
                raise DeliveryError(
                    f"{self.name} rejected message",
                    chat_address=chat_address,
                )
        except DeliveryError as e:
            self._messages_failed += 1
            logger.error(
                "alert_delivery_failed",
                transport=self.name,
                chat_address=chat_address,
                notification_id=alert.notification_id,
                error=e.message,
            )
            return False
        except Exception as e:
            self._messages_failed += 1
            logger.error(
                "alert_delivery_failed",
                transport=self.name,
                chat_address=chat_address,
                notification_id=alert.notification_id,
                error=str(e),
            )
            return False

        self._messages_sent += 1
        self._last_sent_at = datetime.now(timezone.utc)
        return True

    def get_stats(self) -> dict:
        """Get transport statistics."""
        return {
            "transport": self.name,
            "messages_sent": self._messages_sent,
            "messages_failed": self._messages_failed,
            "last_sent": self._last_sent_at.isoformat() if self._last_sent_at else None,
        }


class ConsoleTransport(MessageTransport):
    """Transport that prints messages to the console."""

    @property
    def name(self) -> str:
        return "console"

    async def send(self, chat_address: int | str, text: str) -> bool:
        """Print message to console."""
        print(f"[chat {chat_address}]")
        print(text)
        print("-" * 50)
        return True
