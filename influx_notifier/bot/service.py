"""Notification lifecycle operations triggered by users."""

from __future__ import annotations

from ..core.utils import get_logger
from ..scheduler.poller import IntervalScheduler
from ..storage.models import Notification, NotificationInput
from ..storage.store import RecordStore

logger = get_logger(__name__)


class NotificationService:
    """Keeps the store and the scheduler in step for user actions."""

    def __init__(self, store: RecordStore, scheduler: IntervalScheduler):
        self.store = store
        self.scheduler = scheduler

    async def add_notification(
        self,
        user_id: int,
        notification_input: NotificationInput,
    ) -> Notification:
        """Persist a notification and start polling it."""
        notification = await self.store.add_notification(user_id, notification_input)
        self.scheduler.create(notification)
        return notification

    async def remove_notification(
        self,
        user_id: int,
        notification_id: str,
    ) -> Notification | None:
        """Stop polling a notification and delete it.

        Returns:
            The removed notification, or None if the user has no such notification.
        """
        owned = {n.id for n in self.store.list_notifications(user_id)}
        if notification_id not in owned:
            return None

        self.scheduler.remove(notification_id)
        return await self.store.remove_notification(user_id, notification_id)
