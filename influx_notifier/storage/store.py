"""JSON document record store.

Holds every user with their actions and notifications in memory and mirrors
the whole table to one JSON document after each mutation.

The bot is meant for a handful of users, so rewriting the full document on
every change is fine. Only one process may own a storage path at a time.
"""

from __future__ import annotations

import asyncio
import json
import os
import uuid
from pathlib import Path
from typing import Callable

from ..core.errors import NotFoundError, ValidationError
from ..core.utils import get_logger
from .models import (
    Action,
    ActionInput,
    Notification,
    NotificationInput,
    StorageDocument,
    User,
    validate_record,
)

logger = get_logger(__name__)

# Default document location
DEFAULT_STORAGE_PATH = Path("storage.json")


class RecordStore:
    """Authoritative table of users, actions and notifications.

    Usage:
        store = RecordStore("storage.json")
        await store.init()

        await store.create_user_if_not_exists(user_id, chat_id)
        notification = await store.add_notification(user_id, definition)

        store.get_all_notifications()

    Mutations are serialized through an asyncio lock so a document rewrite
    never interleaves with another mutation. Reads do not take the lock.
    """

    def __init__(self, path: Path | str | None = None):
        """Initialize store.

        Args:
            path: Path to the JSON document. Defaults to storage.json
        """
        self.path = Path(path) if path else DEFAULT_STORAGE_PATH
        self._users: list[User] = []
        self._lock = asyncio.Lock()

    async def init(self, write_back: bool = True) -> None:
        """Load the document, or create an empty one if it does not exist.

        Args:
            write_back: Rewrite the document after loading. Disabled for
                read-only inspection.

        Raises:
            ValidationError: If the document is malformed.
        """
        async with self._lock:
            if not self.path.exists():
                self._users = []
                if write_back:
                    await self._persist()
                    logger.info("storage_created", path=str(self.path))
                return

            text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            self._users = self._parse(text)

            # Normalize ordering and write back in the current format
            for user in self._users:
                _sort_by_name(user.actions)
                _sort_by_name(user.notifications)
            if write_back:
                await self._persist()

            logger.info(
                "storage_loaded",
                path=str(self.path),
                users=len(self._users),
                notifications=len(self.get_all_notifications()),
            )

    def _parse(self, text: str) -> list[User]:
        """Parse and validate document text."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Storage document {self.path} is not JSON: {e}") from e

        users = validate_record(StorageDocument, data).root

        seen_users: set[int] = set()
        seen_notifications: set[str] = set()
        for user in users:
            if user.id in seen_users:
                raise ValidationError(f"Duplicate user id in storage: {user.id}")
            seen_users.add(user.id)

            for notification in user.notifications:
                if notification.id in seen_notifications:
                    raise ValidationError(
                        f"Duplicate notification id in storage: {notification.id}"
                    )
                seen_notifications.add(notification.id)

        return users

    # =========================================================================
    # Users
    # =========================================================================

    async def create_user_if_not_exists(self, user_id: int, chat_address: int) -> User:
        """Insert a user with empty lists unless one already exists.

        Args:
            user_id: External (Telegram) user id.
            chat_address: Chat the user's notifications are delivered to.

        Returns:
            The existing or new user.
        """
        async with self._lock:
            existing = self._find_user(user_id)
            if existing is not None:
                return existing

            user = User(id=user_id, chat_address=chat_address)
            self._users.append(user)
            await self._commit(lambda: self._users.remove(user))

            logger.info("user_created", user_id=user_id)
            return user

    def user_exists(self, user_id: int) -> bool:
        """Check if a user record exists."""
        return self._find_user(user_id) is not None

    def get_users(self) -> list[User]:
        """Get all users."""
        return list(self._users)

    # =========================================================================
    # Actions
    # =========================================================================

    def list_actions(self, user_id: int) -> list[Action]:
        """Get a user's actions sorted by name."""
        return list(self._get_user(user_id).actions)

    def get_action_by_name(self, user_id: int, name: str) -> Action | None:
        """Find a user's action by name (case-insensitive)."""
        wanted = name.casefold()
        for action in self._get_user(user_id).actions:
            if action.name.casefold() == wanted:
                return action
        return None

    async def add_action(self, user_id: int, action_input: ActionInput) -> Action:
        """Add an action with a freshly generated id.

        Raises:
            NotFoundError: If the user does not exist.
        """
        async with self._lock:
            user = self._get_user(user_id)
            action = validate_record(
                Action,
                {**action_input.model_dump(), "id": self._new_id()},
            )
            user.actions.append(action)
            _sort_by_name(user.actions)
            await self._commit(lambda: user.actions.remove(action))

        logger.info("action_added", user_id=user_id, action_id=action.id)
        return action

    async def remove_action(self, user_id: int, action_id: str) -> Action | None:
        """Remove an action.

        Returns:
            The removed action, or None if the user has no such action.

        Raises:
            NotFoundError: If the user does not exist.
        """
        async with self._lock:
            user = self._get_user(user_id)
            action = _pop_by_id(user.actions, action_id)
            if action is None:
                return None
            await self._commit(lambda: _insert_sorted(user.actions, action))

        logger.info("action_removed", user_id=user_id, action_id=action_id)
        return action

    # =========================================================================
    # Notifications
    # =========================================================================

    def list_notifications(self, user_id: int) -> list[Notification]:
        """Get a user's notifications sorted by name."""
        return list(self._get_user(user_id).notifications)

    async def add_notification(
        self,
        user_id: int,
        notification_input: NotificationInput,
    ) -> Notification:
        """Add a notification with a freshly generated, store-wide unique id.

        Raises:
            NotFoundError: If the user does not exist.
            ValidationError: If the definition is invalid.
        """
        async with self._lock:
            user = self._get_user(user_id)
            notification = validate_record(
                Notification,
                {**notification_input.model_dump(), "id": self._new_id()},
            )
            user.notifications.append(notification)
            _sort_by_name(user.notifications)
            await self._commit(lambda: user.notifications.remove(notification))

        logger.info(
            "notification_added",
            user_id=user_id,
            notification_id=notification.id,
            interval_ms=notification.interval_ms,
        )
        return notification

    async def remove_notification(
        self,
        user_id: int,
        notification_id: str,
    ) -> Notification | None:
        """Remove a notification.

        Returns:
            The removed notification, or None if the user has no such notification.

        Raises:
            NotFoundError: If the user does not exist.
        """
        async with self._lock:
            user = self._get_user(user_id)
            notification = _pop_by_id(user.notifications, notification_id)
            if notification is None:
                return None
            await self._commit(lambda: _insert_sorted(user.notifications, notification))

        logger.info(
            "notification_removed",
            user_id=user_id,
            notification_id=notification_id,
        )
        return notification

    def get_all_notifications(self) -> list[Notification]:
        """Get every user's notifications."""
        return [n for user in self._users for n in user.notifications]

    def get_notification(self, notification_id: str) -> Notification | None:
        """Find a notification by id across all users."""
        for notification in self.get_all_notifications():
            if notification.id == notification_id:
                return notification
        return None

    def get_notification_owner(self, notification_id: str) -> User | None:
        """Find the user owning a notification."""
        for user in self._users:
            if any(n.id == notification_id for n in user.notifications):
                return user
        return None

    # =========================================================================
    # Internal
    # =========================================================================

    def _find_user(self, user_id: int) -> User | None:
        for user in self._users:
            if user.id == user_id:
                return user
        return None

    def _get_user(self, user_id: int) -> User:
        user = self._find_user(user_id)
        if user is None:
            raise NotFoundError(f"User not found with ID: {user_id}", {"user_id": user_id})
        return user

    def _new_id(self) -> str:
        """Generate an id unused by any action or notification."""
        taken = {n.id for n in self.get_all_notifications()}
        taken.update(a.id for user in self._users for a in user.actions)

        while True:
            candidate = str(uuid.uuid4())
            if candidate not in taken:
                return candidate

    async def _commit(self, undo: Callable[[], None]) -> None:
        """Persist a mutation, reverting it in memory if the write fails."""
        try:
            await self._persist()
        except Exception:
            undo()
            logger.error("storage_write_failed", path=str(self.path))
            raise

    async def _persist(self) -> None:
        """Rewrite the whole document."""
        payload = StorageDocument(self._users).model_dump_json(by_alias=True, indent=2)
        await asyncio.to_thread(self._write_atomic, payload)

    def _write_atomic(self, payload: str) -> None:
        """Write to a sibling temp file and move it over the document."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_path, self.path)


def _sort_by_name(records: list) -> None:
    records.sort(key=lambda r: r.name.casefold())


def _insert_sorted(records: list, record) -> None:
    records.append(record)
    _sort_by_name(records)


def _pop_by_id(records: list, record_id: str):
    for i, record in enumerate(records):
        if record.id == record_id:
            return records.pop(i)
    return None
