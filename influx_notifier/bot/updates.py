"""Telegram long-polling loop feeding the command handler."""

from __future__ import annotations

import asyncio
from typing import Any

from ..alerts.telegram import TelegramTransport
from ..core.utils import get_logger
from .commands import CommandHandler, IncomingMessage

logger = get_logger(__name__)


def parse_update(update: dict[str, Any]) -> IncomingMessage | None:
    """Extract a text message from a Telegram update.

    Returns:
        The message, or None for updates without text.
    """
    message = update.get("message") or {}
    text = message.get("text")
    sender = message.get("from") or {}
    chat = message.get("chat") or {}

    if not text or "id" not in sender or "id" not in chat:
        return None

    return IncomingMessage(
        user_id=sender["id"],
        chat_id=chat["id"],
        text=text,
        username=sender.get("username"),
    )


class UpdatePoller:
    """Receives chat messages and answers them.

    Usage:
        poller = UpdatePoller(telegram, handler)
        await poller.run()  # until cancelled
    """

    def __init__(
        self,
        telegram: TelegramTransport,
        handler: CommandHandler,
        poll_timeout_seconds: int = 30,
        retry_delay_seconds: float = 5.0,
    ):
        self.telegram = telegram
        self.handler = handler
        self.poll_timeout_seconds = poll_timeout_seconds
        self.retry_delay_seconds = retry_delay_seconds
        self._offset = 0

    async def poll_once(self) -> int:
        """Fetch and handle one batch of updates.

        Returns:
            Number of updates received.
        """
        updates = await self.telegram.get_updates(
            offset=self._offset,
            timeout=self.poll_timeout_seconds,
        )

        for update in updates:
            self._offset = max(self._offset, update.get("update_id", 0) + 1)

            message = parse_update(update)
            if message is None:
                continue

            reply = await self.handler.handle(message)
            if reply:
                await self.telegram.send(message.chat_id, reply)

        return len(updates)

    async def run(self) -> None:
        """Poll until cancelled. Errors are logged and polling resumes."""
        logger.info("update_polling_started")

        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("update_polling_failed", error=str(e))
                await asyncio.sleep(self.retry_delay_seconds)
