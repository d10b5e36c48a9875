"""Telegram bot transport.

Sends messages to Telegram chats and long-polls updates via the Bot API.
"""

from __future__ import annotations

import asyncio
import html
from typing import Any

import aiohttp

from ..core.errors import DeliveryError
from ..core.utils import format_value, get_logger
from .base import Alert, MessageTransport

logger = get_logger(__name__)


class TelegramTransport(MessageTransport):
    """Telegram Bot API transport.

    Usage:
        telegram = TelegramTransport(bot_token="123456:ABC-DEF...")

        await telegram.send(chat_id, "Hello")
        updates = await telegram.get_updates(offset=0, timeout=30)
    """

    BASE_URL = "https://api.telegram.org"

    def __init__(
        self,
        bot_token: str,
        parse_mode: str = "HTML",
        request_timeout_seconds: float = 10.0,
    ):
        """Initialize Telegram transport.

        Args:
            bot_token: Telegram bot token from BotFather.
            parse_mode: Parse mode used for alerts (HTML or plain).
            request_timeout_seconds: Timeout for non-polling requests.
        """
        super().__init__()
        self.bot_token = bot_token
        self.parse_mode = parse_mode
        self.request_timeout_seconds = request_timeout_seconds

    @property
    def name(self) -> str:
        return "telegram"

    def _format_html(self, alert: Alert) -> str:
        """Format alert as HTML for Telegram."""
        lines = [
            f"<b>🔔 {html.escape(alert.title)}</b>",
            "",
            f"<code>{html.escape(alert.message)}</code>",
            f"Value: <b>{html.escape(format_value(alert.value))}</b>",
        ]

        if alert.data:
            lines.append("")
            lines.append("<pre>")
            for key, value in alert.data.items():
                lines.append(f"{html.escape(str(key))}: {html.escape(str(value))}")
            lines.append("</pre>")

        lines.append("")
        lines.append(f"<i>{alert.timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}</i>")

        return "\n".join(lines)

    def format_alert(self, alert: Alert) -> str:
        if self.parse_mode == "HTML":
            return self._format_html(alert)
        return alert.format_text()

    def _get_api_url(self, method: str) -> str:
        """Get Telegram API URL for method."""
        return f"{self.BASE_URL}/bot{self.bot_token}/{method}"

    async def _call(
        self,
        method: str,
        payload: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Call a Bot API method.

        Returns:
            The decoded response body.
        """
        async with aiohttp.ClientSession() as session:
            async with session.post(
                self._get_api_url(method),
                json=payload or {},
                timeout=aiohttp.ClientTimeout(total=timeout or self.request_timeout_seconds),
            ) as response:
                return await response.json()

    async def send(
        self,
        chat_address: int | str,
        text: str,
        parse_mode: str | None = None,
    ) -> bool:
        """Send a message to a chat.

        Args:
            chat_address: Target chat id.
            text: Message text.
            parse_mode: Telegram parse mode, None for plain text.

        Returns:
            True if sent successfully.
        """
        payload: dict[str, Any] = {
            "chat_id": chat_address,
            "text": text,
            "disable_web_page_preview": True,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode

        try:
            data = await self._call("sendMessage", payload)
        except asyncio.TimeoutError:
            logger.error("telegram_timeout", method="sendMessage")
            return False
        except aiohttp.ClientError as e:
            logger.error("telegram_error", method="sendMessage", error=str(e))
            return False

        if data.get("ok"):
            logger.debug("telegram_message_sent", chat_address=chat_address)
            return True

        logger.error(
            "telegram_error",
            method="sendMessage",
            error=data.get("description", "Unknown error"),
        )
        return False

    async def deliver_alert(self, chat_address: int | str, alert: Alert) -> bool:
        parse_mode = self.parse_mode if self.parse_mode == "HTML" else None
        return await self.send(chat_address, self.format_alert(alert), parse_mode=parse_mode)

    async def get_updates(self, offset: int = 0, timeout: int = 30) -> list[dict[str, Any]]:
        """Long-poll for new updates.

        Args:
            offset: First update id to return.
            timeout: Seconds the server may hold the request.

        Returns:
            List of update objects.

        Raises:
            DeliveryError: If the Bot API rejects the request.
        """
        data = await self._call(
            "getUpdates",
            {"offset": offset, "timeout": timeout, "allowed_updates": ["message"]},
            timeout=timeout + self.request_timeout_seconds,
        )

        if not data.get("ok"):
            raise DeliveryError(f"getUpdates failed: {data.get('description', 'Unknown error')}")

        return data.get("result", [])

    async def test_connection(self) -> bool:
        """Test bot connection by getting bot info.

        Returns:
            True if connection successful.
        """
        try:
            data = await self._call("getMe")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("telegram_connection_error", error=str(e))
            return False

        if data.get("ok"):
            bot_info = data.get("result", {})
            logger.info("telegram_connected", username=bot_info.get("username"))
            return True

        logger.error("telegram_auth_failed", error=data.get("description"))
        return False
