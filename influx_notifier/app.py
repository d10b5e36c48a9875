"""Application wiring.

Startup order: store load, scheduler replay of every stored notification,
dispatcher task, Telegram update polling. Shutdown runs in reverse.
"""

from __future__ import annotations

import asyncio

from .alerts.base import ConsoleTransport, MessageTransport
from .alerts.dispatcher import Dispatcher
from .alerts.telegram import TelegramTransport
from .bot.commands import CommandHandler
from .bot.service import NotificationService
from .bot.updates import UpdatePoller
from .core.config import Config, Credentials
from .core.utils import get_logger
from .influx.client import InfluxClient
from .scheduler.poller import IntervalScheduler
from .storage.store import RecordStore

logger = get_logger(__name__)


class Application:
    """Owns every long-lived component of the bot.

    Usage:
        app = Application(load_config(), Credentials.from_env())
        await app.start()
        ...
        await app.stop()
    """

    def __init__(
        self,
        config: Config,
        credentials: Credentials,
        influx: InfluxClient | None = None,
        transport: MessageTransport | None = None,
    ):
        """Initialize application.

        Args:
            config: Loaded configuration.
            credentials: API credentials.
            influx: Query client override.
            transport: Message transport override. Defaults to Telegram when
                a bot token is configured, console otherwise.
        """
        self.config = config
        self.credentials = credentials

        self.store = RecordStore(config.storage.path)
        self.influx = influx or InfluxClient(config.influx, credentials)

        if transport is None:
            if credentials.has_telegram:
                transport = TelegramTransport(
                    bot_token=credentials.telegram_token,
                    parse_mode=config.telegram.parse_mode,
                )
            else:
                transport = ConsoleTransport()
        self.transport = transport

        self.scheduler = IntervalScheduler(
            self.influx,
            results=asyncio.Queue(maxsize=config.scheduler.queue_size),
            lookback=config.influx.lookback,
        )
        self.dispatcher = Dispatcher(self.store, self.scheduler, self.transport)
        self.service = NotificationService(self.store, self.scheduler)
        self.commands = CommandHandler(
            self.store,
            self.service,
            influx=self.influx,
            allowed_usernames=config.telegram.allowed_usernames,
            lookback=config.influx.lookback,
        )

        self._update_task: asyncio.Task | None = None

    async def start(self) -> None:
        """Load state and start every background task.

        Raises:
            ValidationError: If the storage document is malformed.
        """
        await self.store.init()
        await self.influx.connect()

        self.scheduler.init(self.store.get_all_notifications())
        self.dispatcher.start()

        if self.config.telegram.enabled and isinstance(self.transport, TelegramTransport):
            poller = UpdatePoller(
                self.transport,
                self.commands,
                poll_timeout_seconds=self.config.telegram.poll_timeout_seconds,
                retry_delay_seconds=self.config.telegram.retry_delay_seconds,
            )
            self._update_task = asyncio.create_task(poller.run(), name="telegram-updates")
        else:
            logger.info("update_polling_disabled", transport=self.transport.name)

        logger.info(
            "application_started",
            users=len(self.store.get_users()),
            notifications=len(self.scheduler),
        )

    async def stop(self) -> None:
        """Stop background tasks and close connections."""
        if self._update_task is not None:
            self._update_task.cancel()
            try:
                await self._update_task
            except asyncio.CancelledError:
                pass
            self._update_task = None

        await self.scheduler.stop(timeout=self.config.scheduler.stop_timeout_seconds)
        await self.dispatcher.stop()
        await self.influx.disconnect()
        logger.info("application_stopped")

    def get_status(self) -> dict:
        """Get status of the running components."""
        return {
            "scheduler": self.scheduler.get_status(),
            "dispatcher": self.dispatcher.get_stats(),
        }
