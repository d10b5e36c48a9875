"""Run command - starts the notifier bot.

Starts a live session that:
- Loads the storage document and resumes every stored notification
- Polls InfluxDB on each notification's interval
- Delivers alerts and answers chat commands via Telegram
"""

from __future__ import annotations

import asyncio
import signal
import sys

import click

from ..utils import async_command, get_config
from ...app import Application
from ...core.config import Config, Credentials
from ...core.utils import format_interval, get_logger

logger = get_logger(__name__)


async def run_bot(config: Config, credentials: Credentials) -> None:
    """Run the bot until SIGINT/SIGTERM.

    Args:
        config: Loaded configuration.
        credentials: API credentials.
    """
    app = Application(config, credentials)

    # Handle shutdown
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig, frame):
        logger.info("shutdown_requested", signal=sig)
        shutdown_event.set()

    # Register signal handlers (Unix only)
    if sys.platform != "win32":
        signal.signal(signal.SIGINT, handle_shutdown)
        signal.signal(signal.SIGTERM, handle_shutdown)

    await app.start()

    click.echo("Starting InfluxDB notifier...")
    click.echo(f"  Storage: {config.storage.path}")
    click.echo(f"  InfluxDB: {config.influx.url} (org: {config.influx.org or '-'})")
    click.echo(f"  Transport: {app.transport.name}")
    click.echo(f"  Active notifications: {len(app.scheduler)}")
    for job in app.scheduler.get_all_jobs():
        click.echo(f"    {job.notification_id} every {format_interval(int(job.interval_seconds * 1000))}")
    click.echo("Press Ctrl+C to stop.")
    click.echo("-" * 50)

    try:
        if sys.platform == "win32":
            # Windows: use simple wait loop
            while not shutdown_event.is_set():
                await asyncio.sleep(1)
        else:
            await shutdown_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()
        click.echo("Shutdown complete.")


@click.command()
@click.option(
    "--storage-path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Storage document path (default: from config).",
)
@click.option(
    "--no-telegram",
    is_flag=True,
    help="Print alerts to the console and do not poll for chat commands.",
)
@click.pass_context
@async_command
async def run(ctx: click.Context, storage_path: str | None, no_telegram: bool) -> None:
    """Start the notifier bot.

    Resumes every stored notification, polls InfluxDB on each
    notification's interval and sends one message when a condition holds.

    \b
    Environment:
      INFLUX_TOKEN   InfluxDB API token
      TG_API_TOKEN   Telegram bot token

    \b
    Examples:
      influx-notifier run
      influx-notifier run --storage-path data/storage.json
      influx-notifier run --no-telegram
    """
    config = get_config(ctx)
    if storage_path:
        config.storage.path = storage_path

    credentials = Credentials.from_env()
    if no_telegram:
        config.telegram.enabled = False
        credentials = credentials.model_copy(update={"telegram_token": None})

    if not credentials.has_influx:
        click.echo("Warning: INFLUX_TOKEN is not set, queries will be unauthenticated.", err=True)

    await run_bot(config, credentials)
