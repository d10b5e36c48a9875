"""InfluxDB Notifier - Unified CLI.

Usage:
    influx-notifier --help
    influx-notifier run
    influx-notifier check --connections
    influx-notifier notifications list --user 42
"""

from __future__ import annotations

import click

from ..core.config import load_config
from ..core.utils import setup_logging


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level (default: from config).",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"], case_sensitive=False),
    default=None,
    help="Set logging format (default: from config).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Config file (default: configs/default.json).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    log_level: str | None,
    log_format: str | None,
    config_path: str | None,
) -> None:
    """InfluxDB Notifier - threshold alerts over InfluxDB, delivered to Telegram.

    Users register notifications on an InfluxDB series. Each notification
    is polled on its own interval and fires a single message the first
    time its condition holds, after which it is removed.

    \b
    Examples:
      influx-notifier run
      influx-notifier check
      influx-notifier get home climate temperature --tag room=kitchen
      influx-notifier notifications add --user 42 hot home climate temperature ">" 30 1m
    """
    config = load_config(config_path)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["config"] = config
    setup_logging(
        level=log_level or config.general.log_level,
        log_format=log_format or config.general.log_format,
    )


# Import and register commands
from .commands import check, get, run
from .commands.actions import actions
from .commands.notifications import notifications
from .commands.users import users

cli.add_command(run.run)
cli.add_command(check.check)
cli.add_command(get.get)
cli.add_command(users)
cli.add_command(actions)
cli.add_command(notifications)


if __name__ == "__main__":
    cli()
