"""Check command - validate storage and test connections."""

from __future__ import annotations

from pathlib import Path

import click

from ..utils import async_command, get_config, print_header, print_subheader, print_table_row
from ...alerts.telegram import TelegramTransport
from ...core.config import Credentials
from ...core.errors import ValidationError
from ...core.utils import format_interval
from ...influx.client import InfluxClient
from ...storage.store import RecordStore


@click.command()
@click.option(
    "--connections",
    is_flag=True,
    help="Also test the InfluxDB and Telegram connections.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="List every stored notification.",
)
@click.pass_context
@async_command
async def check(ctx: click.Context, connections: bool, verbose: bool) -> None:
    """Validate the storage document.

    Loads the document without rewriting it and reports record counts.
    Exits with status 1 if the document is malformed or a tested
    connection fails.

    \b
    Examples:
      influx-notifier check
      influx-notifier check --connections -v
    """
    config = get_config(ctx)
    print_header("NOTIFIER CHECK")

    path = Path(config.storage.path)
    click.echo(f"\n  Storage: {path}")

    ok = True
    store = RecordStore(path)

    if not path.exists():
        click.echo("  Document not found (will be created on first run)")
    else:
        try:
            await store.init(write_back=False)
        except ValidationError as e:
            click.echo(f"\n  INVALID: {e.message}")
            for error in e.details.get("errors", []):
                click.echo(f"    {error}")
            ok = False
        else:
            users = store.get_users()
            print_subheader("RECORDS")
            print_table_row("Users", str(len(users)))
            print_table_row("Actions", str(sum(len(u.actions) for u in users)))
            print_table_row("Notifications", str(len(store.get_all_notifications())))

            if verbose:
                for user in users:
                    click.echo(f"\n  User {user.id} (chat {user.chat_address})")
                    for n in user.notifications:
                        click.echo(
                            f"    {n.id}  {n.name}: {n.describe_condition()} "
                            f"every {format_interval(n.interval_ms)}"
                        )

    if connections:
        ok = await _check_connections(config) and ok

    click.echo()
    if ok:
        click.echo("All checks passed.")
    else:
        click.echo("Some checks failed.")
        ctx.exit(1)


async def _check_connections(config) -> bool:
    credentials = Credentials.from_env()
    results = {}

    print_subheader("CONNECTIONS")

    async with InfluxClient(config.influx, credentials) as influx:
        results["influxdb"] = await influx.ping()

    if credentials.has_telegram:
        telegram = TelegramTransport(bot_token=credentials.telegram_token)
        results["telegram"] = await telegram.test_connection()
    else:
        click.echo("  TG_API_TOKEN not set, skipping Telegram")

    for name, connected in results.items():
        print_table_row(name, "OK" if connected else "FAILED")

    return all(results.values())
