"""Notification management CLI commands.

Changes are written to the storage document only. A running bot picks
them up on its next start.
"""

from __future__ import annotations

import click

from ..utils import async_command, get_config, handle_error, open_store, output_json, output_table
from ...bot.commands import UsageError, parse_notification_args
from ...core.errors import NotifierError
from ...core.utils import format_interval


@click.group()
def notifications() -> None:
    """Manage notifications in the storage document.

    \b
    Examples:
      influx-notifier notifications list --user 42
      influx-notifier notifications add --user 42 hot home climate temperature ">" 30 1m --tag room=kitchen
      influx-notifier notifications remove --user 42 <id>
    """
    pass


@notifications.command("list")
@click.option("--user", "user_id", type=int, default=None, help="Owner user id (default: all users).")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@async_command
async def list_notifications(ctx: click.Context, user_id: int | None, as_json: bool) -> None:
    """Show notifications."""
    store = await open_store(get_config(ctx))

    try:
        if user_id is None:
            records = store.get_all_notifications()
        else:
            records = store.list_notifications(user_id)
    except NotifierError as e:
        handle_error(e)
        return

    if as_json:
        output_json([n.to_document() for n in records])
        return

    if not records:
        click.echo("No notifications.")
        return

    output_table(
        ["Id", "Name", "Series", "Condition", "Every"],
        [
            [
                n.id,
                n.name,
                f"{n.bucket}/{n.measurement}",
                n.describe_condition(),
                format_interval(n.interval_ms),
            ]
            for n in records
        ],
    )


@notifications.command("add")
@click.option("--user", "user_id", type=int, required=True, help="Owner user id.")
@click.option("--tag", "tags", multiple=True, help="Tag filter as tag=value (repeatable).")
@click.argument("name")
@click.argument("bucket")
@click.argument("measurement")
@click.argument("field")
@click.argument("operator")
@click.argument("threshold")
@click.argument("interval")
@click.pass_context
@async_command
async def add_notification(
    ctx: click.Context,
    user_id: int,
    tags: tuple[str, ...],
    name: str,
    bucket: str,
    measurement: str,
    field: str,
    operator: str,
    threshold: str,
    interval: str,
) -> None:
    """Add a notification.

    OPERATOR is one of < > <= >= == != and INTERVAL is a duration such
    as 1500ms, 30s, 5m or 1h (at least one second).
    """
    store = await open_store(get_config(ctx))

    try:
        notification_input = parse_notification_args(
            [name, bucket, measurement, field, operator, threshold, interval, *tags]
        )
        notification = await store.add_notification(user_id, notification_input)
    except UsageError as e:
        raise click.UsageError(e.message) from e
    except NotifierError as e:
        handle_error(e)
        return

    click.echo(f"Notification added: {notification.name} ({notification.id})")


@notifications.command("remove")
@click.option("--user", "user_id", type=int, required=True, help="Owner user id.")
@click.argument("notification_id")
@click.pass_context
@async_command
async def remove_notification(ctx: click.Context, user_id: int, notification_id: str) -> None:
    """Remove the notification NOTIFICATION_ID."""
    store = await open_store(get_config(ctx))

    try:
        notification = await store.remove_notification(user_id, notification_id)
    except NotifierError as e:
        handle_error(e)
        return

    if notification is None:
        click.echo("Notification not found.")
        ctx.exit(1)
    click.echo(f"Notification removed: {notification.name}")
