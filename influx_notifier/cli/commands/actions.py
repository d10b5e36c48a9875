"""Action management CLI commands."""

from __future__ import annotations

import click

from ..utils import async_command, get_config, handle_error, open_store, output_json, output_table
from ...core.errors import NotifierError
from ...storage.models import ActionInput, validate_record


@click.group()
def actions() -> None:
    """Manage saved actions (command shortcuts).

    \b
    Examples:
      influx-notifier actions list --user 42
      influx-notifier actions add --user 42 temp "/get home climate temperature"
      influx-notifier actions remove --user 42 <id>
    """
    pass


@actions.command("list")
@click.option("--user", "user_id", type=int, required=True, help="Owner user id.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@async_command
async def list_actions(ctx: click.Context, user_id: int, as_json: bool) -> None:
    """Show a user's actions."""
    store = await open_store(get_config(ctx))

    try:
        records = store.list_actions(user_id)
    except NotifierError as e:
        handle_error(e)
        return

    if as_json:
        output_json([a.to_document() for a in records])
        return

    if not records:
        click.echo("No actions saved.")
        return

    output_table(["Id", "Name", "Command"], [[a.id, a.name, a.command] for a in records])


@actions.command("add")
@click.option("--user", "user_id", type=int, required=True, help="Owner user id.")
@click.argument("name")
@click.argument("command", nargs=-1, required=True)
@click.pass_context
@async_command
async def add_action(ctx: click.Context, user_id: int, name: str, command: tuple[str, ...]) -> None:
    """Save COMMAND under NAME."""
    store = await open_store(get_config(ctx))

    try:
        action_input = validate_record(ActionInput, {"name": name, "command": " ".join(command)})
        action = await store.add_action(user_id, action_input)
    except NotifierError as e:
        handle_error(e)
        return

    click.echo(f"Action added: {action.name} ({action.id})")


@actions.command("remove")
@click.option("--user", "user_id", type=int, required=True, help="Owner user id.")
@click.argument("action_id")
@click.pass_context
@async_command
async def remove_action(ctx: click.Context, user_id: int, action_id: str) -> None:
    """Remove the action ACTION_ID."""
    store = await open_store(get_config(ctx))

    try:
        action = await store.remove_action(user_id, action_id)
    except NotifierError as e:
        handle_error(e)
        return

    if action is None:
        click.echo("Action not found.")
        ctx.exit(1)
    click.echo(f"Action removed: {action.name}")
