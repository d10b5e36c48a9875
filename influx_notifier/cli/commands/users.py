"""User management CLI commands.

Subcommands:
- add: Register a user and the chat alerts are delivered to
- list: Show registered users
"""

from __future__ import annotations

import click

from ..utils import async_command, get_config, open_store, output_json, output_table


@click.group()
def users() -> None:
    """Manage users in the storage document.

    Do not run these while the bot is running on the same storage path.

    \b
    Examples:
      influx-notifier users add 42 42
      influx-notifier users list
    """
    pass


@users.command("add")
@click.argument("user_id", type=int)
@click.argument("chat_address", type=int)
@click.pass_context
@async_command
async def add_user(ctx: click.Context, user_id: int, chat_address: int) -> None:
    """Register USER_ID with CHAT_ADDRESS. Existing users are left unchanged."""
    store = await open_store(get_config(ctx))

    existed = store.user_exists(user_id)
    user = await store.create_user_if_not_exists(user_id, chat_address)

    if existed:
        click.echo(f"User {user.id} already exists (chat {user.chat_address}).")
    else:
        click.echo(f"User {user.id} added (chat {user.chat_address}).")


@users.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@async_command
async def list_users(ctx: click.Context, as_json: bool) -> None:
    """Show registered users."""
    store = await open_store(get_config(ctx))
    all_users = store.get_users()

    if as_json:
        output_json([
            {
                "id": u.id,
                "chat_address": u.chat_address,
                "actions": len(u.actions),
                "notifications": len(u.notifications),
            }
            for u in all_users
        ])
        return

    if not all_users:
        click.echo("No users.")
        return

    output_table(
        ["User", "Chat", "Actions", "Notifications"],
        [[u.id, u.chat_address, len(u.actions), len(u.notifications)] for u in all_users],
    )
