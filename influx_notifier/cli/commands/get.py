"""Get command - query latest values from InfluxDB."""

from __future__ import annotations

import click

from ..utils import async_command, get_config, handle_error, output_json, output_table
from ...bot.commands import UsageError, parse_tag_filters
from ...core.config import Credentials
from ...core.errors import TransientQueryError
from ...core.utils import format_value
from ...influx.client import InfluxClient


@click.command()
@click.argument("bucket")
@click.argument("measurement")
@click.argument("field")
@click.option(
    "--tag",
    "tags",
    multiple=True,
    help="Tag filter as tag=value (repeatable).",
)
@click.option(
    "--window",
    default=None,
    help="Range start, e.g. -1h or -7d (default: from config).",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Output as JSON.",
)
@click.pass_context
@async_command
async def get(
    ctx: click.Context,
    bucket: str,
    measurement: str,
    field: str,
    tags: tuple[str, ...],
    window: str | None,
    as_json: bool,
) -> None:
    """Show the last value of every matching series.

    \b
    Examples:
      influx-notifier get home climate temperature
      influx-notifier get home climate temperature --tag room=kitchen --window -7d
    """
    config = get_config(ctx)

    try:
        filters = parse_tag_filters(list(tags), command="get")
    except UsageError as e:
        raise click.BadParameter(e.message, param_hint="--tag") from e

    async with InfluxClient(config.influx, Credentials.from_env()) as influx:
        try:
            rows = await influx.get_last_values(
                bucket,
                measurement,
                field,
                filters,
                window=window or config.influx.lookback,
            )
        except TransientQueryError as e:
            handle_error(e)
            return

    if as_json:
        output_json([row.to_dict() for row in rows])
        return

    if not rows:
        click.echo("No values found.")
        return

    output_table(
        ["Time", "Field", "Value", "Tags"],
        [
            [
                row.time,
                row.field,
                format_value(row.value),
                ", ".join(f"{k}={v}" for k, v in row.tags.items()),
            ]
            for row in rows
        ],
    )
