"""CLI utility functions.

Provides:
- Async execution helpers for Click commands
- Output formatting utilities
- Store access for offline record commands
"""

from __future__ import annotations

import asyncio
import json
import sys
from functools import wraps
from typing import Any, Callable, TypeVar

import click

from ..core.config import Config, load_config
from ..core.utils import get_logger
from ..storage.store import RecordStore

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def async_command(f: F) -> F:
    """Decorator to run async functions in Click commands.

    Usage:
        @cli.command()
        @async_command
        async def my_command():
            await some_async_operation()
    """
    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(f(*args, **kwargs))
    return wrapper  # type: ignore


def get_config(ctx: click.Context) -> Config:
    """Get the configuration loaded by the top-level group."""
    obj = ctx.find_root().obj or {}
    config = obj.get("config")
    if config is None:
        config = load_config(obj.get("config_path"))
    return config


async def open_store(config: Config) -> RecordStore:
    """Load the record store named by the configuration."""
    store = RecordStore(config.storage.path)
    await store.init()
    return store


def print_header(title: str, width: int = 70) -> None:
    """Print a formatted header."""
    click.echo("=" * width)
    click.echo(f"  {title}")
    click.echo("=" * width)


def print_subheader(title: str, width: int = 70) -> None:
    """Print a formatted subheader."""
    click.echo()
    click.echo("-" * width)
    click.echo(f"  {title}")
    click.echo("-" * width)


def print_table_row(label: str, value: str, width: int = 30) -> None:
    """Print a formatted table row."""
    click.echo(f"  {label:<{width}} {value}")


def handle_error(error: Exception, verbose: bool = False) -> None:
    """Handle and display errors consistently."""
    if verbose:
        logger.exception("command_failed", error=str(error))
    click.echo(f"\nError: {error}", err=True)
    sys.exit(1)


def output_json(data: Any) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=2, default=str))


def output_table(headers: list[str], rows: list[list[Any]]) -> None:
    """Output data as formatted table."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    header_line = " | ".join(f"{h:<{widths[i]}}" for i, h in enumerate(headers))
    click.echo(header_line)
    click.echo("-" * len(header_line))

    for row in rows:
        row_line = " | ".join(f"{str(cell):<{widths[i]}}" for i, cell in enumerate(row))
        click.echo(row_line)
