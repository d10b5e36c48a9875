"""Utility functions for the InfluxDB notifier."""

from __future__ import annotations

import logging
import re
import sys
from datetime import datetime, timezone

import structlog

# Interval tokens accepted from chat commands: "1500ms", "30s", "5m", "1h" or bare milliseconds
_INTERVAL_PATTERN = re.compile(r"^(\d+)(ms|s|m|h)?$")

_INTERVAL_UNITS_MS = {
    None: 1,
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
}


def setup_logging(level: str = "INFO", log_format: str = "console") -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format ('console' or 'json').
    """
    # Configure standard library logging
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(message)s",
        stream=sys.stdout,
    )

    # Configure structlog
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Configured logger instance.
    """
    return structlog.get_logger(name)


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def parse_interval_ms(token: str) -> int | None:
    """Parse an interval token into milliseconds.

    Args:
        token: Interval such as "1500ms", "30s", "5m", "1h" or "2000".

    Returns:
        Milliseconds, or None if the token is not an interval.
    """
    match = _INTERVAL_PATTERN.match(token.strip().lower())
    if not match:
        return None

    amount, unit = match.groups()
    return int(amount) * _INTERVAL_UNITS_MS[unit]


def format_interval(interval_ms: int) -> str:
    """Format milliseconds as the largest whole unit."""
    for unit in ("h", "m", "s"):
        size = _INTERVAL_UNITS_MS[unit]
        if interval_ms >= size and interval_ms % size == 0:
            return f"{interval_ms // size}{unit}"
    return f"{interval_ms}ms"


def format_value(value: float, decimals: int = 4) -> str:
    """Format a sample value without trailing zeros.

    Args:
        value: Numeric value.
        decimals: Maximum number of decimal places.

    Returns:
        Formatted value string.
    """
    text = f"{value:.{decimals}f}".rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"


def split_command(text: str) -> tuple[str, list[str]]:
    """Split a chat command into its name and arguments.

    "/notifications_add@my_bot a b" -> ("notifications_add", ["a", "b"])
    """
    parts = text.strip().split()
    if not parts:
        return "", []

    name = parts[0].lstrip("/").split("@", 1)[0].lower()
    return name, parts[1:]
