"""Enable running as: python -m influx_notifier

Usage:
    python -m influx_notifier --help
    python -m influx_notifier run
    python -m influx_notifier check
"""

from influx_notifier.cli.main import cli

if __name__ == "__main__":
    cli()
