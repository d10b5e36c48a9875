"""InfluxDB Notifier.

Threshold alerts over InfluxDB time series, registered and delivered
through a Telegram bot.
"""

__version__ = "0.1.0"
