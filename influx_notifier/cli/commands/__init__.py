"""CLI command modules.

Core commands:
- run: Start the bot (polling, dispatching, chat commands)
- check: Validate the storage document and test connections
- get: Query latest values from InfluxDB

Command groups (offline, operate on the storage document):
- users: Register users
- actions: Manage saved actions
- notifications: Manage notifications
"""

from . import check, get, run

__all__ = ["check", "get", "run"]
