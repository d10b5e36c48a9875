"""Chat command handling.

Turns the text of an incoming chat message into store and scheduler calls
and returns the reply text. Replies are plain text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from ..core.errors import ValidationError
from ..core.utils import format_interval, format_value, get_logger, parse_interval_ms, split_command
from ..influx.client import InfluxClient
from ..storage.models import (
    ActionInput,
    ComparisonOperator,
    Notification,
    NotificationInput,
    TagFilter,
    validate_record,
)
from ..storage.store import RecordStore
from .service import NotificationService

logger = get_logger(__name__)

MESSAGES = {
    "unauthorized": "Unauthorized user!",
    "usage": "Usage",
    "invalid": "Invalid configuration",
    "unknown_error": "Sorry, an unknown error occurred :(",
    "unknown_command": "Beep boop, don't understand...",
    "welcome": "Hello! Use /help to list the commands.",
    "action_added": "Action added",
    "action_removed": "Action removed",
    "action_not_found": "Action not found.",
    "notification_added": "Notification added",
    "notification_removed": "Notification removed",
    "notification_not_found": "Notification not found.",
    "actions_empty": "No actions saved.",
    "notifications_empty": "No notifications.",
    "values_not_found": "No values found.",
    "buckets": "Buckets",
    "measurements": "Measurements",
    "measurements_not_found": "No measurements found.",
    "fields": "Fields",
    "fields_not_found": "No fields found.",
    "tags": "Tags",
    "tags_not_found": "No tags found.",
    "tag_values_not_found": "No tag values found.",
    "unknown_bucket": "Unknown bucket",
}

USAGE = {
    "actions_get": "/actions_get <name>",
    "actions_add": "/actions_add <name> <command...>",
    "actions_remove": "/actions_remove <id>",
    "run": "/run <name>",
    "notifications_add": (
        "/notifications_add <name> <bucket> <measurement> <field> "
        "<operator> <threshold> <interval> [tag=value ...]"
    ),
    "notifications_remove": "/notifications_remove <id>",
    "get": "/get <bucket> <measurement> <field> [tag=value ...]",
    "measurements": "/measurements <bucket>",
    "fields": "/fields <bucket> <measurement>",
    "tags": "/tags <bucket> <measurement>",
    "tag": "/tag <bucket> <measurement> <tag>",
}

HELP = {
    "start": "Start a new conversation.",
    "help": "List commands.",
    "actions": "List saved actions.",
    "actions_get": "View saved action.",
    "actions_add": "Save new action.",
    "actions_remove": "Remove saved action.",
    "run": "Run saved action.",
    "notifications": "List notifications.",
    "notifications_add": "Add new notification.",
    "notifications_remove": "Remove notification.",
    "get": "Get latest values from InfluxDB.",
    "buckets": "List InfluxDB buckets.",
    "measurements": "List InfluxDB measurements.",
    "fields": "List InfluxDB fields.",
    "tags": "List InfluxDB tags.",
    "tag": "List values of an InfluxDB tag.",
}

# /run may not chain into another /run
_MAX_RUN_DEPTH = 1


class UsageError(ValidationError):
    """Command arguments do not match the command's usage."""

    def __init__(self, command: str, message: str | None = None):
        super().__init__(message or f"Bad arguments for /{command}", {"command": command})
        self.command = command
        self.detail = message


@dataclass(frozen=True)
class IncomingMessage:
    """Text message received from a chat."""

    user_id: int
    chat_id: int
    text: str
    username: str | None = None


class CommandHandler:
    """Routes chat commands to the store, scheduler and InfluxDB.

    Usage:
        handler = CommandHandler(store, service, influx, allowed_usernames=["alice"])
        reply = await handler.handle(IncomingMessage(user_id=1, chat_id=1, text="/help"))
    """

    def __init__(
        self,
        store: RecordStore,
        service: NotificationService,
        influx: InfluxClient | None = None,
        allowed_usernames: list[str] | None = None,
        lookback: str = "-1h",
    ):
        """Initialize handler.

        Args:
            store: Record store.
            service: Notification lifecycle service.
            influx: Query client for /get.
            allowed_usernames: Usernames served. Empty allows nobody.
            lookback: Range start for /get.
        """
        self.store = store
        self.service = service
        self.influx = influx
        self.allowed_usernames = set(allowed_usernames or [])
        self.lookback = lookback

        self._commands: dict[str, Callable[[IncomingMessage, list[str], int], Awaitable[str]]] = {
            "start": self._start,
            "help": self._help,
            "actions": self._list_actions,
            "actions_get": self._get_action,
            "actions_add": self._add_action,
            "actions_remove": self._remove_action,
            "run": self._run_action,
            "notifications": self._list_notifications,
            "notifications_add": self._add_notification,
            "notifications_remove": self._remove_notification,
            "get": self._get_values,
            "buckets": self._list_buckets,
            "measurements": self._list_measurements,
            "fields": self._list_fields,
            "tags": self._list_tags,
            "tag": self._list_tag_values,
        }

    def is_authorized(self, username: str | None) -> bool:
        """Check if a username may use the bot."""
        return bool(username) and username in self.allowed_usernames

    async def handle(self, message: IncomingMessage, depth: int = 0) -> str | None:
        """Handle one message.

        Args:
            message: Incoming message.
            depth: Nesting level of /run.

        Returns:
            Reply text, or None if the message is not a command.
        """
        if not self.is_authorized(message.username):
            logger.warning("unauthorized_user", username=message.username, user_id=message.user_id)
            return MESSAGES["unauthorized"]

        if not message.text.startswith("/"):
            return None

        name, args = split_command(message.text)
        command = self._commands.get(name)
        if command is None:
            return MESSAGES["unknown_command"]

        try:
            return await command(message, args, depth)
        except UsageError as e:
            return _usage_text(e.command, e.detail)
        except ValidationError as e:
            reply = f"{MESSAGES['invalid']}:\n{e.message}"
            if name in USAGE:
                reply = f"{reply}\n{_usage_text(name)}"
            return reply
        except Exception:
            logger.exception("command_failed", command=name, user_id=message.user_id)
            return MESSAGES["unknown_error"]

    # =========================================================================
    # General
    # =========================================================================

    async def _start(self, message: IncomingMessage, args: list[str], depth: int) -> str:
        await self.store.create_user_if_not_exists(message.user_id, message.chat_id)
        return MESSAGES["welcome"]

    async def _help(self, message: IncomingMessage, args: list[str], depth: int) -> str:
        lines = ["Commands:"]
        for name, description in HELP.items():
            lines.append(f"/{name} - {description}")
        return "\n".join(lines)

    # =========================================================================
    # Actions
    # =========================================================================

    async def _list_actions(self, message: IncomingMessage, args: list[str], depth: int) -> str:
        actions = self.store.list_actions(message.user_id)
        if not actions:
            return MESSAGES["actions_empty"]

        lines = ["Actions:"]
        for action in actions:
            lines.append(f"{action.name}: {action.command}")
            lines.append(f"  id: {action.id}")
        return "\n".join(lines)

    async def _get_action(self, message: IncomingMessage, args: list[str], depth: int) -> str:
        if len(args) != 1:
            raise UsageError("actions_get")

        action = self.store.get_action_by_name(message.user_id, args[0])
        if action is None:
            return MESSAGES["action_not_found"]
        return "\n".join([f"{action.name}: {action.command}", f"  id: {action.id}"])

    async def _add_action(self, message: IncomingMessage, args: list[str], depth: int) -> str:
        if len(args) < 2:
            raise UsageError("actions_add")

        action_input = validate_record(
            ActionInput,
            {"name": args[0], "command": " ".join(args[1:])},
        )
        action = await self.store.add_action(message.user_id, action_input)
        return f"{MESSAGES['action_added']}: {action.name} ({action.id})"

    async def _remove_action(self, message: IncomingMessage, args: list[str], depth: int) -> str:
        if len(args) != 1:
            raise UsageError("actions_remove")

        action = await self.store.remove_action(message.user_id, args[0])
        if action is None:
            return MESSAGES["action_not_found"]
        return f"{MESSAGES['action_removed']}: {action.name}"

    async def _run_action(self, message: IncomingMessage, args: list[str], depth: int) -> str:
        if len(args) != 1:
            raise UsageError("run")

        if depth >= _MAX_RUN_DEPTH:
            raise UsageError("run", "Actions cannot run other actions")

        action = self.store.get_action_by_name(message.user_id, args[0])
        if action is None:
            return MESSAGES["action_not_found"]

        reply = await self.handle(
            IncomingMessage(
                user_id=message.user_id,
                chat_id=message.chat_id,
                text=action.command,
                username=message.username,
            ),
            depth=depth + 1,
        )
        return reply or MESSAGES["unknown_command"]

    # =========================================================================
    # Notifications
    # =========================================================================

    async def _list_notifications(
        self,
        message: IncomingMessage,
        args: list[str],
        depth: int,
    ) -> str:
        notifications = self.store.list_notifications(message.user_id)
        if not notifications:
            return MESSAGES["notifications_empty"]

        lines = ["Notifications:"]
        for notification in notifications:
            lines.extend(_describe_notification(notification))
        return "\n".join(lines)

    async def _add_notification(
        self,
        message: IncomingMessage,
        args: list[str],
        depth: int,
    ) -> str:
        notification_input = parse_notification_args(args)
        notification = await self.service.add_notification(message.user_id, notification_input)
        return "\n".join([f"{MESSAGES['notification_added']}:", *_describe_notification(notification)])

    async def _remove_notification(
        self,
        message: IncomingMessage,
        args: list[str],
        depth: int,
    ) -> str:
        if len(args) != 1:
            raise UsageError("notifications_remove")

        notification = await self.service.remove_notification(message.user_id, args[0])
        if notification is None:
            return MESSAGES["notification_not_found"]
        return f"{MESSAGES['notification_removed']}: {notification.name}"

    # =========================================================================
    # Queries
    # =========================================================================

    async def _get_values(self, message: IncomingMessage, args: list[str], depth: int) -> str:
        if len(args) < 3 or self.influx is None:
            raise UsageError("get")

        bucket, measurement, field = args[:3]
        filters = parse_tag_filters(args[3:], command="get")

        rows = await self.influx.get_last_values(
            bucket, measurement, field, filters, window=self.lookback
        )
        if not rows:
            return MESSAGES["values_not_found"]

        lines = ["Values:"]
        for row in rows:
            lines.append(f"{row.field}: {format_value(row.value)}")
            for tag, value in row.tags.items():
                lines.append(f"  # {tag}: {value}")
            if row.time:
                lines.append(f"  ({row.time})")
        return "\n".join(lines)

    # =========================================================================
    # Schema exploration
    # =========================================================================

    async def _list_buckets(self, message: IncomingMessage, args: list[str], depth: int) -> str:
        if self.influx is None:
            raise UsageError("buckets")

        buckets = await self.influx.get_buckets()
        return _name_list(MESSAGES["buckets"], buckets)

    async def _list_measurements(
        self,
        message: IncomingMessage,
        args: list[str],
        depth: int,
    ) -> str:
        if len(args) != 1 or self.influx is None:
            raise UsageError("measurements")

        measurements = await self.influx.get_measurements(args[0])
        if measurements is None:
            return f"{MESSAGES['unknown_bucket']}: {args[0]}"
        if not measurements:
            return MESSAGES["measurements_not_found"]
        return _name_list(MESSAGES["measurements"], measurements)

    async def _list_fields(self, message: IncomingMessage, args: list[str], depth: int) -> str:
        if len(args) != 2 or self.influx is None:
            raise UsageError("fields")

        fields = await self.influx.get_fields(args[0], args[1])
        if fields is None:
            return f"{MESSAGES['unknown_bucket']}: {args[0]}"
        if not fields:
            return MESSAGES["fields_not_found"]
        return _name_list(MESSAGES["fields"], fields)

    async def _list_tags(self, message: IncomingMessage, args: list[str], depth: int) -> str:
        if len(args) != 2 or self.influx is None:
            raise UsageError("tags")

        tags = await self.influx.get_tags(args[0], args[1])
        if tags is None:
            return f"{MESSAGES['unknown_bucket']}: {args[0]}"
        if not tags:
            return MESSAGES["tags_not_found"]
        return _name_list(MESSAGES["tags"], tags)

    async def _list_tag_values(
        self,
        message: IncomingMessage,
        args: list[str],
        depth: int,
    ) -> str:
        if len(args) != 3 or self.influx is None:
            raise UsageError("tag")

        bucket, measurement, tag = args
        values = await self.influx.get_tag_values(bucket, measurement, tag)
        if values is None:
            return f"{MESSAGES['unknown_bucket']}: {bucket}"
        if not values:
            return MESSAGES["tag_values_not_found"]
        return _name_list(f"Tag ({tag})", values)


def parse_tag_filters(tokens: list[str], command: str) -> list[TagFilter]:
    """Parse "tag=value" tokens.

    Raises:
        UsageError: If a token is not of the form tag=value.
    """
    filters = []
    for token in tokens:
        tag, sep, value = token.partition("=")
        if not sep or not tag:
            raise UsageError(command, f"Expected tag=value, got '{token}'")
        filters.append(TagFilter(tag=tag, value=value))
    return filters


def parse_notification_args(args: list[str]) -> NotificationInput:
    """Parse /notifications_add arguments into a definition.

    Raises:
        UsageError: If arguments are missing or malformed.
        ValidationError: If the definition breaks a model constraint
            (e.g. interval below the minimum).
    """
    if len(args) < 7:
        raise UsageError("notifications_add")

    name, bucket, measurement, field, op_token, threshold_token, interval_token = args[:7]

    operator = ComparisonOperator.parse(op_token)

    try:
        threshold = float(threshold_token)
    except ValueError:
        raise UsageError("notifications_add", f"Threshold is not a number: '{threshold_token}'") from None

    interval_ms = parse_interval_ms(interval_token)
    if interval_ms is None:
        raise UsageError("notifications_add", f"Invalid interval: '{interval_token}'")

    return validate_record(
        NotificationInput,
        {
            "name": name,
            "bucket": bucket,
            "measurement": measurement,
            "field": field,
            "operator": operator,
            "threshold": threshold,
            "interval_ms": interval_ms,
            "filters": parse_tag_filters(args[7:], command="notifications_add"),
        },
    )


def _describe_notification(notification: Notification) -> list[str]:
    lines = [
        f"{notification.name}: {notification.describe_condition()}",
        f"  series: {notification.bucket}/{notification.measurement}",
        f"  every: {format_interval(notification.interval_ms)}",
    ]
    for f in notification.filters:
        lines.append(f"  # {f.tag}: {f.value}")
    lines.append(f"  id: {notification.id}")
    return lines


def _name_list(title: str, names: list[str]) -> str:
    return "\n".join([f"{title}:", *(f"- {name}" for name in names)])


def _usage_text(command: str, message: str | None = None) -> str:
    lines = []
    if message:
        lines.append(message)
    lines.append(f"{MESSAGES['usage']}:")
    lines.append(USAGE.get(command, f"/{command}"))
    return "\n".join(lines)
