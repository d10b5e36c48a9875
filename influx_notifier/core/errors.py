"""Error hierarchy for the notifier.

ValidationError and NotFoundError come out of the record store and the
command layer. TransientQueryError and DeliveryError never leave the
scheduler and dispatcher: they are logged there and dropped.
"""

from __future__ import annotations

from typing import Any


class NotifierError(Exception):
    """Base exception for all notifier errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(NotifierError):
    """Malformed storage document or alert definition."""


class NotFoundError(NotifierError):
    """Unknown user, action or notification id."""


class TransientQueryError(NotifierError):
    """A single InfluxDB query failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class DeliveryError(NotifierError):
    """A message could not be delivered to a chat."""

    def __init__(
        self,
        message: str,
        chat_address: int | str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.chat_address = chat_address
