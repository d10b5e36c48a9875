"""Persisted record models.

The storage document is a JSON array of users. Keys are written in camelCase
("chatAddress", "intervalMs") while the Python attributes stay snake_case.
"""

from __future__ import annotations

import operator
from enum import Enum
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field, RootModel
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..core.errors import ValidationError

# Minimum polling interval for a notification
MIN_INTERVAL_MS = 1000

ModelT = TypeVar("ModelT", bound=BaseModel)


class ComparisonOperator(Enum):
    """Threshold comparison applied to a sampled value."""

    LESS_THAN = "<"
    GREATER_THAN = ">"
    LESS_OR_EQUAL = "<="
    GREATER_OR_EQUAL = ">="
    EQUAL = "=="
    NOT_EQUAL = "!="

    def evaluate(self, value: float, threshold: float) -> bool:
        """Check whether `value <op> threshold` holds."""
        return _EVALUATORS[self](value, threshold)

    @classmethod
    def parse(cls, token: str) -> ComparisonOperator:
        """Parse an operator token ("<", ">=") or its short name ("lt", "ge").

        Raises:
            ValidationError: If the token is not a known operator.
        """
        normalized = token.strip().lower()
        normalized = _OPERATOR_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            tokens = ", ".join(op.value for op in cls)
            raise ValidationError(
                f"Unknown operator '{token}', expected one of: {tokens}"
            ) from None


_EVALUATORS: dict[ComparisonOperator, Callable[[float, float], bool]] = {
    ComparisonOperator.LESS_THAN: operator.lt,
    ComparisonOperator.GREATER_THAN: operator.gt,
    ComparisonOperator.LESS_OR_EQUAL: operator.le,
    ComparisonOperator.GREATER_OR_EQUAL: operator.ge,
    ComparisonOperator.EQUAL: operator.eq,
    ComparisonOperator.NOT_EQUAL: operator.ne,
}

_OPERATOR_ALIASES = {
    "lt": "<",
    "gt": ">",
    "le": "<=",
    "lte": "<=",
    "ge": ">=",
    "gte": ">=",
    "eq": "==",
    "=": "==",
    "ne": "!=",
    "<>": "!=",
}


class RecordModel(BaseModel):
    """Base for persisted records (camelCase on disk)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_document(self) -> dict[str, Any]:
        """Dump in the persisted (camelCase, JSON-safe) form."""
        return self.model_dump(mode="json", by_alias=True)


class TagFilter(RecordModel):
    """Tag equality filter applied to a series query."""

    tag: str = Field(min_length=1)
    value: str


class SeriesSelector(RecordModel):
    """Identifies which time series a notification samples."""

    bucket: str = Field(min_length=1)
    measurement: str = Field(min_length=1)
    field: str = Field(min_length=1)
    filters: list[TagFilter] = Field(default_factory=list)


class ActionInput(RecordModel):
    """User-supplied part of an Action."""

    name: str = Field(min_length=1)
    command: str = Field(min_length=1)


class Action(ActionInput):
    """Saved command shortcut."""

    id: str


class NotificationInput(SeriesSelector):
    """User-supplied part of a Notification."""

    name: str = Field(min_length=1)
    operator: ComparisonOperator
    threshold: float = Field(allow_inf_nan=False)
    interval_ms: int = Field(ge=MIN_INTERVAL_MS)

    @property
    def selector(self) -> SeriesSelector:
        """The series this notification samples."""
        return SeriesSelector(
            bucket=self.bucket,
            measurement=self.measurement,
            field=self.field,
            filters=list(self.filters),
        )

    def describe_condition(self) -> str:
        """Human readable condition, e.g. 'temperature > 10'."""
        return f"{self.field} {self.operator.value} {self.threshold:g}"


class Notification(NotificationInput):
    """Persisted threshold alert definition."""

    id: str


class User(RecordModel):
    """Chat user owning actions and notifications."""

    id: int
    chat_address: int
    actions: list[Action] = Field(default_factory=list)
    notifications: list[Notification] = Field(default_factory=list)


class StorageDocument(RootModel[list[User]]):
    """The whole persisted document."""

    root: list[User] = Field(default_factory=list)


def validate_record(model: type[ModelT], data: Any) -> ModelT:
    """Validate data into a record model.

    Args:
        model: Model class to validate against.
        data: Raw mapping (snake_case or camelCase keys).

    Returns:
        Validated model instance.

    Raises:
        ValidationError: With one line per failing field.
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        problems = [
            f"{'.'.join(str(loc) for loc in err['loc']) or model.__name__}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(
            f"Invalid {model.__name__}: " + "; ".join(problems),
            details={"errors": problems},
        ) from e
