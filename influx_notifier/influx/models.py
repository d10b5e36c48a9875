"""InfluxDB result models."""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from typing import Any

# Columns of a Flux result row that are neither data nor tags
_META_COLUMNS = frozenset({"", "result", "table"})


@dataclass(frozen=True)
class SeriesRow:
    """Single time-stamped numeric observation.

    Attributes:
        time: RFC3339 UTC timestamp (_time).
        value: Numeric value (_value).
        field: Field name (_field).
        measurement: Measurement name (_measurement).
        tags: Tag key/values of the series.
        table: Flux table index the row came from.
    """

    time: str
    value: float
    field: str = ""
    measurement: str = ""
    tags: dict[str, str] = dataclass_field(default_factory=dict)
    table: int = 0

    @classmethod
    def from_record(cls, record: dict[str, str]) -> SeriesRow:
        """Build a row from a CSV record keyed by column name.

        Raises:
            ValueError: If _value is not numeric.
        """
        tags = {
            key: value
            for key, value in record.items()
            if key not in _META_COLUMNS and not key.startswith("_")
        }

        return cls(
            time=record.get("_time", ""),
            value=float(record["_value"]),
            field=record.get("_field", ""),
            measurement=record.get("_measurement", ""),
            tags=tags,
            table=int(record.get("table") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "time": self.time,
            "value": self.value,
            "field": self.field,
            "measurement": self.measurement,
            "tags": dict(self.tags),
        }
