"""Flux query construction and CSV result parsing."""

from __future__ import annotations

import csv
import io
from typing import Iterable

from ..core.utils import get_logger
from ..storage.models import TagFilter
from .models import SeriesRow

logger = get_logger(__name__)

DEFAULT_RANGE_START = "-7d"


def quote(value: str) -> str:
    """Quote a string literal for Flux."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_range(start: str | None = None, stop: str | None = None) -> str:
    """Build a range() stage.

    Args:
        start: Relative duration ("-1h") or RFC3339 time.
        stop: Optional end of the range.
    """
    parts = [f"start: {start or DEFAULT_RANGE_START}"]
    if stop:
        parts.append(f"stop: {stop}")
    return f"|> range({', '.join(parts)})"


def build_tag_filter(filters: Iterable[TagFilter]) -> str:
    """Build the predicate matching every tag filter ("true" when empty)."""
    clauses = [f"r[{quote(f.tag)}] == {quote(f.value)}" for f in filters]
    return " and ".join(clauses) if clauses else "true"


def build_last_value_query(
    bucket: str,
    measurement: str,
    field: str,
    filters: Iterable[TagFilter],
    start: str | None = None,
) -> str:
    """Build the query returning the last value of each matching series."""
    return "\n".join([
        f"from(bucket: {quote(bucket)})",
        f"  {build_range(start)}",
        f"  |> filter(fn: (r) => r[\"_measurement\"] == {quote(measurement)})",
        f"  |> filter(fn: (r) => {build_tag_filter(filters)})",
        f"  |> filter(fn: (r) => r[\"_field\"] == {quote(field)})",
        "  |> last()",
    ])


def build_buckets_query() -> str:
    """Build the query listing every bucket."""
    return "buckets()"


def build_measurements_query(bucket: str, start: str | None = None) -> str:
    """Build the query listing the distinct measurements of a bucket."""
    return "\n".join([
        f"from(bucket: {quote(bucket)})",
        f"  {build_range(start)}",
        "  |> keys()",
        "  |> keep(columns: [\"_measurement\"])",
        "  |> distinct(column: \"_measurement\")",
    ])


def build_fields_query(bucket: str, measurement: str, start: str | None = None) -> str:
    """Build the query listing the distinct fields of a measurement."""
    return "\n".join([
        f"from(bucket: {quote(bucket)})",
        f"  {build_range(start)}",
        f"  |> filter(fn: (r) => r[\"_measurement\"] == {quote(measurement)})",
        "  |> group(columns: [\"_field\"])",
        "  |> distinct(column: \"_field\")",
    ])


def build_tags_query(bucket: str, measurement: str, start: str | None = None) -> str:
    """Build the query listing the column names of a measurement."""
    return "\n".join([
        f"from(bucket: {quote(bucket)})",
        f"  {build_range(start)}",
        f"  |> filter(fn: (r) => r[\"_measurement\"] == {quote(measurement)})",
        "  |> keys()",
        "  |> group()",
        "  |> distinct()",
    ])


def build_tag_values_query(
    bucket: str,
    measurement: str,
    tag: str,
    start: str | None = None,
) -> str:
    """Build the query listing the distinct values of one tag."""
    return "\n".join([
        f"from(bucket: {quote(bucket)})",
        f"  {build_range(start)}",
        f"  |> filter(fn: (r) => r[\"_measurement\"] == {quote(measurement)})",
        f"  |> keyValues(keyColumns: [{quote(tag)}])",
        "  |> group()",
        "  |> distinct()",
    ])


def parse_csv_records(text: str) -> list[dict[str, str]]:
    """Parse a Flux CSV response into records keyed by column name.

    Tables are separated by blank lines and each starts with its own header.
    Annotation rows (starting with '#') are skipped.
    """
    records: list[dict[str, str]] = []
    header: list[str] | None = None

    for record in csv.reader(io.StringIO(text)):
        if not record or all(not cell for cell in record):
            header = None
            continue

        if record[0].startswith("#"):
            continue

        if header is None:
            header = record
            continue

        records.append(dict(zip(header, record)))

    return records


def parse_csv(text: str) -> list[SeriesRow]:
    """Parse a Flux CSV response into numeric rows.

    Records without a numeric _value are dropped.
    """
    rows: list[SeriesRow] = []

    for values in parse_csv_records(text):
        if "_value" not in values:
            continue

        try:
            rows.append(SeriesRow.from_record(values))
        except ValueError:
            logger.debug("flux_row_skipped", value=values.get("_value"))

    return rows
