"""InfluxDB v2 query client.

Runs Flux queries through the HTTP query API and returns typed rows.

References:
- https://docs.influxdata.com/influxdb/v2/api/#operation/PostQuery
"""

from __future__ import annotations

from typing import Iterable

import httpx

from ..core.config import Credentials, InfluxConfig
from ..core.errors import TransientQueryError
from ..core.utils import get_logger
from ..storage.models import TagFilter
from .flux import (
    build_buckets_query,
    build_fields_query,
    build_last_value_query,
    build_measurements_query,
    build_tag_values_query,
    build_tags_query,
    parse_csv,
    parse_csv_records,
)
from .models import SeriesRow

logger = get_logger(__name__)


class InfluxClient:
    """Async client for the InfluxDB v2 query API.

    Example:
        ```python
        async with InfluxClient(config.influx, Credentials.from_env()) as influx:
            row = await influx.get_latest("home", "climate", "temperature", [])
        ```
    """

    QUERY_PATH = "/api/v2/query"

    def __init__(
        self,
        config: InfluxConfig | None = None,
        credentials: Credentials | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            config: Connection configuration.
            credentials: Credentials holding the API token.
            transport: Optional httpx transport (used by tests).
        """
        config = config or InfluxConfig()
        self.base_url = config.url.rstrip("/")
        self.org = config.org
        self.timeout = config.timeout_seconds
        self.credentials = credentials or Credentials()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return

        headers = {
            "Accept": "application/csv",
            "Content-Type": "application/json",
        }
        if self.credentials.influx_token:
            headers["Authorization"] = f"Token {self.credentials.influx_token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        logger.info("influx_client_ready", url=self.base_url, org=self.org)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "InfluxClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    async def ping(self) -> bool:
        """Check the server health endpoint.

        Returns:
            True if the server reports status "pass".
        """
        if self._client is None:
            await self.connect()

        try:
            response = await self._client.get("/health")
        except httpx.HTTPError as e:
            logger.error("influx_connection_error", error=str(e))
            return False

        if response.status_code != 200:
            logger.error("influx_unhealthy", status_code=response.status_code)
            return False

        return response.json().get("status") == "pass"

    async def query(self, flux: str) -> list[SeriesRow] | None:
        """Run a Flux query returning numeric rows.

        Args:
            flux: Flux query text.

        Returns:
            Parsed rows, or None if the bucket does not exist (HTTP 404).

        Raises:
            TransientQueryError: On transport errors or other non-2xx responses.
        """
        text = await self._post_query(flux)
        if text is None:
            return None
        return parse_csv(text)

    async def query_records(self, flux: str) -> list[dict[str, str]] | None:
        """Run a Flux query returning raw records keyed by column name.

        Returns:
            Records, or None if the bucket does not exist (HTTP 404).
        """
        text = await self._post_query(flux)
        if text is None:
            return None
        return parse_csv_records(text)

    async def _post_query(self, flux: str) -> str | None:
        if self._client is None:
            await self.connect()

        payload = {
            "query": flux,
            "type": "flux",
            "dialect": {"header": True, "annotations": []},
        }

        try:
            response = await self._client.post(
                self.QUERY_PATH,
                params={"org": self.org},
                json=payload,
            )
        except httpx.HTTPError as e:
            raise TransientQueryError(f"InfluxDB request failed: {e}") from e

        if response.status_code == 404:
            return None

        if response.status_code >= 400:
            raise TransientQueryError(
                f"InfluxDB query failed with HTTP {response.status_code}",
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )

        return response.text

    # =========================================================================
    # Schema exploration
    # =========================================================================

    async def get_buckets(self) -> list[str]:
        """Get the names of all buckets."""
        records = await self.query_records(build_buckets_query())
        return [r["name"] for r in records or [] if r.get("name")]

    async def get_measurements(self, bucket: str, start: str | None = None) -> list[str] | None:
        """Get the measurements of a bucket, or None if the bucket is unknown."""
        records = await self.query_records(build_measurements_query(bucket, start))
        if records is None:
            return None
        return _column_values(records, "_measurement")

    async def get_fields(
        self,
        bucket: str,
        measurement: str,
        start: str | None = None,
    ) -> list[str] | None:
        """Get the fields of a measurement, or None if the bucket is unknown."""
        records = await self.query_records(build_fields_query(bucket, measurement, start))
        if records is None:
            return None
        return _column_values(records, "_field")

    async def get_tags(
        self,
        bucket: str,
        measurement: str,
        start: str | None = None,
    ) -> list[str] | None:
        """Get the tag keys of a measurement, or None if the bucket is unknown.

        Columns starting with an underscore (_time, _value, ...) are not tags.
        """
        records = await self.query_records(build_tags_query(bucket, measurement, start))
        if records is None:
            return None
        return [v for v in _column_values(records, "_value") if not v.startswith("_")]

    async def get_tag_values(
        self,
        bucket: str,
        measurement: str,
        tag: str,
        start: str | None = None,
    ) -> list[str] | None:
        """Get the values of one tag, or None if the bucket is unknown."""
        records = await self.query_records(build_tag_values_query(bucket, measurement, tag, start))
        if records is None:
            return None
        return _column_values(records, "_value")

    # =========================================================================
    # Values
    # =========================================================================

    async def get_last_values(
        self,
        bucket: str,
        measurement: str,
        field: str,
        filters: Iterable[TagFilter] = (),
        window: str = "-1h",
    ) -> list[SeriesRow]:
        """Get the last value of every series matching the selector."""
        flux = build_last_value_query(bucket, measurement, field, list(filters), start=window)
        rows = await self.query(flux)
        return rows or []

    async def get_latest(
        self,
        bucket: str,
        measurement: str,
        field: str,
        filters: Iterable[TagFilter] = (),
        window: str = "-1h",
    ) -> SeriesRow | None:
        """Get the most recent matching row.

        Returns:
            The first row of the result, or None if nothing matched.
        """
        rows = await self.get_last_values(bucket, measurement, field, filters, window)
        return rows[0] if rows else None


def _column_values(records: list[dict[str, str]], column: str) -> list[str]:
    """Distinct non-empty values of a column, in first-seen order."""
    values: list[str] = []
    for record in records:
        value = record.get(column)
        if value and value not in values:
            values.append(value)
    return values
