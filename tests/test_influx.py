"""Tests for Flux queries, CSV parsing and the InfluxDB client."""

import json

import httpx
import pytest

from influx_notifier.core.config import Credentials, InfluxConfig
from influx_notifier.core.errors import TransientQueryError
from influx_notifier.influx.client import InfluxClient
from influx_notifier.influx.flux import (
    build_fields_query,
    build_last_value_query,
    build_measurements_query,
    build_range,
    build_tag_filter,
    build_tag_values_query,
    build_tags_query,
    parse_csv,
    parse_csv_records,
    quote,
)
from influx_notifier.influx.models import SeriesRow
from influx_notifier.storage.models import TagFilter

CSV_RESPONSE = (
    ",result,table,_start,_stop,_time,_value,_field,_measurement,room\r\n"
    ",_result,0,2024-01-01T11:00:00Z,2024-01-01T12:00:00Z,2024-01-01T11:59:00Z,21.5,temperature,climate,kitchen\r\n"
    ",_result,1,2024-01-01T11:00:00Z,2024-01-01T12:00:00Z,2024-01-01T11:58:00Z,19,temperature,climate,bedroom\r\n"
    "\r\n"
)


class TestFlux:
    """Tests for query construction."""

    def test_quote_escapes(self):
        """Quotes and backslashes are escaped."""
        assert quote('a"b\\c') == '"a\\"b\\\\c"'

    def test_range(self):
        """Range defaults to the last week."""
        assert build_range() == "|> range(start: -7d)"
        assert build_range("-1h", "now()") == "|> range(start: -1h, stop: now())"

    def test_tag_filter(self):
        """Tag filters are joined with and; no filters match everything."""
        assert build_tag_filter([]) == "true"
        assert build_tag_filter([
            TagFilter(tag="room", value="kitchen"),
            TagFilter(tag="floor", value="1"),
        ]) == 'r["room"] == "kitchen" and r["floor"] == "1"'

    def test_last_value_query(self):
        """The query selects bucket, measurement and field and keeps the last row."""
        flux = build_last_value_query("home", "climate", "temperature", [], start="-1h")

        assert flux.startswith('from(bucket: "home")')
        assert "|> range(start: -1h)" in flux
        assert 'r["_measurement"] == "climate"' in flux
        assert 'r["_field"] == "temperature"' in flux
        assert flux.rstrip().endswith("|> last()")

    def test_schema_queries(self):
        """Schema queries select the bucket and default to the last week."""
        measurements = build_measurements_query("home")
        assert measurements.startswith('from(bucket: "home")')
        assert "|> range(start: -7d)" in measurements
        assert 'distinct(column: "_measurement")' in measurements

        fields = build_fields_query("home", "climate")
        assert 'r["_measurement"] == "climate"' in fields
        assert 'distinct(column: "_field")' in fields

        assert "|> keys()" in build_tags_query("home", "climate", start="-1d")
        assert 'keyValues(keyColumns: ["room"])' in build_tag_values_query("home", "climate", "room")


class TestSeriesRow:
    """Tests for SeriesRow."""

    def test_defaults(self):
        """A row built from time and value alone has no field and no tags."""
        row = SeriesRow(time="2024-01-01T00:00:00Z", value=1.0)

        assert row.field == ""
        assert row.tags == {}
        assert SeriesRow(time="", value=2.0).tags is not row.tags


class TestParseCsv:
    """Tests for CSV result parsing."""

    def test_parse_rows(self):
        """Rows carry value, time, field and tags."""
        rows = parse_csv(CSV_RESPONSE)

        assert len(rows) == 2
        assert rows[0].value == 21.5
        assert rows[0].time == "2024-01-01T11:59:00Z"
        assert rows[0].field == "temperature"
        assert rows[0].measurement == "climate"
        assert rows[0].tags == {"room": "kitchen"}
        assert rows[1].table == 1

    def test_parse_multiple_tables(self):
        """Tables separated by a blank line each bring their own header."""
        text = (
            ",result,table,_time,_value,_field\r\n"
            ",_result,0,2024-01-01T00:00:00Z,1,a\r\n"
            "\r\n"
            ",result,table,_time,_value,_field,host\r\n"
            ",_result,1,2024-01-01T00:00:00Z,2,b,srv\r\n"
        )

        rows = parse_csv(text)

        assert [r.value for r in rows] == [1.0, 2.0]
        assert rows[1].tags == {"host": "srv"}

    def test_non_numeric_values_skipped(self):
        """String values are dropped."""
        text = (
            ",result,table,_time,_value,_field\r\n"
            ",_result,0,2024-01-01T00:00:00Z,on,state\r\n"
            ",_result,0,2024-01-01T00:00:00Z,3,count\r\n"
        )

        assert [r.field for r in parse_csv(text)] == ["count"]

    def test_empty(self):
        """An empty body has no rows."""
        assert parse_csv("") == []

    def test_parse_records(self):
        """Records keep string values."""
        text = (
            ",result,table,_value\r\n"
            ",_result,0,room\r\n"
            ",_result,0,_time\r\n"
        )

        assert [r["_value"] for r in parse_csv_records(text)] == ["room", "_time"]


def _client(handler) -> InfluxClient:
    return InfluxClient(
        InfluxConfig(url="http://influx:8086/", org="acme"),
        Credentials(influx_token="secret"),
        transport=httpx.MockTransport(handler),
    )


class TestInfluxClient:
    """Tests for InfluxClient."""

    @pytest.mark.asyncio
    async def test_query_request(self):
        """Queries are posted with org, token and Flux body."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, text=CSV_RESPONSE)

        async with _client(handler) as influx:
            row = await influx.get_latest(
                "home", "climate", "temperature",
                [TagFilter(tag="room", value="kitchen")],
                window="-5m",
            )

        assert row is not None
        assert row.value == 21.5
        assert seen["url"] == "http://influx:8086/api/v2/query?org=acme"
        assert seen["auth"] == "Token secret"
        assert seen["body"]["type"] == "flux"
        assert 'r["room"] == "kitchen"' in seen["body"]["query"]
        assert "range(start: -5m)" in seen["body"]["query"]

    @pytest.mark.asyncio
    async def test_missing_bucket_returns_nothing(self):
        """HTTP 404 means no data."""
        async with _client(lambda request: httpx.Response(404, text="not found")) as influx:
            assert await influx.query("buckets()") is None
            assert await influx.get_latest("nope", "m", "f") is None
            assert await influx.get_last_values("nope", "m", "f") == []

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        """Other HTTP errors raise TransientQueryError."""
        async with _client(lambda request: httpx.Response(500, text="boom")) as influx:
            with pytest.raises(TransientQueryError) as exc_info:
                await influx.get_latest("home", "climate", "temperature")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        """Connection failures raise TransientQueryError."""
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as influx:
            with pytest.raises(TransientQueryError):
                await influx.get_latest("home", "climate", "temperature")

    @pytest.mark.asyncio
    async def test_empty_result(self):
        """An empty result has no latest row."""
        async with _client(lambda request: httpx.Response(200, text="")) as influx:
            assert await influx.get_latest("home", "climate", "temperature") is None

    @pytest.mark.asyncio
    async def test_ping(self):
        """Health check reads the status field."""
        def handler(request):
            assert request.url.path == "/health"
            return httpx.Response(200, json={"status": "pass"})

        async with _client(handler) as influx:
            assert await influx.ping() is True


class TestSchemaExploration:
    """Tests for bucket, measurement, field and tag listings."""

    @pytest.mark.asyncio
    async def test_get_buckets(self):
        """Bucket names come from the name column."""
        body = ",result,table,name,id\r\n,_result,0,home,a1\r\n,_result,0,_tasks,b2\r\n"

        async with _client(lambda request: httpx.Response(200, text=body)) as influx:
            assert await influx.get_buckets() == ["home", "_tasks"]

    @pytest.mark.asyncio
    async def test_get_measurements(self):
        """Measurements are distinct values of the _measurement column."""
        seen = {}

        def handler(request):
            seen["query"] = json.loads(request.content)["query"]
            return httpx.Response(
                200,
                text=(
                    ",result,table,_measurement\r\n"
                    ",_result,0,climate\r\n"
                    "\r\n"
                    ",result,table,_measurement\r\n"
                    ",_result,1,climate\r\n"
                    ",_result,1,power\r\n"
                ),
            )

        async with _client(handler) as influx:
            assert await influx.get_measurements("home") == ["climate", "power"]

        assert 'from(bucket: "home")' in seen["query"]

    @pytest.mark.asyncio
    async def test_get_tags_skips_internal_columns(self):
        """Columns starting with an underscore are not tags."""
        body = ",result,table,_value\r\n,_result,0,_field\r\n,_result,0,room\r\n,_result,0,_time\r\n"

        async with _client(lambda request: httpx.Response(200, text=body)) as influx:
            assert await influx.get_tags("home", "climate") == ["room"]

    @pytest.mark.asyncio
    async def test_get_tag_values(self):
        """Tag values come from the _value column."""
        body = ",result,table,_value\r\n,_result,0,kitchen\r\n,_result,0,bedroom\r\n"

        async with _client(lambda request: httpx.Response(200, text=body)) as influx:
            assert await influx.get_tag_values("home", "climate", "room") == ["kitchen", "bedroom"]

    @pytest.mark.asyncio
    async def test_unknown_bucket(self):
        """A 404 means the bucket does not exist."""
        async with _client(lambda request: httpx.Response(404, text="not found")) as influx:
            assert await influx.get_measurements("nope") is None
            assert await influx.get_fields("nope", "m") is None
            assert await influx.get_tags("nope", "m") is None
            assert await influx.get_tag_values("nope", "m", "t") is None
            assert await influx.get_buckets() == []
