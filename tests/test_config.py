"""Tests for configuration and utilities."""

import json
import tempfile
from pathlib import Path

import pytest

from influx_notifier.core.config import Config, Credentials, load_config
from influx_notifier.core.utils import (
    format_interval,
    format_value,
    parse_interval_ms,
    split_command,
)


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_uses_defaults(self, monkeypatch):
        """A missing file yields the defaults."""
        for name in ("STORAGE_PATH", "INFLUX_URL", "INFLUX_ORG", "TG_ALLOWED_USERNAMES"):
            monkeypatch.delenv(name, raising=False)

        config = load_config("/nonexistent/config.json")

        assert config == Config()
        assert config.storage.path == "storage.json"
        assert config.influx.lookback == "-1h"

    def test_file_values(self, monkeypatch):
        """Values from the file override defaults."""
        monkeypatch.delenv("INFLUX_URL", raising=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            path.write_text(json.dumps({
                "influx": {"url": "http://db:8086", "timeout_seconds": 5},
                "scheduler": {"queue_size": 100},
            }))

            config = load_config(path)

        assert config.influx.url == "http://db:8086"
        assert config.influx.timeout_seconds == 5
        assert config.scheduler.queue_size == 100

    def test_env_overrides(self, monkeypatch):
        """Environment variables override the file."""
        monkeypatch.setenv("STORAGE_PATH", "/data/storage.json")
        monkeypatch.setenv("INFLUX_URL", "http://env:8086")
        monkeypatch.setenv("INFLUX_ORG", "acme")
        monkeypatch.setenv("TG_ALLOWED_USERNAMES", "alice, bob,,")

        config = load_config("/nonexistent/config.json")

        assert config.storage.path == "/data/storage.json"
        assert config.influx.url == "http://env:8086"
        assert config.influx.org == "acme"
        assert config.telegram.allowed_usernames == ["alice", "bob"]

    def test_credentials_from_env(self, monkeypatch):
        """Tokens are read from the environment."""
        monkeypatch.setenv("INFLUX_TOKEN", "influx-secret")
        monkeypatch.delenv("TG_API_TOKEN", raising=False)

        credentials = Credentials.from_env()

        assert credentials.has_influx
        assert credentials.influx_token == "influx-secret"


class TestIntervals:
    """Tests for interval tokens."""

    @pytest.mark.parametrize(
        "token, expected",
        [
            ("1500", 1500),
            ("1500ms", 1500),
            ("30s", 30_000),
            ("5m", 300_000),
            ("2H", 7_200_000),
            ("5 m", None),
            ("-1s", None),
            ("1.5s", None),
            ("soon", None),
        ],
    )
    def test_parse_interval(self, token, expected):
        """Interval tokens convert to milliseconds."""
        assert parse_interval_ms(token) == expected

    def test_format_interval(self):
        """Intervals format as the largest whole unit."""
        assert format_interval(3_600_000) == "1h"
        assert format_interval(90_000) == "90s"
        assert format_interval(1500) == "1500ms"


class TestFormatting:
    """Tests for formatting helpers."""

    def test_format_value(self):
        """Values lose trailing zeros."""
        assert format_value(21.5) == "21.5"
        assert format_value(100.0) == "100"
        assert format_value(0.123456) == "0.1235"
        assert format_value(-0.00001) == "0"

    def test_split_command(self):
        """Commands split into a lowercase name and arguments."""
        assert split_command("/Notifications_Add@my_bot a B") == ("notifications_add", ["a", "B"])
        assert split_command("   ") == ("", [])
