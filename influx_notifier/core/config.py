"""Configuration management for the InfluxDB notifier."""

from __future__ import annotations

import json
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class GeneralConfig(BaseModel):
    """General application configuration."""

    log_level: str = "INFO"
    log_format: str = "console"


class StorageConfig(BaseModel):
    """Configuration for the persisted record document."""

    path: str = "storage.json"


class InfluxConfig(BaseModel):
    """InfluxDB v2 connection configuration."""

    url: str = "http://localhost:8086"
    org: str = ""
    timeout_seconds: int = 15
    lookback: str = "-1h"  # Range start used by notification polling


class TelegramConfig(BaseModel):
    """Telegram bot configuration."""

    enabled: bool = True
    allowed_usernames: list[str] = Field(default_factory=list)
    poll_timeout_seconds: int = 30
    retry_delay_seconds: float = 5.0
    parse_mode: str = "HTML"


class SchedulerConfig(BaseModel):
    """Configuration for notification polling."""

    queue_size: int = 0  # 0 = unbounded
    stop_timeout_seconds: float = 10.0


class Config(BaseModel):
    """Main configuration container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    influx: InfluxConfig = Field(default_factory=InfluxConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)


class Credentials(BaseModel):
    """API credentials loaded from environment."""

    influx_token: str | None = None
    telegram_token: str | None = None

    @classmethod
    def from_env(cls) -> Credentials:
        """Load credentials from environment variables."""
        load_dotenv()
        return cls(
            influx_token=os.getenv("INFLUX_TOKEN"),
            telegram_token=os.getenv("TG_API_TOKEN"),
        )

    @property
    def has_influx(self) -> bool:
        """Check if InfluxDB credentials are configured."""
        return self.influx_token is not None

    @property
    def has_telegram(self) -> bool:
        """Check if Telegram credentials are configured."""
        return self.telegram_token is not None


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from JSON file and environment overrides.

    Args:
        config_path: Path to config file. Defaults to configs/default.json.

    Returns:
        Loaded configuration object.
    """
    if config_path is None:
        config_path = Path(__file__).parent.parent.parent / "configs" / "default.json"

    config_path = Path(config_path)

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)

    config = Config(**data)
    _apply_env_overrides(config)
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variables on top of file configuration."""
    load_dotenv()

    if os.getenv("STORAGE_PATH"):
        config.storage.path = os.environ["STORAGE_PATH"]

    if os.getenv("INFLUX_URL"):
        config.influx.url = os.environ["INFLUX_URL"]

    if os.getenv("INFLUX_ORG"):
        config.influx.org = os.environ["INFLUX_ORG"]

    usernames = os.getenv("TG_ALLOWED_USERNAMES")
    if usernames:
        config.telegram.allowed_usernames = [
            name.strip() for name in usernames.split(",") if name.strip()
        ]
