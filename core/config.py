"""
Application configuration using Pydantic Settings
"""

import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Source: Zabbix PostgreSQL (servers are tried in order)
    ZABBIX_SERVER: List[str] = ["localhost"]
    ZABBIX_PORT: int = 5432
    ZABBIX_USERNAME: str = "zabbix"
    ZABBIX_PASSWORD: str = ""
    ZABBIX_DATABASE: str = "zabbix"
    ZABBIX_TABLES: List[str] = ["history", "history_uint"]
    ZABBIX_CONNECT_TIMEOUT: float = 10.0
    ZABBIX_QUERY_TIMEOUT: float = 600.0

    # Destination: InfluxDB v2
    INFLUX_SERVER: str = "localhost"
    INFLUX_PORT: int = 8086
    INFLUX_SCHEME: str = "http"
    INFLUX_TOKEN: str = ""
    INFLUX_BUCKET: str = "zabbix"
    INFLUX_ORG: str = "zabbix"
    INFLUX_TIMEOUT: float = 30.0
    INFLUX_FIELD_NAME: str = "field"

    # Checkpoints
    CHECKPOINT_BACKEND: str = "file"  # "file" or "database"
    CHECKPOINT_DIR: str = "/var/lib/influxdb/zabbix-rust"
    CHECKPOINT_DATABASE_URL: str = "sqlite+aiosqlite:///./zabbix_sync_state.db"

    # Sync engine
    SYNC_BATCH_SIZE: int = 10000
    SYNC_LOOKBACK_SECONDS: int = 50
    SYNC_MAX_ATTEMPTS: int = 5
    SYNC_RETRY_STRATEGY: str = "exponential"  # none, fixed, exponential, jittered
    SYNC_RETRY_DELAY: float = 1.0
    SYNC_RETRY_MAX_DELAY: float = 30.0
    SYNC_INTERVAL_SECONDS: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def influx_url(self) -> str:
        return f"{self.INFLUX_SCHEME}://{self.INFLUX_SERVER}:{self.INFLUX_PORT}"

    def zabbix_urls(self) -> List[URL]:
        """One asyncpg URL per configured Zabbix server, in failover order"""
        return [
            URL.create(
                "postgresql+asyncpg",
                username=self.ZABBIX_USERNAME,
                password=self.ZABBIX_PASSWORD or None,
                host=host,
                port=self.ZABBIX_PORT,
                database=self.ZABBIX_DATABASE,
            )
            for host in self.ZABBIX_SERVER
        ]


def _normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    # Hand-written config.toml files usually use lower-case keys
    return {str(key).upper(): value for key, value in data.items()}


def load_settings(config_path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Build settings from an optional TOML file.

    Values from the file take precedence over environment variables and
    ``.env``; anything the file omits falls back to those sources.
    """
    if config_path is None:
        return Settings()

    with open(config_path, "rb") as f:
        raw = tomllib.load(f)

    return Settings(**_normalize_keys(raw))


settings = Settings()
