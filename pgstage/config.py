from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Literal
from urllib.parse import urlsplit, urlunsplit

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_POSITIVE_DEFAULTS = {
    "transaction_timeout_ms": 15000,
    "monitor_interval_ms": 5000,
    "max_concurrent_transactions": 10,
    "pg_max_connections": 20,
    "pg_idle_timeout_ms": 30000,
    "pg_statement_timeout_ms": 30000,
}


class Settings(BaseSettings):
    """Runtime configuration read from the environment (or a ``.env`` file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    database_url: str = Field(
        default="postgresql://localhost:5432/postgres", alias="DATABASE_URL"
    )
    transaction_timeout_ms: int = Field(default=15000, alias="TRANSACTION_TIMEOUT_MS")
    monitor_interval_ms: int = Field(default=5000, alias="MONITOR_INTERVAL_MS")
    enable_transaction_monitor: bool = Field(
        default=True, alias="ENABLE_TRANSACTION_MONITOR"
    )
    max_concurrent_transactions: int = Field(
        default=10, alias="MAX_CONCURRENT_TRANSACTIONS"
    )
    pg_max_connections: int = Field(default=20, alias="PG_MAX_CONNECTIONS")
    pg_idle_timeout_ms: int = Field(default=30000, alias="PG_IDLE_TIMEOUT_MS")
    pg_statement_timeout_ms: int = Field(
        default=30000, alias="PG_STATEMENT_TIMEOUT_MS"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: Literal["json", "text"] = Field(default="json", alias="LOG_FORMAT")

    @field_validator(*_POSITIVE_DEFAULTS, mode="before")
    @classmethod
    def _positive_or_default(cls, value: Any, info: ValidationInfo) -> int:
        default = _POSITIVE_DEFAULTS[info.field_name]
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return default
        return parsed if parsed > 0 else default

    @field_validator("enable_transaction_monitor", mode="before")
    @classmethod
    def _only_false_disables(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() != "false"
        return bool(value)

    @field_validator("log_format", mode="before")
    @classmethod
    def _normalise_log_format(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() == "text":
            return "text"
        return "json"

    @property
    def redacted_database_url(self) -> str:
        parts = urlsplit(self.database_url)
        if parts.password is None:
            return self.database_url

        netloc = parts.hostname or ""
        if parts.username:
            netloc = f"{parts.username}@{netloc}"
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
        return urlunsplit(parts._replace(netloc=netloc))

    def pool_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``asyncpg.create_pool``."""
        return {
            "dsn": self.database_url,
            "min_size": 0,
            "max_size": self.pg_max_connections,
            "max_inactive_connection_lifetime": self.pg_idle_timeout_ms / 1000,
            "server_settings": {
                "statement_timeout": str(self.pg_statement_timeout_ms),
            },
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()
