"""
Configuration for DocGraph.

Uses pydantic-settings for environment variable loading. Every setting can
be given as ``DOCGRAPH_<NAME>`` (e.g. ``DOCGRAPH_BACKEND=sqlite``).

Invariants:
    - All settings have sensible defaults for local development
    - Settings are immutable once loaded
    - A frozen handle never provisions schema
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported document store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


class Settings(BaseSettings):
    """DocGraph configuration loaded from environment."""

    # Store connection
    backend: StoreBackend = Field(default=StoreBackend.SQLITE, description="Document store backend")
    database: str = Field(default="docgraph", description="Database name")
    data_dir: str = Field(default="./data", description="Directory for SQLite database files")

    # SQLite tuning
    wal_mode: bool = Field(default=True, description="Enable SQLite WAL journal mode")
    busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout in milliseconds")
    cache_size_pages: int = Field(default=-64000, description="SQLite cache size (negative = KB)")

    # Schema provisioning
    frozen: bool = Field(default=False, description="Disable schema auto-provisioning")

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING or ERROR")
    log_format: str = Field(default="json", description="json or text")

    model_config = SettingsConfigDict(env_prefix="DOCGRAPH_", frozen=True)

    @field_validator("database")
    @classmethod
    def _database_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("database name cannot be empty")
        return value

    @field_validator("busy_timeout_ms")
    @classmethod
    def _timeout_positive(cls, value: int) -> int:
        if value < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "text"):
            raise ValueError(f"Invalid log_format '{value}'. Must be one of: json, text")
        return value

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "DocGraph configuration loaded",
            extra={
                "backend": self.backend.value,
                "database": self.database,
                "data_dir": self.data_dir if self.backend is StoreBackend.SQLITE else None,
                "frozen": self.frozen,
                "log_level": self.log_level,
            },
        )
