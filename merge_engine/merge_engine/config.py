"""Merge engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class PlatformEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with MERGE_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="MERGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: PlatformEnv = PlatformEnv.DEV
    debug: bool = False

    # Entity store
    database_url: str = "sqlite+aiosqlite:///.entity-merge/state.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20
    tenant_id: str = "default"

    # Recorded as createdBy/updatedBy on written records.
    actor: str | None = None

    # Maximum in-flight repository writes per operation bucket.
    apply_concurrency: int = Field(default=1, ge=1)

    # Logging
    log_level: str = "WARNING"
    structured_logging: bool = False

    # Telemetry
    metrics_file: Path | None = None

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings
