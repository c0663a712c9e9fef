"""
Runtime settings for the Snowflake writer.

Settings come from environment variables (and an optional ``.env`` file) via
Pydantic BaseSettings. They only provide defaults at the process boundary:
the writer and connection receive their values explicitly, so library code
never reads the environment on its own.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Determine project root for resolving .env by default
PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
ENV_FILE_OVERRIDE = os.getenv("SNOWFLAKE_WRITER_ENV_FILE")
if ENV_FILE_OVERRIDE:
    env_file_candidate = Path(ENV_FILE_OVERRIDE).expanduser()
    if not env_file_candidate.is_absolute():
        env_file_candidate = PROJECT_ROOT / env_file_candidate
    SETTINGS_ENV_FILE = env_file_candidate
else:
    SETTINGS_ENV_FILE = DEFAULT_ENV_FILE


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Environment variables are loaded with the SNOWFLAKE_WRITER_ prefix, e.g.
    SNOWFLAKE_WRITER_MAX_BACKOFF_ATTEMPTS overrides max_backoff_attempts.
    LOG_LEVEL and KBC_RUNID are read without the prefix.
    """

    LOG_LEVEL: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Logging level (uppercase)",
    )

    run_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SNOWFLAKE_WRITER_RUN_ID", "KBC_RUNID"),
        description="Correlation id used for the session QUERY_TAG and stage names",
    )

    max_backoff_attempts: int = Field(
        default=5,
        ge=0,
        description="Connection attempts retried on transient failures",
    )
    login_timeout: int = Field(
        default=30, ge=1, description="Seconds to wait for a login response"
    )
    network_timeout: Optional[int] = Field(
        default=None, description="Seconds to wait for any network response"
    )
    statement_timeout_seconds: int = Field(
        default=3600,
        ge=0,
        description="STATEMENT_TIMEOUT_IN_SECONDS applied to every session",
    )
    copy_chunk_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        description="Maximum number of files referenced by one COPY INTO",
    )

    model_config = SettingsConfigDict(
        env_prefix="SNOWFLAKE_WRITER_",
        env_file=SETTINGS_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported LOG_LEVEL: {value}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Uses LRU cache to ensure settings are loaded only once per application
    lifecycle. Tests that change the environment call
    ``get_settings.cache_clear()``.
    """
    return Settings()
