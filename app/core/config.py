"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment."""

    return LogSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment."""

    return RateLimitSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required on operations routes",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field(
        "json",
        description="Log line format",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Where log lines are written",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (defaults to logs/ratelimit.log)",
    )
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to accept and echo request correlation IDs",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration shared by the general/strict/api tiers."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting for all tiers",
    )
    backend: Literal["sqlite", "memory"] = Field(
        "sqlite",
        description="Counter store backend",
    )
    db_path: str = Field(
        "./ratelimit.sqlite",
        description="SQLite database file for counters (':memory:' for a private in-memory DB)",
    )
    db_timeout_seconds: float = Field(
        5.0,
        description="Seconds to wait on a locked SQLite database before failing",
        gt=0,
    )
    general_points: int = Field(
        100,
        description="Requests allowed per window on general routes",
        ge=1,
    )
    strict_points: int = Field(
        5,
        description="Requests allowed per window on authentication routes",
        ge=1,
    )
    api_points: int = Field(
        60,
        description="Requests allowed per window on API routes",
        ge=1,
    )
    duration: int = Field(
        60,
        description="Window length in seconds, shared by all tiers",
        ge=1,
    )
    strict_block_multiplier: int = Field(
        2,
        description="Strict tier block duration as a multiple of the window",
        ge=1,
    )
    cleanup_interval_seconds: int = Field(
        3600,
        description="Interval between purges of expired counter rows",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.

    Environments:
    - development: Local development (loopback clients bypass rate limits)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
