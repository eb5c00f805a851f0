"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Production usually injects env vars directly and ships no file
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    BaseSettings reads its fields from the environment, but static type
    checkers treat fields without defaults as required constructor
    arguments, hence the ignore.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment."""

    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    version: str = Field(
        "1.0.0",
        description="Service version reported by the health endpoint",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required on /v1 routes",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enforce HTTP rate limits (mutation limits are always enforced)",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers when throttling",
    )
    rate_limit_sweep_probability: float = Field(
        0.01,
        description="Chance that a limit check also sweeps expired entries",
        ge=0.0,
        le=1.0,
    )
    rate_limit_sweep_interval_seconds: int = Field(
        0,
        description="Interval for the background sweep task (0 disables it)",
        ge=0,
    )
    trust_forwarded_headers: bool = Field(
        False,
        description="Use X-Forwarded-For / X-Real-IP to identify HTTP clients (enable only behind a trusted proxy)",
    )
    health_max_body_bytes: int = Field(
        1024 * 1024,
        description="Maximum request body accepted by POST /health",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (default logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate log file at this size (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
