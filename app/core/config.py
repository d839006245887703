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

    Pydantic Settings (v2) populates values from environment variables.
    Static type checkers often treat fields as required constructor
    arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_upstream_settings() -> "UpstreamSettings":
    return UpstreamSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    trust_forwarded_for: bool = Field(
        False,
        description="Use the first X-Forwarded-For hop as client identity (only behind a trusted proxy)",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Request admission (quota) configuration.

    Tier values are validated when the app is built, see
    ``app.core.rate_limit.validate_rate_limit_config``.
    """

    enabled: bool = Field(
        True,
        description="Enable per-client rate limiting",
    )
    store: Literal["memory", "file", "signed"] = Field(
        "memory",
        description="History store: in-process memory, shared JSON file, or signed client cookies",
    )
    tiers: str = Field(
        "100/60,10000/86400",
        description="Comma-separated quota tiers as limit/period_seconds, evaluated in order",
    )
    retention_seconds: int = Field(
        86400,
        description="Maximum age of a recorded request before it is pruned",
    )
    data_file: str = Field(
        "rate_limit_data.json",
        description="Path of the JSON history file (file store only)",
    )
    secret: str | None = Field(
        None,
        description="HMAC key for client-held history tokens (required for the signed store)",
    )
    history_cookie: str = Field(
        "rl_history",
        description="Cookie carrying the encoded request history (signed store only)",
    )
    signature_cookie: str = Field(
        "rl_signature",
        description="Cookie carrying the history signature (signed store only)",
    )
    cookie_secure: bool = Field(
        True,
        description="Mark history cookies as Secure (HTTPS only)",
    )
    include_headers: bool = Field(
        True,
        description="Include X-Rate-Limit-* and Retry-After headers",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class UpstreamSettings(BaseSettings):
    """Upstream blockchain statistics providers."""

    timeout_seconds: float = Field(
        10.0,
        description="Request timeout in seconds for upstream calls",
    )
    blockchair_bitcoin_url: str = Field(
        "https://api.blockchair.com/bitcoin/stats",
        description="Primary Bitcoin hashrate source",
    )
    whattomine_base_url: str = Field(
        "https://whattomine.com/coins/",
        description="Base URL for WhatToMine coin statistics",
    )
    ethernodes_url: str = Field(
        "https://ethernodes.org/api/stats",
        description="Ethereum node statistics source",
    )

    model_config = SettingsConfigDict(
        env_prefix="UPSTREAM_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10_000_000,
        description="Rotate the log file at this size (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to accept and echo request correlation ids",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    upstream: UpstreamSettings = Field(default_factory=_build_upstream_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
