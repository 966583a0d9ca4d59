"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field
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


class RateLimitRuleSettings(BaseModel):
    """One gateway rule as declared in configuration.

    Values are validated by the limiter at startup, not here, so an invalid
    rule aborts app creation with a ConfigurationAppError naming the pattern.
    """

    window_ms: int = Field(..., description="Window duration in milliseconds")
    max_requests: int = Field(..., description="Accepted requests per window per client")


def _default_gateway_rules() -> dict[str, RateLimitRuleSettings]:
    return {
        "/api/stripe": RateLimitRuleSettings(window_ms=60_000, max_requests=20),
        # Each accepted invitation sends an email, so it gets a tighter budget.
        "/api/clients/invite": RateLimitRuleSettings(window_ms=60_000, max_requests=10),
    }


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return LogSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    See _build_log_settings() for rationale about the type ignore.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_discogs_settings() -> "DiscogsSettings":
    return DiscogsSettings()  # type: ignore[call-arg]


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (default logs/app.log)",
    )
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and propagate the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration, including the gateway rate limit rules."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    rate_limit_enabled: bool = Field(
        True,
        description="Enable the gateway rate limit filter on protected prefixes",
    )
    rate_limit_rules: dict[str, RateLimitRuleSettings] = Field(
        default_factory=_default_gateway_rules,
        description=(
            "Gateway policy table: path prefix -> {window_ms, max_requests}. "
            "Provide as JSON in APP_RATE_LIMIT_RULES."
        ),
    )
    rate_limit_sweep_interval_seconds: int = Field(
        300,
        description="Minimum interval between sweeps of expired rate limit records",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class DiscogsSettings(BaseSettings):
    """Discogs catalog proxy configuration."""

    token: str | None = Field(
        None,
        description="Server-side Discogs personal access token",
    )
    base_url: str = Field(
        "https://api.discogs.com",
        description="Discogs API base URL",
    )
    user_agent: str = Field(
        "VinylogixApp/1.0",
        description="User-Agent sent upstream (required by Discogs)",
    )
    timeout_seconds: float = Field(
        10.0,
        description="Upstream request timeout in seconds",
    )
    # Discogs allows 60/min for authenticated callers; stay below it.
    rate_limit_requests: int = Field(
        25,
        description="Proxy requests allowed per window per client",
    )
    rate_limit_window_seconds: int = Field(
        60,
        description="Proxy rate limit window size in seconds",
    )
    cache_control: str = Field(
        "public, s-maxage=300, stale-while-revalidate=600",
        description="Cache-Control directive attached to relayed responses",
    )

    model_config = SettingsConfigDict(
        env_prefix="DISCOGS_",
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
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    discogs: DiscogsSettings = Field(default_factory=_build_discogs_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
