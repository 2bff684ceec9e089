"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Settings are grouped by concern (logging, app, rate limiting, cache) and
composed into a single ``Settings`` object. Invalid quota values fail at
startup through field constraints rather than falling back to "no limiting".
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

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


FIFTEEN_MINUTES_MS = 15 * 60 * 1000


def parse_csv(value: str | None) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty items.

    Examples:
        >>> parse_csv("/health, /api-docs/*")
        ['/health', '/api-docs/*']
        >>> parse_csv(None)
        []
    """
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    output: str = Field("stdout", description="'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to accept and propagate request ids",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    trust_proxy_headers: bool = Field(
        False,
        description="Use the first X-Forwarded-For hop as the caller origin",
    )
    max_page_size: int = Field(
        100,
        description="Upper bound for the task list 'limit' query parameter",
        ge=1,
    )
    password_hash_iterations: int = Field(
        120_000,
        description="PBKDF2 iterations used when hashing user passwords",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Quota policy table and admission-control options.

    One window/limit pair per tier. Requests to ``auth_paths`` always use the
    auth-endpoint tier; other requests use the authenticated or anonymous tier
    depending on the resolved identity.
    """

    enabled: bool = Field(
        True,
        description="Enable admission control (explicitly disabling it is logged)",
    )

    anonymous_window_ms: int = Field(FIFTEEN_MINUTES_MS, gt=0)
    anonymous_max: int = Field(
        100,
        description="Requests per window for anonymous callers, keyed by origin",
        gt=0,
    )
    anonymous_message: str = Field(
        "Request limit exceeded for unauthenticated clients",
    )

    auth_endpoint_window_ms: int = Field(FIFTEEN_MINUTES_MS, gt=0)
    auth_endpoint_max: int = Field(
        5,
        description="Login/register attempts per window, keyed by origin",
        gt=0,
    )
    auth_endpoint_message: str = Field(
        "Too many authentication attempts. Try again in a few minutes.",
    )

    authenticated_window_ms: int = Field(FIFTEEN_MINUTES_MS, gt=0)
    authenticated_max: int = Field(
        500,
        description="Requests per window for authenticated users, keyed by user and origin",
        gt=0,
    )
    authenticated_message: str = Field(
        "Request limit exceeded for this user",
    )

    skip_paths: str = Field(
        "/health,/api-docs,/api-docs/*",
        description="Comma-separated exact paths or '/prefix/*' patterns exempt from limiting",
    )
    auth_paths: str = Field(
        "/api/auth/login,/api/auth/register",
        description="Comma-separated authentication-sensitive paths",
    )

    headers_standard: bool = Field(
        True,
        description="Emit X-RateLimit-Limit/Remaining/Reset headers",
    )
    headers_legacy: bool = Field(
        False,
        description="Emit RateLimit-Limit/Remaining/Reset headers (reset as delta seconds)",
    )

    sweep_interval_seconds: float = Field(
        60.0,
        description="Minimum interval between idle counter sweeps",
        gt=0,
    )
    sweep_idle_windows: int = Field(
        2,
        description="Drop counters whose window ended more than this many windows ago",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @property
    def skip_path_list(self) -> list[str]:
        return parse_csv(self.skip_paths)

    @property
    def auth_path_list(self) -> list[str]:
        return parse_csv(self.auth_paths)


class CacheSettings(BaseSettings):
    """Per-user task list response cache."""

    enabled: bool = Field(True, description="Serve task lists through the response cache")
    ttl_seconds: float = Field(
        300.0,
        description="Freshness window for cached list responses",
        gt=0,
    )
    max_entries: int | None = Field(
        1024,
        description="LRU capacity (None for unlimited)",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )


def _build_log_settings() -> LogSettings:
    return LogSettings()


def _build_app_settings() -> AppSettings:
    return AppSettings()


def _build_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()


def _build_cache_settings() -> CacheSettings:
    return CacheSettings()


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if any setting is invalid.
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    cache: CacheSettings = Field(default_factory=_build_cache_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Nested settings are created via default_factory so env loading works.
settings = Settings()
