"""Settings for the price engine, read from the environment and `.env`.

Every group is validated when the process starts; a bad value surfaces as
ConfigurationError before any source is contacted.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

PROVIDER_NAMES = ("coingecko", "dexscreener", "coincap", "binance")


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid at startup."""


def _validate_http_url(v: str) -> str:
    if not v.startswith(("http://", "https://")):
        raise ValueError("URL must be an HTTP(S) endpoint")
    return v.rstrip("/")


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL or SQLite (aiosqlite) connection string",
    )
    auto_create: bool = Field(
        default=True,
        alias="DATABASE_AUTO_CREATE",
        description="Create missing tables on startup instead of relying on migrations",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string"
            )
        return v


class ProviderSettings(BaseSettings):
    """Upstream market-data source settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    primary: str = Field(
        default="coingecko",
        alias="PRICE_PROVIDER",
        description="Source tried first for symbol lookups",
    )
    coingecko_base_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        alias="COINGECKO_BASE_URL",
    )
    coingecko_api_key: SecretStr | None = Field(
        default=None,
        alias="COINGECKO_API_KEY",
        description="Optional CoinGecko Pro API key",
    )
    dexscreener_base_url: str = Field(
        default="https://api.dexscreener.com",
        alias="DEXSCREENER_BASE_URL",
    )
    coincap_base_url: str = Field(
        default="https://api.coincap.io/v2",
        alias="COINCAP_BASE_URL",
    )
    coincap_api_key: SecretStr | None = Field(
        default=None,
        alias="COINCAP_API_KEY",
        description="Optional CoinCap bearer token",
    )
    binance_base_url: str = Field(
        default="https://api.binance.com/api/v3",
        alias="BINANCE_BASE_URL",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        alias="PROVIDER_REQUEST_TIMEOUT_SECONDS",
        gt=0.0,
        le=120.0,
        description="Timeout applied to every data fetch",
    )
    probe_timeout_seconds: float = Field(
        default=5.0,
        alias="PROVIDER_PROBE_TIMEOUT_SECONDS",
        gt=0.0,
        le=60.0,
        description="Timeout applied to health probes",
    )

    @field_validator("primary")
    @classmethod
    def validate_primary(cls, v: str) -> str:
        """Validate the primary provider name."""
        name = v.strip().lower()
        if name not in PROVIDER_NAMES:
            raise ValueError(f"PRICE_PROVIDER must be one of {', '.join(PROVIDER_NAMES)}")
        return name

    @field_validator(
        "coingecko_base_url",
        "dexscreener_base_url",
        "coincap_base_url",
        "binance_base_url",
    )
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate upstream base URL format."""
        return _validate_http_url(v)

    @model_validator(mode="after")
    def validate_timeouts(self) -> ProviderSettings:
        if self.probe_timeout_seconds > self.request_timeout_seconds:
            raise ValueError(
                "PROVIDER_PROBE_TIMEOUT_SECONDS must not exceed PROVIDER_REQUEST_TIMEOUT_SECONDS"
            )
        return self


class HealthSettings(BaseSettings):
    """Per-source circuit breaker settings."""

    model_config = SettingsConfigDict(env_prefix="HEALTH_", extra="ignore")

    backoff_seed_seconds: float = Field(
        default=1.0,
        alias="HEALTH_BACKOFF_SEED_SECONDS",
        gt=0.0,
        description="Backoff applied after the first failure",
    )
    backoff_max_seconds: float = Field(
        default=60.0,
        alias="HEALTH_BACKOFF_MAX_SECONDS",
        gt=0.0,
        description="Upper bound for the doubling backoff",
    )

    @model_validator(mode="after")
    def validate_bounds(self) -> HealthSettings:
        if self.backoff_max_seconds < self.backoff_seed_seconds:
            raise ValueError("HEALTH_BACKOFF_MAX_SECONDS must be >= HEALTH_BACKOFF_SEED_SECONDS")
        return self


class DexSettings(BaseSettings):
    """DEX pair selection thresholds."""

    model_config = SettingsConfigDict(env_prefix="DEX_", extra="ignore")

    min_liquidity_usd: float = Field(
        default=10_000.0,
        alias="DEX_MIN_LIQUIDITY_USD",
        ge=0.0,
        description="Pairs below this liquidity are ignored when any pair qualifies",
    )
    min_volume_usd: float = Field(
        default=5_000.0,
        alias="DEX_MIN_VOLUME_USD",
        ge=0.0,
        description="Pairs below this 24h volume are ignored when any pair qualifies",
    )
    min_pair_age_hours: float = Field(
        default=1.0,
        alias="DEX_MIN_PAIR_AGE_HOURS",
        ge=0.0,
        description="Pairs younger than this are ignored when any pair qualifies",
    )
    top_pairs: int = Field(
        default=20,
        alias="DEX_TOP_PAIRS",
        ge=1,
        le=100,
        description="Number of most liquid pairs aggregated for volume",
    )


class CacheSettings(BaseSettings):
    """Two-tier cache TTL settings."""

    model_config = SettingsConfigDict(env_prefix="CACHE_", extra="ignore")

    ttl_price: int = Field(
        default=30,
        alias="CACHE_TTL_PRICE",
        ge=1,
        description="Seconds a resolved market record stays fresh",
    )
    ttl_security: int = Field(
        default=300,
        alias="CACHE_TTL_SECURITY",
        ge=1,
        description="Seconds a token security report stays fresh",
    )


class SchedulerSettings(BaseSettings):
    """Periodic job intervals."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    alert_interval_seconds: float = Field(
        default=60.0,
        alias="ALERT_JOB_INTERVAL_SECONDS",
        ge=1.0,
    )
    watchlist_interval_seconds: float = Field(
        default=300.0,
        alias="WATCH_JOB_INTERVAL_SECONDS",
        ge=1.0,
    )
    cache_cleanup_interval_seconds: float = Field(
        default=3600.0,
        alias="CACHE_CLEANUP_INTERVAL_SECONDS",
        ge=1.0,
    )


class TelegramSettings(BaseSettings):
    """Telegram notification settings."""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_", extra="ignore")

    bot_token: SecretStr | None = Field(
        default=None,
        alias="TELEGRAM_BOT_TOKEN",
        description="Telegram bot token",
    )
    api_url: str = Field(
        default="https://api.telegram.org",
        alias="TELEGRAM_API_URL",
        description="Telegram Bot API base URL",
    )

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Validate Bot API URL format."""
        return _validate_http_url(v)

    @property
    def enabled(self) -> bool:
        """Check if Telegram notifications are enabled."""
        return self.bot_token is not None


class Settings(BaseSettings):
    """Top-level settings: nested groups plus process-wide switches.

    Example:
        ```python
        from token_price_engine.config import get_settings

        settings = get_settings()
        print(settings.providers.primary)
        print(settings.cache.ttl_price)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # Each nested group reads `.env` only if it is passed the file explicitly.
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    providers: ProviderSettings = Field(
        default_factory=lambda: ProviderSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    health: HealthSettings = Field(
        default_factory=lambda: HealthSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    dex: DexSettings = Field(
        default_factory=lambda: DexSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    cache: CacheSettings = Field(
        default_factory=lambda: CacheSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scheduler: SchedulerSettings = Field(
        default_factory=lambda: SchedulerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    telegram: TelegramSettings = Field(
        default_factory=lambda: TelegramSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Evaluate alerts without sending notifications",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "providers": {
                "primary": self.providers.primary,
                "coingecko_base_url": self.providers.coingecko_base_url,
                "coingecko_api_key": "(set)" if self.providers.coingecko_api_key else "(not set)",
                "dexscreener_base_url": self.providers.dexscreener_base_url,
                "coincap_base_url": self.providers.coincap_base_url,
                "coincap_api_key": "(set)" if self.providers.coincap_api_key else "(not set)",
                "binance_base_url": self.providers.binance_base_url,
                "request_timeout_seconds": str(self.providers.request_timeout_seconds),
                "probe_timeout_seconds": str(self.providers.probe_timeout_seconds),
            },
            "health": {
                "backoff_seed_seconds": str(self.health.backoff_seed_seconds),
                "backoff_max_seconds": str(self.health.backoff_max_seconds),
            },
            "dex": {
                "min_liquidity_usd": str(self.dex.min_liquidity_usd),
                "min_volume_usd": str(self.dex.min_volume_usd),
                "min_pair_age_hours": str(self.dex.min_pair_age_hours),
                "top_pairs": str(self.dex.top_pairs),
            },
            "cache": {
                "ttl_price": str(self.cache.ttl_price),
                "ttl_security": str(self.cache.ttl_security),
            },
            "scheduler": {
                "alert_interval_seconds": str(self.scheduler.alert_interval_seconds),
                "watchlist_interval_seconds": str(self.scheduler.watchlist_interval_seconds),
                "cache_cleanup_interval_seconds": str(
                    self.scheduler.cache_cleanup_interval_seconds
                ),
            },
            "telegram_enabled": str(self.telegram.enabled),
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    def validate_requirements(
        self, *, command: Literal["run", "price", "status", "cleanup-cache"]
    ) -> None:
        """Validate command-specific requirements.

        The long-running service delivers alerts, so it refuses to start
        without a bot token unless it is a dry run.

        Raises:
            ConfigurationError: If a capability required by the command is
                not configured.
        """
        if command == "run" and not self.dry_run and not self.telegram.enabled:
            raise ConfigurationError("TELEGRAM_BOT_TOKEN is required to deliver alerts")

    @staticmethod
    def _redact_url(url: str) -> str:
        scheme, sep, rest = url.partition("://")
        credentials, at, host = rest.rpartition("@")
        if not sep or not at or ":" not in credentials:
            return url
        username = credentials.split(":", 1)[0]
        return f"{scheme}://{username}:***@{host}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process.

    Raises:
        ConfigurationError: If required environment variables are missing
            or have invalid values.
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def clear_settings_cache() -> None:
    """Forget the loaded settings so the next call re-reads the environment."""
    get_settings.cache_clear()
