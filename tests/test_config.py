"""Tests for settings loading and validation."""

import pytest

from token_price_engine.config import (
    ConfigurationError,
    Settings,
    clear_settings_cache,
    get_settings,
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Run without a .env file and with a minimal environment."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "PRICE_PROVIDER",
        "TELEGRAM_BOT_TOKEN",
        "DRY_RUN",
        "CACHE_TTL_PRICE",
        "DEX_MIN_LIQUIDITY_USD",
        "PROVIDER_REQUEST_TIMEOUT_SECONDS",
        "PROVIDER_PROBE_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///prices.db")
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.providers.primary == "coingecko"
        assert settings.providers.request_timeout_seconds == 10.0
        assert settings.providers.probe_timeout_seconds == 5.0
        assert settings.health.backoff_seed_seconds == 1.0
        assert settings.health.backoff_max_seconds == 60.0
        assert settings.cache.ttl_price == 30
        assert settings.cache.ttl_security == 300
        assert settings.dex.min_liquidity_usd == 10_000
        assert settings.dex.top_pairs == 20
        assert settings.scheduler.alert_interval_seconds == 60.0
        assert settings.telegram.enabled is False

    def test_environment_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("PRICE_PROVIDER", " Binance ")
        monkeypatch.setenv("CACHE_TTL_PRICE", "15")
        monkeypatch.setenv("DEX_MIN_LIQUIDITY_USD", "0")
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")

        settings = Settings()

        assert settings.providers.primary == "binance"
        assert settings.cache.ttl_price == 15
        assert settings.dex.min_liquidity_usd == 0
        assert settings.telegram.enabled is True

    def test_unknown_provider_rejected(self, monkeypatch) -> None:
        monkeypatch.setenv("PRICE_PROVIDER", "kraken")

        with pytest.raises(ConfigurationError):
            get_settings()

    def test_probe_timeout_must_not_exceed_request_timeout(self, monkeypatch) -> None:
        monkeypatch.setenv("PROVIDER_REQUEST_TIMEOUT_SECONDS", "3")
        monkeypatch.setenv("PROVIDER_PROBE_TIMEOUT_SECONDS", "5")

        with pytest.raises(ConfigurationError):
            get_settings()

    def test_bad_database_url(self, monkeypatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "mysql://localhost/db")

        with pytest.raises(ConfigurationError):
            get_settings()

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_redacted_summary(self, monkeypatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql://user:secret@db:5432/prices")
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")

        summary = Settings().redacted_summary()

        assert summary["database_url"] == "postgresql://user:***@db:5432/prices"
        assert "123:abc" not in str(summary)
        assert summary["telegram_enabled"] == "True"


class TestValidateRequirements:
    """Tests for command-specific requirements."""

    def test_run_requires_bot_token(self) -> None:
        with pytest.raises(ConfigurationError):
            Settings().validate_requirements(command="run")

    def test_dry_run_needs_no_token(self, monkeypatch) -> None:
        monkeypatch.setenv("DRY_RUN", "true")

        Settings().validate_requirements(command="run")

    def test_price_needs_no_token(self) -> None:
        Settings().validate_requirements(command="price")
