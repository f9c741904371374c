"""Service wiring for the token price engine.

This module builds the adapters, router, caches, stores and scheduler from
Settings and manages their lifecycle.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx

from token_price_engine.alerter.telegram import TelegramChannel
from token_price_engine.config import Settings, get_settings
from token_price_engine.providers.base import SourceAdapter
from token_price_engine.providers.binance import BinanceAdapter
from token_price_engine.providers.coincap import CoinCapAdapter
from token_price_engine.providers.coingecko import CoinGeckoAdapter
from token_price_engine.providers.dexscreener import DexScreenerAdapter
from token_price_engine.providers.health import HealthTracker
from token_price_engine.providers.models import Chain, Clock, MarketRecord, now_utc
from token_price_engine.providers.pair_selection import PairFilter
from token_price_engine.resolver.cache import TwoTierCache
from token_price_engine.resolver.router import PriceRouter, RouterStatus
from token_price_engine.scheduler import AlertScheduler
from token_price_engine.storage.database import DatabaseManager
from token_price_engine.storage.stores import (
    DatabaseAlertStore,
    DatabasePriceCache,
    DatabaseWatchlistSource,
)

logger = logging.getLogger(__name__)


def build_adapters(
    settings: Settings, client: httpx.AsyncClient, *, clock: Clock = now_utc
) -> list[SourceAdapter]:
    """Create one adapter per source, each with its own health tracker."""
    providers = settings.providers

    def common(name: str) -> dict[str, Any]:
        return {
            "timeout_seconds": providers.request_timeout_seconds,
            "probe_timeout_seconds": providers.probe_timeout_seconds,
            "health": HealthTracker(
                name,
                seed_seconds=settings.health.backoff_seed_seconds,
                max_seconds=settings.health.backoff_max_seconds,
                clock=clock,
            ),
            "clock": clock,
        }

    coingecko_key = providers.coingecko_api_key
    coincap_key = providers.coincap_api_key
    return [
        CoinGeckoAdapter(
            client,
            base_url=providers.coingecko_base_url,
            api_key=coingecko_key.get_secret_value() if coingecko_key else None,
            **common(CoinGeckoAdapter.name),
        ),
        DexScreenerAdapter(
            client,
            base_url=providers.dexscreener_base_url,
            pair_filter=PairFilter(
                min_liquidity_usd=settings.dex.min_liquidity_usd,
                min_volume_usd=settings.dex.min_volume_usd,
                min_pair_age_hours=settings.dex.min_pair_age_hours,
            ),
            top_n=settings.dex.top_pairs,
            **common(DexScreenerAdapter.name),
        ),
        CoinCapAdapter(
            client,
            base_url=providers.coincap_base_url,
            api_key=coincap_key.get_secret_value() if coincap_key else None,
            **common(CoinCapAdapter.name),
        ),
        BinanceAdapter(
            client,
            base_url=providers.binance_base_url,
            **common(BinanceAdapter.name),
        ),
    ]


class ServiceState(str, Enum):
    """Service lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class ServiceStats:
    """Statistics for the service."""

    started_at: datetime | None = None
    last_error: str | None = None


class PriceService:
    """Owns every long-lived component of the engine.

    Example:
        ```python
        async with PriceService(get_settings()) as service:
            record = await service.resolve("ETH")
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        run_scheduler: bool = True,
        dry_run: bool | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            run_scheduler: Start the periodic jobs on start().
            dry_run: If True, log alerts instead of sending them. Overrides
                settings.dry_run.
        """
        self._settings = settings or get_settings()
        self._run_scheduler = run_scheduler
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run

        self._state = ServiceState.STOPPED
        self._stats = ServiceStats()

        self._http: httpx.AsyncClient | None = None
        self._db_manager: DatabaseManager | None = None
        self._cache: TwoTierCache | None = None
        self._router: PriceRouter | None = None
        self._scheduler: AlertScheduler | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def stats(self) -> ServiceStats:
        return self._stats

    @property
    def router(self) -> PriceRouter:
        if self._router is None:
            raise RuntimeError("Service is not started")
        return self._router

    @property
    def scheduler(self) -> AlertScheduler | None:
        return self._scheduler

    @property
    def cache(self) -> TwoTierCache:
        if self._cache is None:
            raise RuntimeError("Service is not started")
        return self._cache

    async def start(self) -> None:
        """Build all components and start the scheduler.

        Raises:
            RuntimeError: If the service is already running.
        """
        if self._state != ServiceState.STOPPED:
            raise RuntimeError(f"Cannot start service in state {self._state}")

        self._state = ServiceState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting price service...")

        try:
            await self._initialize_components()
            if self._scheduler is not None:
                await self._scheduler.start()
            self._stats.started_at = datetime.now(UTC)
            self._state = ServiceState.RUNNING
            logger.info("Price service started (primary source: %s)", self._settings.providers.primary)
        except Exception as e:
            self._state = ServiceState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start price service: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the scheduler and release connections."""
        if self._state == ServiceState.STOPPED:
            return

        self._state = ServiceState.STOPPING
        logger.info("Stopping price service...")
        if self._stop_event:
            self._stop_event.set()
        if self._scheduler is not None:
            await self._scheduler.stop()
        await self._cleanup()
        self._state = ServiceState.STOPPED
        logger.info("Price service stopped")

    async def _initialize_components(self) -> None:
        settings = self._settings

        self._db_manager = DatabaseManager(settings.database.url)
        if settings.database.auto_create:
            await self._db_manager.init_schema_async()

        self._http = httpx.AsyncClient(
            headers={"User-Agent": "token-price-engine/0.1"},
            follow_redirects=True,
        )
        adapters = build_adapters(settings, self._http)

        self._cache = TwoTierCache(DatabasePriceCache(self._db_manager))
        self._router = PriceRouter(
            adapters,
            self._cache,
            primary=settings.providers.primary,
            price_ttl_seconds=settings.cache.ttl_price,
        )

        if self._run_scheduler:
            notifier: TelegramChannel | None = None
            if settings.telegram.bot_token is not None and not self._dry_run:
                notifier = TelegramChannel(
                    settings.telegram.bot_token.get_secret_value(),
                    self._http,
                    api_url=settings.telegram.api_url,
                )
            self._scheduler = AlertScheduler(
                self._router,
                DatabaseAlertStore(self._db_manager),
                notifier,
                watchlist=DatabaseWatchlistSource(self._db_manager),
                cache=self._cache,
                alert_interval_seconds=settings.scheduler.alert_interval_seconds,
                watchlist_interval_seconds=settings.scheduler.watchlist_interval_seconds,
                cache_cleanup_interval_seconds=settings.scheduler.cache_cleanup_interval_seconds,
                dry_run=self._dry_run,
            )
        logger.debug("Components initialized with %d sources", len(adapters))

    async def _cleanup(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        if self._db_manager is not None:
            await self._db_manager.dispose_async()
            self._db_manager = None
        self._scheduler = None
        self._router = None
        self._cache = None
        logger.debug("Resources cleaned up")

    async def resolve(
        self, reference: str, chain: Chain | str | None = None, *, skip_cache: bool = False
    ) -> MarketRecord | None:
        return await self.router.resolve(reference, chain, skip_cache=skip_cache)

    async def provider_status(self, *, probe: bool = False) -> RouterStatus:
        return await self.router.provider_status(probe=probe)

    async def cleanup_cache(self) -> int:
        return await self.cache.sweep_expired()

    async def run(self) -> None:
        """Start the service and run until interrupted."""
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> PriceService:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
