"""Periodic alert evaluation, watchlist warm-up and cache cleanup.

The alert job loads every active alert, groups them by (token, chain) so
each token is resolved once per cycle, and notifies the owning chat for
every alert whose threshold is crossed and whose cooldown has elapsed.
A failure to resolve a group skips that group only; a failure to deliver
or stamp one alert skips that alert only. The cycle always completes and
records when it ran.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from token_price_engine.alerter.formatter import format_alert_triggered
from token_price_engine.providers.models import Chain, Clock, MarketRecord, now_utc
from token_price_engine.resolver.cache import CacheKey
from token_price_engine.storage.repos import AlertDirection, AlertDTO, WatchlistItemDTO

logger = logging.getLogger(__name__)

DEFAULT_ALERT_INTERVAL_SECONDS = 60.0
DEFAULT_WATCHLIST_INTERVAL_SECONDS = 300.0
DEFAULT_CACHE_CLEANUP_INTERVAL_SECONDS = 3600.0
WARMUP_CONCURRENCY = 5


class PriceResolver(Protocol):
    async def resolve(
        self,
        reference: str,
        chain: Chain | str | None = None,
        *,
        skip_cache: bool = False,
    ) -> MarketRecord | None: ...


class AlertStore(Protocol):
    async def get_all_active_alerts(self) -> list[AlertDTO]: ...

    async def mark_alert_triggered(self, alert_id: int) -> None: ...


class WatchlistSource(Protocol):
    async def list_watched_tokens(self) -> list[WatchlistItemDTO]: ...


class Notifier(Protocol):
    async def deliver(self, destination: int | str, message: str) -> bool: ...


class CacheSweeper(Protocol):
    async def sweep_expired(self) -> int: ...


class SchedulerState(str, Enum):
    """Scheduler lifecycle states."""

    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class SchedulerStatus:
    """Run timestamps and counters for the periodic jobs."""

    last_alert_run: datetime | None = None
    last_watchlist_run: datetime | None = None
    last_cache_cleanup_run: datetime | None = None
    alert_cycles: int = 0
    alerts_triggered: int = 0
    delivery_failures: int = 0
    tokens_warmed: int = 0
    cache_entries_removed: int = 0
    last_error: str | None = None


@dataclass
class AlertCycleReport:
    """Outcome of one alert evaluation cycle."""

    groups: int = 0
    alerts_checked: int = 0
    triggered: list[int] = field(default_factory=list)
    unresolved_groups: list[CacheKey] = field(default_factory=list)
    delivery_failures: list[int] = field(default_factory=list)


def group_alerts(alerts: Iterable[AlertDTO]) -> dict[CacheKey, list[AlertDTO]]:
    """Group alerts so each (token, chain) is resolved once."""
    groups: dict[CacheKey, list[AlertDTO]] = {}
    for alert in alerts:
        groups.setdefault(CacheKey.of(alert.token_ref, alert.chain), []).append(alert)
    return groups


def is_threshold_crossed(direction: AlertDirection, price: float, target: float) -> bool:
    if direction is AlertDirection.ABOVE:
        return price >= target
    return price <= target


def is_cooldown_elapsed(
    last_triggered_at: datetime | None, cooldown_minutes: int, now: datetime
) -> bool:
    if last_triggered_at is None:
        return True
    return now - last_triggered_at >= timedelta(minutes=cooldown_minutes)


class AlertScheduler:
    """Runs the alert, watchlist and cache-cleanup jobs on fixed intervals.

    Example:
        ```python
        scheduler = AlertScheduler(router, alert_store, notifier, cache=cache)
        await scheduler.start()
        ...
        await scheduler.stop()
        ```
    """

    def __init__(
        self,
        resolver: PriceResolver,
        alert_store: AlertStore,
        notifier: Notifier | None,
        *,
        watchlist: WatchlistSource | None = None,
        cache: CacheSweeper | None = None,
        alert_interval_seconds: float = DEFAULT_ALERT_INTERVAL_SECONDS,
        watchlist_interval_seconds: float = DEFAULT_WATCHLIST_INTERVAL_SECONDS,
        cache_cleanup_interval_seconds: float = DEFAULT_CACHE_CLEANUP_INTERVAL_SECONDS,
        dry_run: bool = False,
        clock: Clock = now_utc,
    ) -> None:
        """Initialize the scheduler.

        Args:
            resolver: Resolves tokens to market records.
            alert_store: Reads active alerts and stamps triggered ones.
            notifier: Delivers messages; None only in dry-run mode.
            watchlist: Source of tokens to keep warm in the cache.
            cache: Cache whose expired entries are swept.
            alert_interval_seconds: Period of the alert job.
            watchlist_interval_seconds: Period of the watchlist warm-up job.
            cache_cleanup_interval_seconds: Period of the cache sweep job.
            dry_run: Log triggered alerts instead of delivering them.
            clock: Time source for cooldowns and run timestamps.
        """
        if notifier is None and not dry_run:
            raise ValueError("A notifier is required unless dry_run is set")
        self._resolver = resolver
        self._alert_store = alert_store
        self._notifier = notifier
        self._watchlist = watchlist
        self._cache = cache
        self._alert_interval = alert_interval_seconds
        self._watchlist_interval = watchlist_interval_seconds
        self._cleanup_interval = cache_cleanup_interval_seconds
        self._dry_run = dry_run
        self._clock = clock

        self._state = SchedulerState.STOPPED
        self._status = SchedulerStatus()
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def status(self) -> SchedulerStatus:
        return self._status

    async def start(self) -> None:
        """Start the periodic jobs as background tasks."""
        if self._state != SchedulerState.STOPPED:
            logger.warning("Cannot start scheduler: already in state %s", self._state)
            return

        self._stop_event.clear()
        self._tasks = [
            asyncio.create_task(
                self._run_periodic("alerts", self._alert_interval, self.run_alert_cycle)
            ),
        ]
        if self._watchlist is not None:
            self._tasks.append(
                asyncio.create_task(
                    self._run_periodic("watchlist", self._watchlist_interval, self.run_watchlist_cycle)
                )
            )
        if self._cache is not None:
            self._tasks.append(
                asyncio.create_task(
                    self._run_periodic("cache-cleanup", self._cleanup_interval, self.run_cache_cleanup)
                )
            )
        self._state = SchedulerState.RUNNING
        logger.info(
            "Scheduler started (alerts every %.0fs, watchlist every %.0fs, cleanup every %.0fs)",
            self._alert_interval,
            self._watchlist_interval,
            self._cleanup_interval,
        )

    async def stop(self) -> None:
        """Stop all jobs, cancelling any cycle in progress."""
        if self._state == SchedulerState.STOPPED:
            return

        self._state = SchedulerState.STOPPING
        self._stop_event.set()
        for task in self._tasks:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        self._state = SchedulerState.STOPPED
        logger.info("Scheduler stopped")

    async def _run_periodic(
        self, name: str, interval: float, job: Callable[[], Awaitable[object]]
    ) -> None:
        while not self._stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break
                except TimeoutError:
                    pass

                await job()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._status.last_error = f"{name}: {e}"
                logger.error("Scheduler job %s failed: %s", name, e)

    async def run_alert_cycle(self) -> AlertCycleReport:
        """Evaluate every active alert once."""
        report = AlertCycleReport()
        try:
            alerts = await self._alert_store.get_all_active_alerts()
        except Exception as e:
            logger.error("Could not load active alerts: %s", e)
            self._status.last_error = f"alerts: {e}"
            alerts = []

        groups = group_alerts(alerts)
        report.groups = len(groups)
        report.alerts_checked = len(alerts)

        if groups:
            results = await asyncio.gather(
                *(self._process_group(key, members, report) for key, members in groups.items()),
                return_exceptions=True,
            )
            for key, result in zip(groups, results, strict=True):
                if isinstance(result, BaseException):
                    report.unresolved_groups.append(key)
                    logger.error("Alert group %s failed: %s", key, result)

        self._status.alert_cycles += 1
        self._status.alerts_triggered += len(report.triggered)
        self._status.delivery_failures += len(report.delivery_failures)
        self._status.last_alert_run = self._clock()
        logger.debug(
            "Alert cycle: %d alerts in %d groups, %d triggered",
            report.alerts_checked,
            report.groups,
            len(report.triggered),
        )
        return report

    async def _process_group(
        self, key: CacheKey, alerts: list[AlertDTO], report: AlertCycleReport
    ) -> None:
        # Every alert in the group shares the caller's original reference.
        reference = alerts[0].token_ref
        record = await self._resolver.resolve(reference, key.chain)
        if record is None:
            report.unresolved_groups.append(key)
            logger.debug("No price for %s, skipping %d alerts", key, len(alerts))
            return

        now = self._clock()
        for alert in alerts:
            try:
                if not is_threshold_crossed(alert.direction, record.price, alert.target_price):
                    continue
                if not is_cooldown_elapsed(alert.last_triggered_at, alert.cooldown_minutes, now):
                    continue
                await self._fire(alert, record, report)
            except Exception as e:
                report.delivery_failures.append(alert.id)
                logger.error("Alert %d failed: %s", alert.id, e)

    async def _fire(self, alert: AlertDTO, record: MarketRecord, report: AlertCycleReport) -> None:
        message = format_alert_triggered(alert, record.price)
        if self._dry_run or self._notifier is None:
            logger.info("[dry-run] Alert %d for chat %s:\n%s", alert.id, alert.chat_id, message)
        else:
            try:
                delivered = await self._notifier.deliver(alert.chat_id, message)
            except Exception as e:
                logger.error("Delivery of alert %d raised: %s", alert.id, e)
                delivered = False
            if not delivered:
                report.delivery_failures.append(alert.id)
                logger.warning("Alert %d for chat %s was not delivered", alert.id, alert.chat_id)
                return

        try:
            await self._alert_store.mark_alert_triggered(alert.id)
        except Exception as e:
            logger.error("Could not stamp alert %d as triggered: %s", alert.id, e)
            return
        report.triggered.append(alert.id)
        logger.info(
            "Alert %d triggered: %s %s %s (price %s)",
            alert.id,
            alert.token_ref,
            alert.direction.value,
            alert.target_price,
            record.price,
        )

    async def run_watchlist_cycle(self) -> int:
        """Refresh the cache for every distinct watched token.

        Returns:
            Number of tokens resolved successfully.
        """
        if self._watchlist is None:
            return 0
        items = await self._watchlist.list_watched_tokens()
        keys: dict[CacheKey, WatchlistItemDTO] = {}
        for item in items:
            keys.setdefault(CacheKey.of(item.token_ref, item.chain), item)

        semaphore = asyncio.Semaphore(WARMUP_CONCURRENCY)

        async def warm(key: CacheKey, item: WatchlistItemDTO) -> bool:
            async with semaphore:
                record = await self._resolver.resolve(item.token_ref, key.chain, skip_cache=True)
                return record is not None

        results = await asyncio.gather(
            *(warm(k, v) for k, v in keys.items()), return_exceptions=True
        )
        warmed = 0
        for key, result in zip(keys, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Watchlist warm-up failed for %s: %s", key, result)
            elif result:
                warmed += 1

        self._status.tokens_warmed += warmed
        self._status.last_watchlist_run = self._clock()
        logger.debug("Watchlist warm-up: %d/%d tokens refreshed", warmed, len(keys))
        return warmed

    async def run_cache_cleanup(self) -> int:
        """Sweep expired cache entries from both tiers."""
        if self._cache is None:
            return 0
        removed = await self._cache.sweep_expired()
        self._status.cache_entries_removed += removed
        self._status.last_cache_cleanup_run = self._clock()
        return removed
