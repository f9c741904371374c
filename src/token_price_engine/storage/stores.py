"""Session-managing stores used by the resolver and the scheduler.

Each call opens its own session through DatabaseManager, so the stores can
be shared by concurrent tasks.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta

from token_price_engine.providers.models import (
    Chain,
    Clock,
    MarketRecord,
    normalize_reference,
    now_utc,
)
from token_price_engine.resolver.cache import CachedPrice
from token_price_engine.storage.database import DatabaseManager
from token_price_engine.storage.repos import (
    AlertDTO,
    AlertRepository,
    TokenCacheDTO,
    TokenCacheRepository,
    WatchlistItemDTO,
    WatchlistRepository,
)

logger = logging.getLogger(__name__)

# Stored chain value for lookups made without a chain.
ANY_CHAIN = ""


def _chain_key(chain: Chain | None) -> str:
    return chain.value if chain is not None else ANY_CHAIN


class DatabasePriceCache:
    """Durable tier of the price cache backed by the token_cache table."""

    def __init__(self, db: DatabaseManager, *, clock: Clock = now_utc) -> None:
        self._db = db
        self._clock = clock

    async def get_cached_price(
        self, token_ref: str, chain: Chain | None = None
    ) -> CachedPrice | None:
        """Return a fresh entry, deleting it instead if it has expired."""
        token_ref = normalize_reference(token_ref)
        chain_key = _chain_key(chain)
        async with self._db.get_async_session() as session:
            repo = TokenCacheRepository(session)
            row = await repo.get(token_ref, chain_key)
            if row is None:
                return None

            if self._clock() > row.fetched_at + timedelta(seconds=row.ttl_seconds):
                await repo.delete(token_ref, chain_key)
                return None

            try:
                record = MarketRecord.from_dict(json.loads(row.data_json))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Dropping unreadable cache row for %s/%s: %s", token_ref, chain_key, e)
                await repo.delete(token_ref, chain_key)
                return None

        return CachedPrice(record=record, fetched_at=row.fetched_at, ttl_seconds=row.ttl_seconds)

    async def set_cached_price(
        self,
        token_ref: str,
        record: MarketRecord,
        ttl_seconds: int,
        chain: Chain | None = None,
    ) -> None:
        fetched_at = self._clock()
        async with self._db.get_async_session() as session:
            await TokenCacheRepository(session).upsert(
                TokenCacheDTO(
                    token_ref=normalize_reference(token_ref),
                    chain=_chain_key(chain),
                    data_json=json.dumps(record.to_dict()),
                    fetched_at=fetched_at,
                    ttl_seconds=ttl_seconds,
                    expires_at=fetched_at + timedelta(seconds=ttl_seconds),
                )
            )

    async def clean_expired_cache(self) -> int:
        async with self._db.get_async_session() as session:
            removed = await TokenCacheRepository(session).delete_expired(self._clock())
        if removed:
            logger.info("Removed %d expired cache rows", removed)
        return removed


class DatabaseAlertStore:
    """Alert reads and trigger stamps for the scheduler."""

    def __init__(self, db: DatabaseManager, *, clock: Clock = now_utc) -> None:
        self._db = db
        self._clock = clock

    async def get_all_active_alerts(self) -> list[AlertDTO]:
        async with self._db.get_async_session() as session:
            return await AlertRepository(session).get_all_active()

    async def mark_alert_triggered(self, alert_id: int) -> None:
        async with self._db.get_async_session() as session:
            await AlertRepository(session).mark_triggered(alert_id, self._clock())


class DatabaseWatchlistSource:
    """Watchlist reads for the cache warm-up job."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def list_watched_tokens(self) -> list[WatchlistItemDTO]:
        async with self._db.get_async_session() as session:
            return await WatchlistRepository(session).list_all()
