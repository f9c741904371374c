"""Two-tier cache for resolved market records.

The memory tier is a process-local dict with lazy expiry. The durable tier
is any object implementing DurablePriceCache (the database-backed one lives
in ``token_price_engine.storage.stores``). Reads go memory, then durable;
writes go memory first, then durable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from token_price_engine.providers.models import (
    Chain,
    Clock,
    MarketRecord,
    normalize_reference,
    now_utc,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheKey:
    """Cache key for one (reference, chain) lookup."""

    reference: str
    chain: Chain | None = None

    @classmethod
    def of(cls, reference: str, chain: Chain | str | None = None) -> CacheKey:
        return cls(reference=normalize_reference(reference), chain=Chain.parse(chain))


@dataclass(frozen=True)
class CachedPrice:
    """A market record stored with its freshness window."""

    record: MarketRecord
    fetched_at: datetime
    ttl_seconds: int

    @property
    def expires_at(self) -> datetime:
        return self.fetched_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class DurablePriceCache(Protocol):
    """Persistent cache tier."""

    async def get_cached_price(
        self, token_ref: str, chain: Chain | None = None
    ) -> CachedPrice | None: ...

    async def set_cached_price(
        self,
        token_ref: str,
        record: MarketRecord,
        ttl_seconds: int,
        chain: Chain | None = None,
    ) -> None: ...

    async def clean_expired_cache(self) -> int: ...


class MemoryCache:
    """In-process cache with per-entry expiry."""

    def __init__(self, clock: Clock = now_utc) -> None:
        self._clock = clock
        self._entries: dict[CacheKey, tuple[MarketRecord, datetime]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey) -> MarketRecord | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        record, expires_at = entry
        if self._clock() > expires_at:
            del self._entries[key]
            return None
        return record

    def set(self, key: CacheKey, record: MarketRecord, expires_at: datetime) -> None:
        self._entries[key] = (record, expires_at)

    def set_for(self, key: CacheKey, record: MarketRecord, ttl_seconds: int) -> None:
        self.set(key, record, self._clock() + timedelta(seconds=ttl_seconds))

    def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if now > expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()


class TwoTierCache:
    """Memory tier in front of an optional durable tier.

    Durable-tier errors propagate; the router decides how to degrade.
    """

    def __init__(
        self,
        durable: DurablePriceCache | None = None,
        *,
        memory: MemoryCache | None = None,
        clock: Clock = now_utc,
    ) -> None:
        self._durable = durable
        self._memory = memory or MemoryCache(clock)

    @property
    def memory(self) -> MemoryCache:
        return self._memory

    async def get(self, key: CacheKey) -> MarketRecord | None:
        record = self._memory.get(key)
        if record is not None:
            return record
        if self._durable is None:
            return None

        cached = await self._durable.get_cached_price(key.reference, key.chain)
        if cached is None:
            return None
        # Keep the durable entry's remaining lifetime rather than restarting it.
        self._memory.set(key, cached.record, cached.expires_at)
        return cached.record

    async def set(self, key: CacheKey, record: MarketRecord, ttl_seconds: int) -> None:
        self._memory.set_for(key, record, ttl_seconds)
        if self._durable is not None:
            await self._durable.set_cached_price(key.reference, record, ttl_seconds, key.chain)

    async def sweep_expired(self) -> int:
        """Sweep both tiers. Returns the number of entries removed."""
        removed = self._memory.sweep()
        if self._durable is not None:
            removed += await self._durable.clean_expired_cache()
        logger.debug("Swept %d expired cache entries", removed)
        return removed

    def clear_memory(self) -> None:
        self._memory.clear()
