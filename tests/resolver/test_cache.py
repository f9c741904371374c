"""Tests for the two-tier price cache."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from token_price_engine.providers.models import Chain
from token_price_engine.resolver.cache import CachedPrice, CacheKey, MemoryCache, TwoTierCache


class TestCacheKey:
    """Tests for cache key normalization."""

    def test_normalizes_reference(self) -> None:
        assert CacheKey.of("  BTC ") == CacheKey.of("btc")

    def test_chain_distinguishes_keys(self) -> None:
        assert CacheKey.of("pepe", "ethereum") != CacheKey.of("pepe")
        assert CacheKey.of("pepe", "ethereum").chain is Chain.ETHEREUM

    def test_address_case_insensitive(self) -> None:
        assert CacheKey.of("0x" + "A" * 40) == CacheKey.of("0x" + "a" * 40)

    def test_solana_address_case_preserved(self) -> None:
        mint = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

        assert CacheKey.of(f" {mint} ").reference == mint
        assert CacheKey.of(mint) != CacheKey.of("ePjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v")


class TestCachedPrice:
    """Tests for the freshness window."""

    def test_expiry_boundary(self, make_record, clock) -> None:
        cached = CachedPrice(record=make_record(), fetched_at=clock(), ttl_seconds=30)

        assert cached.is_expired(clock() + timedelta(seconds=29)) is False
        assert cached.is_expired(clock() + timedelta(seconds=30)) is False
        assert cached.is_expired(clock() + timedelta(seconds=31)) is True


class TestMemoryCache:
    """Tests for the in-process tier."""

    def test_lazy_expiry(self, make_record, clock) -> None:
        cache = MemoryCache(clock)
        key = CacheKey.of("ETH")
        cache.set_for(key, make_record(), 30)

        clock.advance(30)
        assert cache.get(key) is not None
        clock.advance(1)
        assert cache.get(key) is None
        assert len(cache) == 0

    def test_sweep(self, make_record, clock) -> None:
        cache = MemoryCache(clock)
        cache.set_for(CacheKey.of("ETH"), make_record(), 10)
        cache.set_for(CacheKey.of("BTC"), make_record(symbol="BTC"), 100)

        clock.advance(50)

        assert cache.sweep() == 1
        assert len(cache) == 1


class TestTwoTierCache:
    """Tests for read-through and write-through behavior."""

    @pytest.mark.asyncio
    async def test_memory_hit_skips_durable(self, make_record, clock) -> None:
        durable = AsyncMock()
        cache = TwoTierCache(durable, clock=clock)
        key = CacheKey.of("ETH")
        cache.memory.set_for(key, make_record(), 30)

        assert await cache.get(key) == make_record()
        durable.get_cached_price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_durable_hit_populates_memory(self, make_record, clock) -> None:
        record = make_record()
        fetched_at = clock() - timedelta(seconds=20)
        durable = AsyncMock()
        durable.get_cached_price.return_value = CachedPrice(record, fetched_at, 30)
        cache = TwoTierCache(durable, clock=clock)
        key = CacheKey.of("eth", Chain.ETHEREUM)

        assert await cache.get(key) == record
        durable.get_cached_price.assert_awaited_once_with("eth", Chain.ETHEREUM)
        assert cache.memory.get(key) == record

        # The memory copy keeps the durable expiry (10s left), not a fresh 30s.
        clock.advance(11)
        assert cache.memory.get(key) is None

    @pytest.mark.asyncio
    async def test_miss(self, clock) -> None:
        durable = AsyncMock()
        durable.get_cached_price.return_value = None
        cache = TwoTierCache(durable, clock=clock)

        assert await cache.get(CacheKey.of("NOPE")) is None

    @pytest.mark.asyncio
    async def test_set_writes_both_tiers(self, make_record, clock) -> None:
        durable = AsyncMock()
        cache = TwoTierCache(durable, clock=clock)
        key = CacheKey.of("ETH")
        record = make_record()

        await cache.set(key, record, 30)

        assert cache.memory.get(key) == record
        durable.set_cached_price.assert_awaited_once_with("eth", record, 30, None)

    @pytest.mark.asyncio
    async def test_memory_only(self, make_record, clock) -> None:
        cache = TwoTierCache(clock=clock)
        key = CacheKey.of("ETH")

        await cache.set(key, make_record(), 30)

        assert await cache.get(key) is not None
        assert await cache.sweep_expired() == 0

    @pytest.mark.asyncio
    async def test_sweep_both_tiers(self, make_record, clock) -> None:
        durable = AsyncMock()
        durable.clean_expired_cache.return_value = 3
        cache = TwoTierCache(durable, clock=clock)
        cache.memory.set_for(CacheKey.of("ETH"), make_record(), 1)
        clock.advance(5)

        assert await cache.sweep_expired() == 4

    @pytest.mark.asyncio
    async def test_clear_memory(self, make_record, clock) -> None:
        cache = TwoTierCache(clock=clock)
        await cache.set(CacheKey.of("ETH"), make_record(), 30)

        cache.clear_memory()

        assert len(cache.memory) == 0
