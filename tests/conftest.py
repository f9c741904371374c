"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from token_price_engine.providers.models import MarketRecord, ResolvedPair

FIXED_NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=UTC)


class FrozenClock:
    """Manually advanced clock for deterministic time-dependent tests."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FrozenClock:
    """A frozen clock starting at FIXED_NOW."""
    return FrozenClock()


@pytest.fixture
def make_record() -> Callable[..., MarketRecord]:
    """Factory for market records with sensible defaults."""

    def _make(**overrides: Any) -> MarketRecord:
        values: dict[str, Any] = {
            "symbol": "ETH",
            "name": "Ethereum",
            "price": 2500.0,
            "price_change_24h": 50.0,
            "price_change_percent_24h": 2.0,
            "market_cap": 300_000_000_000.0,
            "volume_24h": 15_000_000_000.0,
            "high_24h": 2550.0,
            "low_24h": 2400.0,
            "last_updated": FIXED_NOW,
            "source": "coingecko",
        }
        values.update(overrides)
        return MarketRecord(**values)

    return _make


@pytest.fixture
def make_pair() -> Callable[..., ResolvedPair]:
    """Factory for DEX pairs."""
    counter = iter(range(1, 10_000))

    def _make(**overrides: Any) -> ResolvedPair:
        n = next(counter)
        values: dict[str, Any] = {
            "chain_id": "ethereum",
            "pair_address": f"0xpair{n:036d}",
            "dex_id": "uniswap",
            "base_address": "0x" + "a" * 40,
            "base_symbol": "PEPE",
            "base_name": "Pepe",
            "price_usd": 0.00001,
            "price_change_percent_24h": 5.0,
            "liquidity_usd": 100_000.0,
            "volume_24h_usd": 50_000.0,
            "market_cap": 1_000_000.0,
            "created_at": FIXED_NOW - timedelta(days=30),
        }
        values.update(overrides)
        return ResolvedPair(**values)

    return _make


def dexscreener_pair(
    *,
    symbol: str = "PEPE",
    base_address: str = "0x" + "a" * 40,
    chain_id: str = "ethereum",
    pair_address: str = "0x" + "1" * 40,
    price: str = "0.00001",
    liquidity: float = 100_000.0,
    volume: float = 50_000.0,
    change: float = 10.0,
    created_at: datetime = FIXED_NOW - timedelta(days=30),
) -> dict[str, Any]:
    """A pair object shaped like the DexScreener API response."""
    return {
        "chainId": chain_id,
        "dexId": "uniswap",
        "url": f"https://dexscreener.com/{chain_id}/{pair_address}",
        "pairAddress": pair_address,
        "baseToken": {"address": base_address, "name": symbol.title(), "symbol": symbol},
        "quoteToken": {"address": "0x" + "f" * 40, "name": "Wrapped Ether", "symbol": "WETH"},
        "priceUsd": price,
        "volume": {"h24": volume},
        "priceChange": {"h24": change},
        "liquidity": {"usd": liquidity},
        "fdv": 2_000_000,
        "marketCap": 1_500_000,
        "pairCreatedAt": int(created_at.timestamp() * 1000),
    }


@pytest.fixture
def pair_payload() -> Callable[..., dict[str, Any]]:
    """Factory for DexScreener-shaped pair objects."""
    return dexscreener_pair
