"""Market-data sources - adapters, health tracking and DEX pair selection."""

from token_price_engine.providers.base import (
    MalformedUpstreamResponseError,
    ProviderError,
    SourceAdapter,
    UpstreamUnavailableError,
)
from token_price_engine.providers.binance import BinanceAdapter
from token_price_engine.providers.coincap import CoinCapAdapter
from token_price_engine.providers.coingecko import CoinGeckoAdapter
from token_price_engine.providers.dexscreener import DexScreenerAdapter
from token_price_engine.providers.health import HealthState, HealthTracker
from token_price_engine.providers.models import (
    CHAIN_SCAN_ORDER,
    Chain,
    MarketRecord,
    ReferenceKind,
    ResolvedPair,
    TokenInfo,
    classify_reference,
)
from token_price_engine.providers.pair_selection import PairFilter, select_pair

__all__ = [
    "BinanceAdapter",
    "CHAIN_SCAN_ORDER",
    "Chain",
    "CoinCapAdapter",
    "CoinGeckoAdapter",
    "DexScreenerAdapter",
    "HealthState",
    "HealthTracker",
    "MalformedUpstreamResponseError",
    "MarketRecord",
    "PairFilter",
    "ProviderError",
    "ReferenceKind",
    "ResolvedPair",
    "SourceAdapter",
    "TokenInfo",
    "UpstreamUnavailableError",
    "classify_reference",
    "select_pair",
]
