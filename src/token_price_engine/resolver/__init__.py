"""Resolution layer - source routing and the two-tier cache."""

from token_price_engine.resolver.cache import (
    CachedPrice,
    CacheKey,
    DurablePriceCache,
    MemoryCache,
    TwoTierCache,
)
from token_price_engine.resolver.router import (
    FALLBACK_ORDER,
    PriceRouter,
    RouterStatus,
    SourceStatus,
)

__all__ = [
    "FALLBACK_ORDER",
    "CacheKey",
    "CachedPrice",
    "DurablePriceCache",
    "MemoryCache",
    "PriceRouter",
    "RouterStatus",
    "SourceStatus",
    "TwoTierCache",
]
