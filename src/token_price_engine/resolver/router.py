"""Resolve token references to market records across multiple sources.

Addresses are resolved only through the DEX pair index, either on the
requested chain or by scanning the chains whose address format matches.
Symbols walk the primary source followed by the fixed fallback order,
skipping sources whose health tracker reports them down. When a down
source's backoff elapses only one concurrent caller is let through.
The first record returned wins and is written through both cache tiers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from token_price_engine.providers.base import SourceAdapter
from token_price_engine.providers.health import HealthState
from token_price_engine.providers.models import (
    CHAIN_SCAN_ORDER,
    AddressFamily,
    Chain,
    MarketRecord,
    TokenInfo,
    classify_reference,
)
from token_price_engine.resolver.cache import CacheKey, TwoTierCache

logger = logging.getLogger(__name__)

FALLBACK_ORDER: tuple[str, ...] = ("coingecko", "dexscreener", "coincap", "binance")
ADDRESS_SOURCE = "dexscreener"
DEFAULT_PRICE_TTL_SECONDS = 30


@dataclass(frozen=True)
class SourceStatus:
    """Health report for one source."""

    name: str
    healthy: bool
    state: HealthState
    probe_ok: bool | None = None


@dataclass(frozen=True)
class RouterStatus:
    """Health report for the router."""

    primary: str
    sources: tuple[SourceStatus, ...]


class PriceRouter:
    """Entry point for token resolution.

    Example:
        ```python
        router = PriceRouter(adapters, cache, primary="coingecko")
        record = await router.resolve("BTC")
        record = await router.resolve("0x...", Chain.ETHEREUM, skip_cache=True)
        ```
    """

    def __init__(
        self,
        adapters: Iterable[SourceAdapter],
        cache: TwoTierCache,
        *,
        primary: str = "coingecko",
        price_ttl_seconds: int = DEFAULT_PRICE_TTL_SECONDS,
    ) -> None:
        """Initialize the router.

        Args:
            adapters: Source adapters keyed by their ``name``.
            cache: Two-tier cache for resolved records.
            primary: Name of the source tried first for symbols.
            price_ttl_seconds: Freshness window for written records.

        Raises:
            ValueError: If the primary source is not among the adapters.
        """
        self._adapters: dict[str, SourceAdapter] = {a.name: a for a in adapters}
        if primary not in self._adapters:
            raise ValueError(f"Primary source {primary!r} is not configured")
        self._cache = cache
        self._primary = primary
        self._price_ttl = price_ttl_seconds

    @property
    def primary(self) -> str:
        return self._primary

    def symbol_order(self) -> list[SourceAdapter]:
        """Sources in the order they are tried for a symbol."""
        names = [self._primary] + [n for n in FALLBACK_ORDER if n != self._primary]
        return [self._adapters[n] for n in names if n in self._adapters]

    async def resolve(
        self,
        reference: str,
        chain: Chain | str | None = None,
        *,
        skip_cache: bool = False,
    ) -> MarketRecord | None:
        """Resolve a symbol or address to a market record.

        Args:
            reference: Ticker symbol or contract address.
            chain: Optional chain qualifier.
            skip_cache: Bypass cache reads for this call. Results are still
                written through.

        Returns:
            The first record any eligible source produced, or None.
        """
        reference = reference.strip()
        if not reference:
            return None
        key = CacheKey.of(reference, chain)

        if not skip_cache:
            cached = await self._read_cache(key)
            if cached is not None:
                logger.debug("Cache hit for %s", key)
                return cached

        kind = classify_reference(reference)
        if kind.is_address:
            record = await self._resolve_address(reference, key.chain, kind.address_family)
        else:
            record = await self._resolve_symbol(reference, key.chain)

        if record is None:
            logger.warning("No source could resolve %s (chain=%s)", reference, key.chain)
            return None

        await self._write_cache(key, record)
        return record

    async def _resolve_address(
        self, address: str, chain: Chain | None, family: AddressFamily | None
    ) -> MarketRecord | None:
        adapter = self._adapters.get(ADDRESS_SOURCE)
        if adapter is None:
            return None
        if chain is not None:
            chains: Sequence[Chain] = (chain,)
        else:
            chains = [c for c in CHAIN_SCAN_ORDER if c.address_family == family]

        for candidate in chains:
            if not adapter.allow_request():
                logger.debug("Skipping %s for %s: source is backing off", adapter.name, address)
                return None
            record = await self._call(adapter, address, candidate)
            if record is not None:
                return record
        return None

    async def _resolve_symbol(self, symbol: str, chain: Chain | None) -> MarketRecord | None:
        for adapter in self.symbol_order():
            if not adapter.supports(symbol):
                continue
            if not adapter.allow_request():
                logger.debug("Skipping %s for %s: source is backing off", adapter.name, symbol)
                continue
            record = await self._call(adapter, symbol, chain)
            if record is not None:
                logger.debug("Resolved %s via %s", symbol, adapter.name)
                return record
        return None

    async def _call(
        self, adapter: SourceAdapter, reference: str, chain: Chain | None
    ) -> MarketRecord | None:
        try:
            return await adapter.get_price(reference, chain)
        except Exception as e:
            logger.exception("Source %s raised while resolving %s: %s", adapter.name, reference, e)
            return None

    async def _read_cache(self, key: CacheKey) -> MarketRecord | None:
        try:
            return await self._cache.get(key)
        except Exception as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None

    async def _write_cache(self, key: CacheKey, record: MarketRecord) -> None:
        try:
            await self._cache.set(key, record, self._price_ttl)
        except Exception as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    async def search_token(self, query: str) -> list[TokenInfo]:
        """Search sources in symbol order; first non-empty result wins."""
        query = query.strip()
        if not query:
            return []
        for adapter in self.symbol_order():
            allowed = adapter.allow_request() if adapter.remote_search else adapter.is_healthy()
            if not allowed:
                continue
            try:
                results = await adapter.search_token(query)
            except Exception as e:
                logger.exception("Source %s raised while searching %s: %s", adapter.name, query, e)
                continue
            if results:
                return results
        return []

    async def provider_status(self, *, probe: bool = False) -> RouterStatus:
        """Report per-source health, optionally probing every source."""
        sources: list[SourceStatus] = []
        for adapter in self.symbol_order():
            probe_ok = await adapter.probe() if probe else None
            sources.append(
                SourceStatus(
                    name=adapter.name,
                    healthy=adapter.is_healthy(),
                    state=adapter.health.state,
                    probe_ok=probe_ok,
                )
            )
        return RouterStatus(primary=self._primary, sources=tuple(sources))

    def clear_cache(self) -> None:
        """Drop the memory tier."""
        self._cache.clear_memory()
