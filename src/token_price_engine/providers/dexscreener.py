"""DexScreener pair index adapter.

The only source that can resolve contract addresses. Symbol searches and
address lookups both return a list of pairs that goes through pair
selection before it becomes a market record.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from token_price_engine.providers.base import MalformedUpstreamResponseError, SourceAdapter
from token_price_engine.providers.models import (
    Chain,
    MarketRecord,
    ReferenceKind,
    ResolvedPair,
    TokenInfo,
    classify_reference,
    normalize_symbol,
)
from token_price_engine.providers.pair_selection import (
    DEFAULT_TOP_PAIRS,
    AggregatedPair,
    PairFilter,
    select_pair,
)

logger = logging.getLogger(__name__)


class DexScreenerAdapter(SourceAdapter):
    """Pair lookups against the DexScreener public API."""

    name = "dexscreener"
    probe_path = "/latest/dex/search?q=USDC"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        pair_filter: PairFilter | None = None,
        top_n: int = DEFAULT_TOP_PAIRS,
        **kwargs: Any,
    ) -> None:
        """Initialize the adapter.

        Args:
            client: Shared HTTP client.
            pair_filter: Thresholds applied before grouping.
            top_n: Number of most liquid pairs aggregated for volume.
            **kwargs: Passed to SourceAdapter.
        """
        super().__init__(client, **kwargs)
        self._pair_filter = pair_filter
        self._top_n = top_n

    async def _fetch_price(self, reference: str, chain: Chain | None) -> MarketRecord | None:
        reference = reference.strip()
        if classify_reference(reference) is ReferenceKind.SYMBOL:
            return await self._fetch_by_symbol(reference, chain)
        return await self._fetch_by_address(reference, chain)

    async def _fetch_by_symbol(self, symbol: str, chain: Chain | None) -> MarketRecord | None:
        body = await self._get_json("/latest/dex/search", params={"q": symbol})
        pairs = self._parse_pairs(self._unwrap_pairs(body))
        if chain is not None:
            pairs = [p for p in pairs if p.chain_id == chain.dexscreener_id]
        selected = select_pair(
            pairs,
            now=self._clock(),
            symbol=symbol,
            pair_filter=self._pair_filter,
            top_n=self._top_n,
        )
        return self._to_record(selected)

    async def _fetch_by_address(self, address: str, chain: Chain | None) -> MarketRecord | None:
        if chain is not None:
            body = await self._get_json(
                f"/tokens/v1/{chain.dexscreener_id}/{address}", allow_not_found=True
            )
        else:
            body = await self._get_json(f"/latest/dex/tokens/{address}", allow_not_found=True)
        if body is None:
            return None
        pairs = self._parse_pairs(self._unwrap_pairs(body))
        selected = select_pair(
            pairs,
            now=self._clock(),
            address=address,
            pair_filter=self._pair_filter,
            top_n=self._top_n,
        )
        return self._to_record(selected)

    async def _search(self, query: str) -> list[TokenInfo]:
        body = await self._get_json("/latest/dex/search", params={"q": query.strip()})
        seen: set[str] = set()
        results: list[TokenInfo] = []
        for pair in self._parse_pairs(self._unwrap_pairs(body)):
            if pair.identity in seen:
                continue
            seen.add(pair.identity)
            results.append(
                TokenInfo(
                    symbol=normalize_symbol(pair.base_symbol),
                    name=pair.base_name,
                    source=self.name,
                    address=pair.base_address or None,
                    chain=Chain.parse(pair.chain_id),
                )
            )
        return results[:10]

    def _unwrap_pairs(self, body: Any) -> list[Any]:
        # /tokens/v1 returns a bare list; /latest/dex/* wraps it in {"pairs": ...}.
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            pairs = body.get("pairs")
            if pairs is None:
                return []
            if isinstance(pairs, list):
                return pairs
        self.health.record_failure("unexpected pair payload")
        raise MalformedUpstreamResponseError(self.name, "expected a list of pairs")

    def _parse_pairs(self, raw_pairs: Sequence[Any]) -> list[ResolvedPair]:
        pairs: list[ResolvedPair] = []
        for raw in raw_pairs:
            try:
                pairs.append(ResolvedPair.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                # New pairs often have no USD price yet.
                logger.debug("Skipping unusable pair: %r", e)
        return pairs

    def _to_record(self, selected: AggregatedPair | None) -> MarketRecord | None:
        if selected is None:
            return None
        pair = selected.reference
        return MarketRecord(
            symbol=normalize_symbol(pair.base_symbol),
            name=pair.base_name,
            price=pair.price_usd,
            price_change_24h=pair.price_usd * pair.price_change_percent_24h / 100,
            price_change_percent_24h=pair.price_change_percent_24h,
            market_cap=pair.market_cap,
            volume_24h=selected.volume_24h_usd,
            high_24h=0.0,
            low_24h=0.0,
            last_updated=self._clock(),
            source=self.name,
            chain=Chain.parse(pair.chain_id),
            address=pair.base_address or None,
            url=pair.venue_url,
        )
