"""Binance spot exchange adapter.

Only USDT-quoted majors are looked up; anything else is reported as not
found without a network call.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from token_price_engine.providers.base import SourceAdapter
from token_price_engine.providers.models import (
    Chain,
    MarketRecord,
    TokenInfo,
    normalize_symbol,
    to_float,
)

QUOTE_ASSET = "USDT"

SUPPORTED_SYMBOLS: frozenset[str] = frozenset(
    {
        "BTC", "ETH", "BNB", "SOL", "XRP", "ADA", "DOGE", "DOT", "MATIC", "SHIB",
        "LTC", "AVAX", "LINK", "UNI", "ATOM", "XLM", "ETC", "FIL", "APE", "PEPE",
        "ARB", "OP", "NEAR", "APT", "SUI", "INJ", "FET", "RNDR", "GRT", "IMX",
        "WLD", "SEI", "TIA", "JUP", "STX", "RUNE", "MKR", "AAVE", "SNX", "CRV",
    }
)  # fmt: skip


class BinanceAdapter(SourceAdapter):
    """24h ticker lookups against the Binance spot API."""

    name = "binance"
    probe_path = "/ping"
    # Search runs against SUPPORTED_SYMBOLS without a request.
    remote_search = False

    def supports(self, reference: str) -> bool:
        return normalize_symbol(reference) in SUPPORTED_SYMBOLS

    async def _fetch_price(self, reference: str, chain: Chain | None) -> MarketRecord | None:
        symbol = normalize_symbol(reference)
        data = await self._get_json(
            "/ticker/24hr",
            params={"symbol": f"{symbol}{QUOTE_ASSET}"},
            allow_not_found=True,
        )
        if data is None:
            return None
        return self._parse_ticker(symbol, data)

    async def _search(self, query: str) -> list[TokenInfo]:
        needle = normalize_symbol(query)
        return [
            TokenInfo(symbol=symbol, name=symbol, source=self.name)
            for symbol in sorted(SUPPORTED_SYMBOLS)
            if needle and needle in symbol
        ]

    def _parse_ticker(self, symbol: str, data: dict[str, Any]) -> MarketRecord | None:
        price = to_float(data["lastPrice"])
        if price <= 0:
            return None
        close_time = data.get("closeTime")
        if close_time is not None:
            last_updated = datetime.fromtimestamp(float(close_time) / 1000.0, tz=UTC)
        else:
            last_updated = self._clock()
        return MarketRecord(
            symbol=symbol,
            name=symbol,
            price=price,
            price_change_24h=to_float(data.get("priceChange")),
            price_change_percent_24h=to_float(data.get("priceChangePercent")),
            # The exchange does not report market capitalization.
            market_cap=0.0,
            volume_24h=to_float(data.get("quoteVolume")),
            high_24h=to_float(data.get("highPrice")),
            low_24h=to_float(data.get("lowPrice")),
            last_updated=last_updated,
            source=self.name,
            url=f"https://www.binance.com/en/trade/{symbol}_{QUOTE_ASSET}",
        )
