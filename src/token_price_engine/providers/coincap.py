"""CoinCap asset API adapter."""

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

SYMBOL_TO_ID: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "binance-coin",
    "SOL": "solana",
    "XRP": "xrp",
    "ADA": "cardano",
    "DOGE": "dogecoin",
    "DOT": "polkadot",
    "MATIC": "polygon",
    "SHIB": "shiba-inu",
    "LTC": "litecoin",
    "AVAX": "avalanche",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "ATOM": "cosmos",
    "XLM": "stellar",
    "ETC": "ethereum-classic",
    "FIL": "filecoin",
    "USDT": "tether",
    "USDC": "usd-coin",
}


class CoinCapAdapter(SourceAdapter):
    """Symbol lookups against the CoinCap /assets endpoints."""

    name = "coincap"
    probe_path = "/assets/bitcoin"

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _fetch_price(self, reference: str, chain: Chain | None) -> MarketRecord | None:
        symbol = normalize_symbol(reference)
        asset_id = SYMBOL_TO_ID.get(symbol)
        if asset_id is not None:
            body = await self._get_json(f"/assets/{asset_id}", allow_not_found=True)
            if body is not None and body.get("data"):
                return self._parse_asset(body["data"], body.get("timestamp"))

        body = await self._get_json("/assets", params={"search": symbol, "limit": 10})
        for asset in body.get("data") or []:
            if normalize_symbol(str(asset.get("symbol", ""))) == symbol:
                return self._parse_asset(asset, body.get("timestamp"))
        return None

    async def _search(self, query: str) -> list[TokenInfo]:
        body = await self._get_json("/assets", params={"search": query.strip(), "limit": 10})
        return [
            TokenInfo(
                symbol=normalize_symbol(str(asset["symbol"])),
                name=str(asset.get("name", asset["symbol"])),
                source=self.name,
            )
            for asset in body.get("data") or []
        ]

    def _parse_asset(self, asset: dict[str, Any], timestamp: Any) -> MarketRecord | None:
        price = to_float(asset.get("priceUsd"))
        if price <= 0:
            return None
        change_pct = to_float(asset.get("changePercent24Hr"))
        if timestamp is not None:
            last_updated = datetime.fromtimestamp(float(timestamp) / 1000.0, tz=UTC)
        else:
            last_updated = self._clock()
        return MarketRecord(
            symbol=normalize_symbol(str(asset["symbol"])),
            name=str(asset.get("name") or asset["symbol"]),
            price=price,
            # CoinCap reports only the percentage; derive the absolute move.
            price_change_24h=price * change_pct / 100,
            price_change_percent_24h=change_pct,
            market_cap=to_float(asset.get("marketCapUsd")),
            volume_24h=to_float(asset.get("volumeUsd24Hr")),
            high_24h=0.0,
            low_24h=0.0,
            last_updated=last_updated,
            source=self.name,
            url=f"https://coincap.io/assets/{asset['id']}",
        )
