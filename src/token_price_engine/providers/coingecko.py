"""CoinGecko aggregator adapter."""

from __future__ import annotations

import logging
from typing import Any

from token_price_engine.providers.base import SourceAdapter
from token_price_engine.providers.models import (
    Chain,
    MarketRecord,
    TokenInfo,
    normalize_symbol,
    to_float,
)

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-cg-pro-api-key"

# Common tickers whose coin id cannot be derived from the symbol.
SYMBOL_TO_ID: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "binancecoin",
    "SOL": "solana",
    "XRP": "ripple",
    "ADA": "cardano",
    "DOGE": "dogecoin",
    "DOT": "polkadot",
    "MATIC": "matic-network",
    "POL": "polygon-ecosystem-token",
    "SHIB": "shiba-inu",
    "LTC": "litecoin",
    "AVAX": "avalanche-2",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "ATOM": "cosmos",
    "XLM": "stellar",
    "ETC": "ethereum-classic",
    "FIL": "filecoin",
    "APE": "apecoin",
    "PEPE": "pepe",
    "ARB": "arbitrum",
    "OP": "optimism",
    "NEAR": "near",
    "APT": "aptos",
    "SUI": "sui",
    "INJ": "injective-protocol",
    "TON": "the-open-network",
    "TRX": "tron",
    "USDT": "tether",
    "USDC": "usd-coin",
    "DAI": "dai",
    "WBTC": "wrapped-bitcoin",
    "AAVE": "aave",
    "MKR": "maker",
    "CRV": "curve-dao-token",
    "BONK": "bonk",
    "WIF": "dogwifcoin",
    "JUP": "jupiter-exchange-solana",
}


class CoinGeckoAdapter(SourceAdapter):
    """Symbol lookups against the CoinGecko coin endpoints."""

    name = "coingecko"
    probe_path = "/ping"

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self._api_key:
            headers[API_KEY_HEADER] = self._api_key
        return headers

    async def _fetch_price(self, reference: str, chain: Chain | None) -> MarketRecord | None:
        symbol = normalize_symbol(reference)
        coin_id = SYMBOL_TO_ID.get(symbol) or await self._lookup_coin_id(symbol)
        if coin_id is None:
            return None

        data = await self._get_json(
            f"/coins/{coin_id}",
            params={
                "localization": "false",
                "tickers": "false",
                "community_data": "false",
                "developer_data": "false",
            },
            allow_not_found=True,
        )
        if data is None:
            return None
        return self._parse_coin(data)

    async def _lookup_coin_id(self, symbol: str) -> str | None:
        data = await self._get_json("/search", params={"query": symbol})
        for coin in data.get("coins", []):
            if normalize_symbol(str(coin.get("symbol", ""))) == symbol:
                return str(coin["id"])
        return None

    async def _search(self, query: str) -> list[TokenInfo]:
        data = await self._get_json("/search", params={"query": query.strip()})
        return [
            TokenInfo(
                symbol=normalize_symbol(str(coin["symbol"])),
                name=str(coin.get("name", coin["symbol"])),
                source=self.name,
            )
            for coin in data.get("coins", [])[:10]
        ]

    def _parse_coin(self, data: dict[str, Any]) -> MarketRecord | None:
        market = data["market_data"]
        price = to_float(market["current_price"].get("usd"))
        if price <= 0:
            return None
        last_updated = market.get("last_updated") or data.get("last_updated")
        return MarketRecord.from_dict(
            {
                "symbol": normalize_symbol(str(data["symbol"])),
                "name": data.get("name") or data["symbol"],
                "price": price,
                "price_change_24h": market.get("price_change_24h"),
                "price_change_percent_24h": market.get("price_change_percentage_24h"),
                "market_cap": (market.get("market_cap") or {}).get("usd"),
                "volume_24h": (market.get("total_volume") or {}).get("usd"),
                "high_24h": (market.get("high_24h") or {}).get("usd"),
                "low_24h": (market.get("low_24h") or {}).get("usd"),
                "last_updated": last_updated or self._clock().isoformat(),
                "source": self.name,
                "url": f"https://www.coingecko.com/en/coins/{data['id']}",
            }
        )
