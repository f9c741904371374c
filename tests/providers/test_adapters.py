"""Tests for the CoinGecko, CoinCap and Binance adapters."""

from datetime import UTC, datetime

import httpx
import pytest

from token_price_engine.providers.binance import BinanceAdapter
from token_price_engine.providers.coincap import CoinCapAdapter
from token_price_engine.providers.coingecko import CoinGeckoAdapter

COINGECKO_ETH = {
    "id": "ethereum",
    "symbol": "eth",
    "name": "Ethereum",
    "market_data": {
        "current_price": {"usd": 2500.5},
        "price_change_24h": 45.2,
        "price_change_percentage_24h": 1.84,
        "market_cap": {"usd": 300_000_000_000},
        "total_volume": {"usd": 12_000_000_000},
        "high_24h": {"usd": 2550.0},
        "low_24h": {"usd": 2430.0},
        "last_updated": "2026-10-18T11:59:00.000Z",
    },
}


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestCoinGecko:
    """Tests for CoinGeckoAdapter."""

    @pytest.mark.asyncio
    async def test_known_symbol(self, clock) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=COINGECKO_ETH)

        adapter = CoinGeckoAdapter(client_for(handler), base_url="https://cg.test/api/v3", clock=clock)

        record = await adapter.get_price("eth")

        assert record is not None
        assert record.symbol == "ETH"
        assert record.name == "Ethereum"
        assert record.price == 2500.5
        assert record.price_change_24h == 45.2
        assert record.price_change_percent_24h == 1.84
        assert record.high_24h == 2550.0
        assert record.last_updated == datetime(2026, 10, 18, 11, 59, tzinfo=UTC)
        assert record.url == "https://www.coingecko.com/en/coins/ethereum"
        assert len(seen) == 1
        assert seen[0].url.path == "/api/v3/coins/ethereum"
        assert seen[0].url.params["tickers"] == "false"

    @pytest.mark.asyncio
    async def test_unknown_symbol_searches_first(self, clock) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/search"):
                return httpx.Response(
                    200,
                    json={"coins": [{"id": "other", "symbol": "ETHX"}, {"id": "ethereum", "symbol": "eth"}]},
                )
            assert request.url.path.endswith("/coins/ethereum")
            return httpx.Response(200, json=COINGECKO_ETH)

        adapter = CoinGeckoAdapter(client_for(handler), base_url="https://cg.test", clock=clock)

        record = await adapter.get_price("WETHISH")

        # The search returned no exact match for WETHISH.
        assert record is None

    @pytest.mark.asyncio
    async def test_search_match_resolves_coin(self, clock) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/search"):
                return httpx.Response(200, json={"coins": [{"id": "ethereum", "symbol": "zzz"}]})
            return httpx.Response(200, json=COINGECKO_ETH)

        adapter = CoinGeckoAdapter(client_for(handler), base_url="https://cg.test", clock=clock)

        record = await adapter.get_price("ZZZ")

        assert record is not None
        assert record.price == 2500.5

    @pytest.mark.asyncio
    async def test_api_key_header(self, clock) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"gecko_says": "(V3) To the Moon!"})

        adapter = CoinGeckoAdapter(
            client_for(handler), base_url="https://cg.test", api_key="secret", clock=clock
        )

        assert await adapter.probe() is True
        assert seen[0].headers["x-cg-pro-api-key"] == "secret"
        assert seen[0].url.path == "/ping"

    @pytest.mark.asyncio
    async def test_not_found_keeps_source_up(self, clock) -> None:
        adapter = CoinGeckoAdapter(
            client_for(lambda r: httpx.Response(404, json={"error": "coin not found"})),
            base_url="https://cg.test",
            clock=clock,
        )

        assert await adapter.get_price("BTC") is None
        assert adapter.is_healthy() is True

    @pytest.mark.asyncio
    async def test_rate_limited_marks_down(self, clock) -> None:
        adapter = CoinGeckoAdapter(
            client_for(lambda r: httpx.Response(429)), base_url="https://cg.test", clock=clock
        )

        assert await adapter.get_price("BTC") is None
        assert adapter.is_healthy() is False
        assert adapter.health.state.backoff_seconds == 1.0

    @pytest.mark.asyncio
    async def test_invalid_json_marks_down(self, clock) -> None:
        adapter = CoinGeckoAdapter(
            client_for(lambda r: httpx.Response(200, content=b"<html>")),
            base_url="https://cg.test",
            clock=clock,
        )

        assert await adapter.get_price("BTC") is None
        assert adapter.is_healthy() is False

    @pytest.mark.asyncio
    async def test_missing_market_data_marks_down(self, clock) -> None:
        adapter = CoinGeckoAdapter(
            client_for(lambda r: httpx.Response(200, json={"id": "bitcoin", "symbol": "btc"})),
            base_url="https://cg.test",
            clock=clock,
        )

        assert await adapter.get_price("BTC") is None
        assert adapter.is_healthy() is False

    @pytest.mark.asyncio
    async def test_repeated_malformed_responses_grow_backoff(self, clock) -> None:
        """A decodable but unusable body is a failure, so backoff doubles."""
        adapter = CoinGeckoAdapter(
            client_for(lambda r: httpx.Response(200, json={"id": "bitcoin", "symbol": "btc"})),
            base_url="https://cg.test",
            clock=clock,
        )
        observed = []
        for _ in range(4):
            assert await adapter.get_price("BTC") is None
            state = adapter.health.state
            observed.append((state.backoff_seconds, state.consecutive_failures))
            clock.advance(state.backoff_seconds)

        assert observed == [(1.0, 1), (2.0, 2), (4.0, 3), (8.0, 4)]

    @pytest.mark.asyncio
    async def test_success_after_malformed_restores(self, clock) -> None:
        bodies = [{"id": "bitcoin"}, COINGECKO_ETH]
        adapter = CoinGeckoAdapter(
            client_for(lambda r: httpx.Response(200, json=bodies.pop(0))),
            base_url="https://cg.test",
            clock=clock,
        )

        assert await adapter.get_price("ETH") is None
        clock.advance(1)
        assert await adapter.get_price("ETH") is not None
        assert adapter.health.state.consecutive_failures == 0
        assert adapter.health.state.is_down is False

    @pytest.mark.asyncio
    async def test_timeout_marks_down(self, clock) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        adapter = CoinGeckoAdapter(client_for(handler), base_url="https://cg.test", clock=clock)

        assert await adapter.get_price("BTC") is None
        assert await adapter.probe() is False
        assert adapter.health.state.consecutive_failures == 2

    @pytest.mark.asyncio
    async def test_search(self, clock) -> None:
        body = {"coins": [{"id": "pepe", "symbol": "pepe", "name": "Pepe"}]}
        adapter = CoinGeckoAdapter(
            client_for(lambda r: httpx.Response(200, json=body)), base_url="https://cg.test", clock=clock
        )

        results = await adapter.search_token("pepe")

        assert [(r.symbol, r.name, r.source) for r in results] == [("PEPE", "Pepe", "coingecko")]


class TestCoinCap:
    """Tests for CoinCapAdapter."""

    @pytest.mark.asyncio
    async def test_known_symbol(self, clock) -> None:
        body = {
            "data": {
                "id": "binance-coin",
                "symbol": "BNB",
                "name": "BNB",
                "priceUsd": "600.00",
                "changePercent24Hr": "-2.5",
                "marketCapUsd": "90000000000",
                "volumeUsd24Hr": "1500000000",
            },
            "timestamp": 1_792_324_800_000,
        }
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=body)

        adapter = CoinCapAdapter(client_for(handler), base_url="https://cc.test/v2", clock=clock)

        record = await adapter.get_price("bnb")

        assert record is not None
        assert seen[0].url.path == "/v2/assets/binance-coin"
        assert record.price == 600.0
        assert record.price_change_percent_24h == -2.5
        assert record.price_change_24h == pytest.approx(-15.0)
        assert record.high_24h == 0.0
        assert record.low_24h == 0.0
        assert record.market_cap == 90_000_000_000
        assert record.last_updated == datetime.fromtimestamp(1_792_324_800, tz=UTC)

    @pytest.mark.asyncio
    async def test_unmapped_symbol_uses_search(self, clock) -> None:
        body = {
            "data": [
                {"id": "pepe-classic", "symbol": "PEPEC", "priceUsd": "1"},
                {"id": "pepe", "symbol": "PEPE", "name": "Pepe", "priceUsd": "0.00001"},
            ],
            "timestamp": None,
        }
        adapter = CoinCapAdapter(
            client_for(lambda r: httpx.Response(200, json=body)), base_url="https://cc.test", clock=clock
        )

        record = await adapter.get_price("PEPE")

        assert record is not None
        assert record.price == 0.00001
        assert record.last_updated == clock()

    @pytest.mark.asyncio
    async def test_bearer_token(self, clock) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": []})

        adapter = CoinCapAdapter(client_for(handler), base_url="https://cc.test", api_key="k", clock=clock)

        assert await adapter.get_price("NOPE") is None
        assert seen[0].headers["Authorization"] == "Bearer k"


class TestBinance:
    """Tests for BinanceAdapter."""

    @pytest.mark.asyncio
    async def test_ticker(self, clock) -> None:
        body = {
            "symbol": "BTCUSDT",
            "priceChange": "1200.5",
            "priceChangePercent": "1.9",
            "lastPrice": "64000.10",
            "highPrice": "65000",
            "lowPrice": "62000",
            "quoteVolume": "2500000000",
            "closeTime": 1_792_324_800_000,
        }
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=body)

        adapter = BinanceAdapter(client_for(handler), base_url="https://bn.test/api/v3", clock=clock)

        record = await adapter.get_price("btc")

        assert record is not None
        assert seen[0].url.params["symbol"] == "BTCUSDT"
        assert record.price == 64000.10
        assert record.price_change_24h == 1200.5
        assert record.market_cap == 0.0
        assert record.volume_24h == 2_500_000_000
        assert record.source == "binance"

    @pytest.mark.asyncio
    async def test_unsupported_symbol_skips_network(self, clock) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(500)

        adapter = BinanceAdapter(client_for(handler), base_url="https://bn.test", clock=clock)

        assert await adapter.get_price("SOMEMEME") is None
        assert seen == []
        assert adapter.is_healthy() is True

    @pytest.mark.asyncio
    async def test_search_is_local(self, clock) -> None:
        adapter = BinanceAdapter(
            client_for(lambda r: httpx.Response(500)), base_url="https://bn.test", clock=clock
        )

        results = await adapter.search_token("op")

        assert [r.symbol for r in results] == ["OP"]

    @pytest.mark.asyncio
    async def test_requests_without_network_leave_health_alone(self, clock) -> None:
        """Local answers are not evidence that a down exchange recovered."""
        adapter = BinanceAdapter(
            client_for(lambda r: httpx.Response(500)), base_url="https://bn.test", clock=clock
        )
        adapter.health.record_failure("HTTP 503")

        assert adapter.supports("SOMEMEME") is False
        assert await adapter.get_price("SOMEMEME") is None
        assert await adapter.search_token("op") != []
        assert adapter.health.state.is_down is True
