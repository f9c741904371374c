"""Tests for the Telegram notification channel."""

import json

import httpx
import pytest

from token_price_engine.alerter.telegram import TelegramChannel


class TestTelegramChannel:
    """Tests for TelegramChannel.deliver."""

    @pytest.mark.asyncio
    async def test_sends_html_message(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True, "result": {}})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        channel = TelegramChannel("123:abc", client, api_url="https://tg.test/")

        assert await channel.deliver(-1001, "<b>hi</b>") is True

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://tg.test/bot123:abc/sendMessage"
        body = json.loads(request.content)
        assert body["chat_id"] == -1001
        assert body["text"] == "<b>hi</b>"
        assert body["parse_mode"] == "HTML"

    @pytest.mark.asyncio
    async def test_rejected_message(self) -> None:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda r: httpx.Response(400, json={"ok": False, "description": "chat not found"})
            )
        )
        channel = TelegramChannel("123:abc", client)

        assert await channel.deliver(1, "hello") is False

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        channel = TelegramChannel("123:abc", httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        assert await channel.deliver(1, "hello") is False
