"""Telegram Bot API notification channel."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.telegram.org"
DEFAULT_TIMEOUT_SECONDS = 10.0


class TelegramChannel:
    """Delivers HTML messages to Telegram chats via sendMessage."""

    def __init__(
        self,
        bot_token: str,
        client: httpx.AsyncClient,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._bot_token = bot_token
        self._client = client
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout_seconds

    async def deliver(self, destination: int | str, message: str) -> bool:
        """Send a message to a chat.

        Returns:
            True if Telegram accepted the message. Failures are logged and
            reported as False; nothing is retried.
        """
        url = f"{self._api_url}/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": destination,
            "text": message,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            response = await self._client.post(url, json=payload, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.error("Telegram delivery to %s failed: %s", destination, type(e).__name__)
            return False

        if response.status_code != 200:
            logger.error(
                "Telegram API rejected message to %s: HTTP %d %s",
                destination,
                response.status_code,
                response.text[:200],
            )
            return False
        return True
