"""Common plumbing for market-data source adapters.

Adapters share one httpx.AsyncClient, apply an explicit timeout to every
request and report each outcome to their HealthTracker. Errors are raised
inside the adapter and converted to ``None`` (or an empty list) at the
public boundary, so callers never see an exception from a source.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from token_price_engine.providers.health import HealthTracker
from token_price_engine.providers.models import Chain, Clock, MarketRecord, TokenInfo, now_utc

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_PROBE_TIMEOUT_SECONDS = 5.0


class ProviderError(Exception):
    """Base exception for source adapter errors."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class UpstreamUnavailableError(ProviderError):
    """Network error, timeout or non-2xx response from a source."""

    def __init__(self, source: str, message: str, status_code: int | None = None) -> None:
        super().__init__(source, message)
        self.status_code = status_code


class MalformedUpstreamResponseError(ProviderError):
    """A source answered with a body that could not be decoded or normalized."""


class SourceAdapter(ABC):
    """Base class for a single upstream market-data source.

    Subclasses implement ``_fetch_price`` and ``_search`` using
    ``_get_json``. They return None for a definitive "not found" and raise
    for everything else. Health success is recorded by the public methods
    after parsing, never by ``_get_json``.
    """

    name: str = "source"
    probe_path: str = "/"
    remote_search: bool = True

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        health: HealthTracker | None = None,
        clock: Clock = now_utc,
    ) -> None:
        """Initialize the adapter.

        Args:
            client: Shared HTTP client.
            base_url: Source API root, without trailing slash.
            api_key: Optional credential sent with every request.
            timeout_seconds: Timeout for data requests.
            probe_timeout_seconds: Timeout for health probes.
            health: Health tracker; a default one is created if omitted.
            clock: Time source for record timestamps and health transitions.
        """
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._probe_timeout = probe_timeout_seconds
        self._clock = clock
        self.health = health or HealthTracker(self.name, clock=clock)

    def is_healthy(self) -> bool:
        return self.health.is_healthy()

    def allow_request(self) -> bool:
        """Health gate for callers about to send a request; claims the probe slot."""
        return self.health.allow_request()

    def supports(self, reference: str) -> bool:
        """Whether the source can answer for this reference at all."""
        return True

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def get_price(self, reference: str, chain: Chain | None = None) -> MarketRecord | None:
        """Fetch a market record for a symbol or address.

        Never raises: failures are logged, fed to the health tracker and
        reported as None. Success is recorded only once the response has
        been parsed, so a malformed body counts as a failure.
        """
        if not self.supports(reference):
            return None
        try:
            record = await self._fetch_price(reference, chain)
        except ProviderError as e:
            logger.warning("%s price lookup failed for %s: %s", self.name, reference, e)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            self.health.record_failure(f"malformed response: {e!r}")
            logger.warning("%s returned an unexpected shape for %s: %r", self.name, reference, e)
        else:
            self.health.record_success()
            return record
        return None

    async def search_token(self, query: str) -> list[TokenInfo]:
        """Search the source for tokens matching a query. Never raises."""
        try:
            results = await self._search(query)
        except ProviderError as e:
            logger.warning("%s search failed for %s: %s", self.name, query, e)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            self.health.record_failure(f"malformed response: {e!r}")
            logger.warning("%s returned an unexpected search shape for %s: %r", self.name, query, e)
        else:
            if self.remote_search:
                self.health.record_success()
            return results
        return []

    async def probe(self) -> bool:
        """Send a lightweight request with the short probe timeout."""
        try:
            await self._get_json(self.probe_path, timeout=self._probe_timeout)
        except ProviderError as e:
            logger.debug("%s probe failed: %s", self.name, e)
            return False
        self.health.record_success()
        return True

    @abstractmethod
    async def _fetch_price(self, reference: str, chain: Chain | None) -> MarketRecord | None:
        """Source-specific price lookup."""

    @abstractmethod
    async def _search(self, query: str) -> list[TokenInfo]:
        """Source-specific token search."""

    async def _get_json(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        """GET a JSON document from the source.

        Args:
            path: Path relative to the base URL.
            params: Query parameters.
            timeout: Overrides the data timeout.
            allow_not_found: Return None on 404 instead of raising.

        Returns:
            Decoded JSON body, or None for an allowed 404.

        Raises:
            UpstreamUnavailableError: Network error, timeout or non-2xx status.
            MalformedUpstreamResponseError: Body is not valid JSON.
        """
        url = f"{self._base_url}{path}"
        started = time.monotonic()
        try:
            response = await self._client.get(
                url,
                params=params,
                headers=self._headers(),
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException as e:
            self.health.record_failure(e)
            raise UpstreamUnavailableError(self.name, f"timeout requesting {path}") from e
        except httpx.HTTPError as e:
            self.health.record_failure(e)
            raise UpstreamUnavailableError(self.name, f"request to {path} failed: {e}") from e

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.debug("%s GET %s -> %d in %.0fms", self.name, path, response.status_code, elapsed_ms)

        if response.status_code == 404 and allow_not_found:
            # The source answered; the caller records success.
            return None
        if response.is_error:
            self.health.record_failure(f"HTTP {response.status_code}")
            raise UpstreamUnavailableError(
                self.name,
                f"HTTP {response.status_code} for {path}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            self.health.record_failure(f"invalid JSON: {e}")
            raise MalformedUpstreamResponseError(self.name, f"invalid JSON from {path}") from e
        return data
