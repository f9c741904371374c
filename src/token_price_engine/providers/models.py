"""Data models shared by the market-data sources."""

from __future__ import annotations

import contextlib
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

Clock = Callable[[], datetime]

EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
SOLANA_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def now_utc() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class AddressFamily(str, Enum):
    """Address encodings used by the supported chains."""

    EVM = "evm"
    SOLANA = "solana"


class Chain(str, Enum):
    """Supported chains."""

    ETHEREUM = "ethereum"
    BSC = "bsc"
    POLYGON = "polygon"
    SOLANA = "solana"

    @property
    def address_family(self) -> AddressFamily:
        if self is Chain.SOLANA:
            return AddressFamily.SOLANA
        return AddressFamily.EVM

    @property
    def dexscreener_id(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | Chain | None) -> Chain | None:
        """Parse a user or upstream chain identifier.

        Returns None for empty input and for chains outside the supported set.
        """
        if value is None or isinstance(value, Chain):
            return value
        normalized = value.strip().lower()
        if not normalized:
            return None
        with contextlib.suppress(ValueError):
            return cls(normalized)
        return None


# Order in which chains are scanned when an address arrives without a chain.
CHAIN_SCAN_ORDER: tuple[Chain, ...] = (Chain.ETHEREUM, Chain.BSC, Chain.POLYGON, Chain.SOLANA)


class ReferenceKind(str, Enum):
    """How a user-supplied token reference is interpreted."""

    SYMBOL = "symbol"
    EVM_ADDRESS = "evm_address"
    SOLANA_ADDRESS = "solana_address"

    @property
    def is_address(self) -> bool:
        return self is not ReferenceKind.SYMBOL

    @property
    def address_family(self) -> AddressFamily | None:
        if self is ReferenceKind.EVM_ADDRESS:
            return AddressFamily.EVM
        if self is ReferenceKind.SOLANA_ADDRESS:
            return AddressFamily.SOLANA
        return None


def classify_reference(reference: str) -> ReferenceKind:
    """Classify a token reference as an EVM address, a Solana address or a symbol."""
    value = reference.strip()
    if EVM_ADDRESS_RE.match(value):
        return ReferenceKind.EVM_ADDRESS
    if SOLANA_ADDRESS_RE.match(value):
        return ReferenceKind.SOLANA_ADDRESS
    return ReferenceKind.SYMBOL


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


def normalize_reference(reference: str) -> str:
    """Canonical form of a reference for cache keys.

    Symbols and EVM addresses are case-insensitive and get lowercased. Solana
    addresses are base58, where case is significant, so they are kept as given.
    """
    value = reference.strip()
    if classify_reference(value) is ReferenceKind.SOLANA_ADDRESS:
        return value
    return value.lower()


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, int | float):
        # Upstreams report epoch milliseconds.
        return datetime.fromtimestamp(float(value) / 1000.0, tz=UTC)
    with contextlib.suppress(ValueError, AttributeError):
        return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    return None


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce an upstream numeric field (often a string) to float."""
    if value is None or value == "":
        return default
    return float(value)


@dataclass(frozen=True)
class MarketRecord:
    """A normalized market snapshot for one token."""

    symbol: str
    name: str
    price: float
    price_change_24h: float
    price_change_percent_24h: float
    market_cap: float
    volume_24h: float
    high_24h: float
    low_24h: float
    last_updated: datetime
    source: str
    chain: Chain | None = None
    address: str | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dictionary."""
        return {
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "price_change_24h": self.price_change_24h,
            "price_change_percent_24h": self.price_change_percent_24h,
            "market_cap": self.market_cap,
            "volume_24h": self.volume_24h,
            "high_24h": self.high_24h,
            "low_24h": self.low_24h,
            "last_updated": self.last_updated.isoformat(),
            "source": self.source,
            "chain": self.chain.value if self.chain else None,
            "address": self.address,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MarketRecord:
        """Create a MarketRecord from a dictionary produced by to_dict()."""
        last_updated = _parse_datetime(data.get("last_updated"))
        if last_updated is None:
            raise ValueError("MarketRecord requires last_updated")
        return cls(
            symbol=str(data["symbol"]),
            name=str(data.get("name", data["symbol"])),
            price=float(data["price"]),
            price_change_24h=to_float(data.get("price_change_24h")),
            price_change_percent_24h=to_float(data.get("price_change_percent_24h")),
            market_cap=to_float(data.get("market_cap")),
            volume_24h=to_float(data.get("volume_24h")),
            high_24h=to_float(data.get("high_24h")),
            low_24h=to_float(data.get("low_24h")),
            last_updated=last_updated,
            source=str(data.get("source", "unknown")),
            chain=Chain.parse(data.get("chain")),
            address=data.get("address"),
            url=data.get("url"),
        )


@dataclass(frozen=True)
class TokenInfo:
    """A token search result."""

    symbol: str
    name: str
    source: str
    address: str | None = None
    chain: Chain | None = None


@dataclass(frozen=True)
class ResolvedPair:
    """One DEX trading pair as reported by the pair index."""

    chain_id: str
    pair_address: str
    dex_id: str
    base_address: str
    base_symbol: str
    base_name: str
    price_usd: float
    price_change_percent_24h: float
    liquidity_usd: float
    volume_24h_usd: float
    market_cap: float
    created_at: datetime | None = None
    url: str | None = None

    @property
    def identity(self) -> str:
        """Base-token identity used to group pairs."""
        if self.base_address:
            return normalize_reference(self.base_address)
        return normalize_symbol(self.base_symbol)

    @property
    def venue_url(self) -> str:
        return self.url or f"https://dexscreener.com/{self.chain_id}/{self.pair_address}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResolvedPair:
        """Create a ResolvedPair from a DexScreener pair object.

        Raises:
            KeyError, TypeError, ValueError: If required fields are missing
                or not numeric.
        """
        base = data["baseToken"]
        price = float(data["priceUsd"])
        if price <= 0:
            raise ValueError("priceUsd must be positive")
        volume = data.get("volume") or {}
        change = data.get("priceChange") or {}
        liquidity = data.get("liquidity") or {}
        return cls(
            chain_id=str(data["chainId"]),
            pair_address=str(data["pairAddress"]),
            dex_id=str(data.get("dexId", "")),
            base_address=str(base.get("address") or ""),
            base_symbol=str(base.get("symbol") or ""),
            base_name=str(base.get("name") or base.get("symbol") or ""),
            price_usd=price,
            price_change_percent_24h=to_float(change.get("h24")),
            liquidity_usd=to_float(liquidity.get("usd")),
            volume_24h_usd=to_float(volume.get("h24")),
            market_cap=to_float(data.get("marketCap")) or to_float(data.get("fdv")),
            created_at=_parse_datetime(data.get("pairCreatedAt")),
            url=data.get("url"),
        )
