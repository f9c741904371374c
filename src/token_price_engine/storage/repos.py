"""Repository pattern implementations for data access.

This module provides data access abstractions for chat groups, watchlists,
price alerts and the durable price cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from token_price_engine.providers.models import ensure_utc
from token_price_engine.storage.models import (
    AlertModel,
    GroupModel,
    TokenCacheModel,
    WatchlistItemModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MINUTES = 60


class AlertDirection(str, Enum):
    """Which side of the target fires an alert."""

    ABOVE = "above"
    BELOW = "below"


def _normalize_chain(chain: str | None) -> str | None:
    if chain is None:
        return None
    chain = chain.strip().lower()
    return chain or None


@dataclass
class GroupDTO:
    """Data transfer object for chat groups."""

    id: int
    chat_id: int
    title: str | None = None
    default_token: str | None = None
    default_chain: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: GroupModel) -> GroupDTO:
        """Create DTO from SQLAlchemy model."""
        return cls(
            id=model.id,
            chat_id=model.chat_id,
            title=model.title,
            default_token=model.default_token,
            default_chain=model.default_chain,
            created_at=model.created_at,
        )


@dataclass
class WatchlistItemDTO:
    """Data transfer object for watchlist entries."""

    id: int
    group_id: int
    token_ref: str
    chain: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: WatchlistItemModel) -> WatchlistItemDTO:
        """Create DTO from SQLAlchemy model."""
        return cls(
            id=model.id,
            group_id=model.group_id,
            token_ref=model.token_ref,
            chain=model.chain,
            created_at=model.created_at,
        )


@dataclass
class AlertDTO:
    """Data transfer object for price alerts.

    ``chat_id`` is the destination of the owning group.
    """

    id: int
    group_id: int
    chat_id: int
    token_ref: str
    direction: AlertDirection
    target_price: float
    chain: str | None = None
    cooldown_minutes: int = DEFAULT_COOLDOWN_MINUTES
    last_triggered_at: datetime | None = None
    is_active: bool = True
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: AlertModel, chat_id: int) -> AlertDTO:
        """Create DTO from SQLAlchemy model."""
        return cls(
            id=model.id,
            group_id=model.group_id,
            chat_id=chat_id,
            token_ref=model.token_ref,
            direction=AlertDirection(model.direction),
            target_price=float(model.target_price),
            chain=model.chain,
            cooldown_minutes=model.cooldown_minutes,
            last_triggered_at=(
                ensure_utc(model.last_triggered_at) if model.last_triggered_at else None
            ),
            is_active=model.is_active,
            created_at=model.created_at,
        )


@dataclass
class TokenCacheDTO:
    """Data transfer object for durable cache rows."""

    token_ref: str
    chain: str
    data_json: str
    fetched_at: datetime
    ttl_seconds: int
    expires_at: datetime

    @classmethod
    def from_model(cls, model: TokenCacheModel) -> TokenCacheDTO:
        """Create DTO from SQLAlchemy model."""
        return cls(
            token_ref=model.token_ref,
            chain=model.chain,
            data_json=model.data_json,
            fetched_at=ensure_utc(model.fetched_at),
            ttl_seconds=model.ttl_seconds,
            expires_at=ensure_utc(model.expires_at),
        )


class GroupRepository:
    """Repository for chat groups."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_chat_id(self, chat_id: int) -> GroupDTO | None:
        result = await self.session.execute(select(GroupModel).where(GroupModel.chat_id == chat_id))
        model = result.scalar_one_or_none()
        return GroupDTO.from_model(model) if model else None

    async def get_or_create(self, chat_id: int, title: str | None = None) -> GroupDTO:
        """Return the group for a chat, creating it on first contact."""
        existing = await self.get_by_chat_id(chat_id)
        if existing is not None:
            return existing
        model = GroupModel(chat_id=chat_id, title=title)
        self.session.add(model)
        await self.session.flush()
        return GroupDTO.from_model(model)


class WatchlistRepository:
    """Repository for group watchlists."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _match(self, group_id: int, token_ref: str, chain: str | None) -> Any:
        chain_clause = (
            WatchlistItemModel.chain.is_(None) if chain is None else WatchlistItemModel.chain == chain
        )
        return (
            (WatchlistItemModel.group_id == group_id)
            & (WatchlistItemModel.token_ref == token_ref)
            & chain_clause
        )

    async def add(self, group_id: int, token_ref: str, chain: str | None = None) -> bool:
        """Add a token to a group's watchlist.

        Returns:
            False if the token was already watched.
        """
        token_ref = token_ref.strip()
        chain = _normalize_chain(chain)
        result = await self.session.execute(
            select(WatchlistItemModel.id).where(self._match(group_id, token_ref, chain))
        )
        if result.first() is not None:
            return False
        self.session.add(WatchlistItemModel(group_id=group_id, token_ref=token_ref, chain=chain))
        await self.session.flush()
        return True

    async def list_all(self) -> list[WatchlistItemDTO]:
        result = await self.session.execute(select(WatchlistItemModel).order_by(WatchlistItemModel.id))
        return [WatchlistItemDTO.from_model(m) for m in result.scalars().all()]


class AlertRepository:
    """Repository for price alerts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        *,
        group_id: int,
        token_ref: str,
        direction: AlertDirection | str,
        target_price: float,
        chain: str | None = None,
        cooldown_minutes: int = DEFAULT_COOLDOWN_MINUTES,
    ) -> AlertDTO:
        """Create an active alert.

        Raises:
            ValueError: If the target price or cooldown is not positive, the
                direction is unknown, or the group does not exist.
        """
        if target_price <= 0:
            raise ValueError("target_price must be positive")
        if cooldown_minutes < 0:
            raise ValueError("cooldown_minutes must not be negative")
        direction = AlertDirection(direction)

        group = await self.session.get(GroupModel, group_id)
        if group is None:
            raise ValueError(f"Unknown group {group_id}")

        model = AlertModel(
            group_id=group_id,
            token_ref=token_ref.strip(),
            chain=_normalize_chain(chain),
            direction=direction.value,
            target_price=float(target_price),
            cooldown_minutes=cooldown_minutes,
            is_active=True,
        )
        self.session.add(model)
        await self.session.flush()
        return AlertDTO.from_model(model, chat_id=group.chat_id)

    async def get_all_active(self) -> list[AlertDTO]:
        """All active alerts joined with their group's chat id."""
        result = await self.session.execute(
            select(AlertModel, GroupModel.chat_id)
            .join(GroupModel, GroupModel.id == AlertModel.group_id)
            .where(AlertModel.is_active.is_(True))
            .order_by(AlertModel.id)
        )
        return [AlertDTO.from_model(model, chat_id=chat_id) for model, chat_id in result.all()]

    async def mark_triggered(self, alert_id: int, triggered_at: datetime | None = None) -> None:
        await self.session.execute(
            update(AlertModel)
            .where(AlertModel.id == alert_id)
            .values(last_triggered_at=triggered_at or datetime.now(UTC))
        )


class TokenCacheRepository:
    """Repository for the durable price cache table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, token_ref: str, chain: str) -> TokenCacheDTO | None:
        result = await self.session.execute(
            select(TokenCacheModel).where(
                TokenCacheModel.token_ref == token_ref,
                TokenCacheModel.chain == chain,
            )
        )
        model = result.scalar_one_or_none()
        return TokenCacheDTO.from_model(model) if model else None

    async def upsert(self, dto: TokenCacheDTO) -> None:
        """Insert or replace the row for (token_ref, chain)."""
        values = {
            "token_ref": dto.token_ref,
            "chain": dto.chain,
            "data_json": dto.data_json,
            "fetched_at": dto.fetched_at,
            "ttl_seconds": dto.ttl_seconds,
            "expires_at": dto.expires_at,
        }
        if self.session.get_bind().dialect.name == "postgresql":
            stmt = pg_insert(TokenCacheModel).values(**values)
        else:
            stmt = sqlite_insert(TokenCacheModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["token_ref", "chain"],
            set_={
                "data_json": stmt.excluded.data_json,
                "fetched_at": stmt.excluded.fetched_at,
                "ttl_seconds": stmt.excluded.ttl_seconds,
                "expires_at": stmt.excluded.expires_at,
            },
        )
        await self.session.execute(stmt)

    async def delete(self, token_ref: str, chain: str) -> None:
        await self.session.execute(
            delete(TokenCacheModel).where(
                TokenCacheModel.token_ref == token_ref,
                TokenCacheModel.chain == chain,
            )
        )

    async def delete_expired(self, now: datetime) -> int:
        result = await self.session.execute(
            delete(TokenCacheModel).where(TokenCacheModel.expires_at < now)
        )
        return result.rowcount or 0
