"""SQLAlchemy models for persistent storage.

This module defines the database schema for chat groups, their
watchlists and price alerts, and the durable tier of the price cache.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class GroupModel(Base):
    """A chat group that owns alerts and a watchlist."""

    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    default_token: Mapped[str | None] = mapped_column(String(128), nullable=True)
    default_chain: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )


class WatchlistItemModel(Base):
    """A token a group follows; warmed into the cache periodically."""

    __tablename__ = "watchlist"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    token_ref: Mapped[str] = mapped_column(String(128), nullable=False)
    chain: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("idx_watchlist_group", "group_id"),)


class AlertModel(Base):
    """A price-threshold alert owned by a group."""

    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    token_ref: Mapped[str] = mapped_column(String(128), nullable=False)
    chain: Mapped[str | None] = mapped_column(String(16), nullable=True)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    target_price: Mapped[float] = mapped_column(Float, nullable=False)
    cooldown_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    last_triggered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        CheckConstraint("direction IN ('above', 'below')", name="ck_alerts_direction"),
        CheckConstraint("target_price > 0", name="ck_alerts_target_price"),
        Index("idx_alerts_active", "is_active"),
        Index("idx_alerts_group", "group_id"),
    )


class TokenCacheModel(Base):
    """Durable tier of the price cache.

    ``chain`` is an empty string for lookups without a chain so that the
    unique key also covers them.
    """

    __tablename__ = "token_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_ref: Mapped[str] = mapped_column(String(128), nullable=False)
    chain: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    data_json: Mapped[str] = mapped_column(Text, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ttl_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("token_ref", "chain", name="uq_token_cache_ref_chain"),
        Index("idx_token_cache_expires_at", "expires_at"),
    )
