"""Async engine and session lifecycle for the price engine's database.

PostgreSQL runs through asyncpg and SQLite through aiosqlite. SQLite
connections get ``PRAGMA foreign_keys=ON`` so deleting a group cascades to
its alerts and watchlist as it does on PostgreSQL.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from token_price_engine.storage.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

_SYNC_POSTGRES_PREFIX = "postgresql://"
_ASYNC_POSTGRES_PREFIX = "postgresql+asyncpg://"


def to_async_url(database_url: str) -> str:
    """Map a plain ``postgresql://`` URL onto the asyncpg driver."""
    if database_url.startswith(_SYNC_POSTGRES_PREFIX):
        logger.warning("DATABASE_URL has no async driver; using %s", _ASYNC_POSTGRES_PREFIX)
        return _ASYNC_POSTGRES_PREFIX + database_url[len(_SYNC_POSTGRES_PREFIX) :]
    return database_url


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseManager:
    """Owns the async engine and hands out transactional sessions.

    The engine is created lazily on first use so that constructing the
    manager never touches the database.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ) -> None:
        """Initialize the manager.

        Args:
            database_url: PostgreSQL or sqlite+aiosqlite URL.
            pool_size: Pooled connections kept open (PostgreSQL only).
            max_overflow: Extra connections allowed under load (PostgreSQL only).
            echo: Log every SQL statement.
        """
        self.database_url = to_async_url(database_url)
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo

        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            options: dict[str, Any] = {"echo": self._echo}
            if not self.is_sqlite:
                options.update(
                    pool_size=self._pool_size,
                    max_overflow=self._max_overflow,
                    pool_pre_ping=True,
                )
            self._engine = create_async_engine(self.database_url, **options)
            if self.is_sqlite:
                event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return self._engine

    @asynccontextmanager
    async def get_async_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session that commits on success and rolls back on error."""
        if self._sessions is None:
            self._sessions = async_sessionmaker(bind=self.engine, expire_on_commit=False)

        session = self._sessions()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def init_schema_async(self) -> None:
        """Create any missing tables. Production deployments use Alembic instead."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured (%s)", self.engine.dialect.name)

    async def dispose_async(self) -> None:
        """Close pooled connections; the manager can be reused afterwards."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessions = None
            logger.debug("Database engine disposed")
