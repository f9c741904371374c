"""Storage layer - Database schemas, repositories and stores."""

from token_price_engine.storage.database import DatabaseManager, to_async_url
from token_price_engine.storage.models import (
    AlertModel,
    Base,
    GroupModel,
    TokenCacheModel,
    WatchlistItemModel,
)
from token_price_engine.storage.repos import (
    AlertDirection,
    AlertDTO,
    AlertRepository,
    GroupDTO,
    GroupRepository,
    TokenCacheDTO,
    TokenCacheRepository,
    WatchlistItemDTO,
    WatchlistRepository,
)
from token_price_engine.storage.stores import (
    DatabaseAlertStore,
    DatabasePriceCache,
    DatabaseWatchlistSource,
)

__all__ = [
    "AlertDTO",
    "AlertDirection",
    "AlertModel",
    "AlertRepository",
    "Base",
    "DatabaseAlertStore",
    "DatabaseManager",
    "DatabasePriceCache",
    "DatabaseWatchlistSource",
    "GroupDTO",
    "GroupModel",
    "GroupRepository",
    "TokenCacheDTO",
    "TokenCacheModel",
    "TokenCacheRepository",
    "WatchlistItemDTO",
    "WatchlistItemModel",
    "WatchlistRepository",
    "to_async_url",
]
