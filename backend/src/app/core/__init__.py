from app.core.config import settings
from app.core.database import Base, async_session_maker, engine, get_db
from app.core.exceptions import (
    AuctionError,
    ConcurrencyError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    StateConflictError,
    ValidationError,
)
from app.core.redis import close_redis, get_redis
from app.core.security import Principal, decode_access_token

__all__ = [
    "settings",
    "Base",
    "engine",
    "async_session_maker",
    "get_db",
    "get_redis",
    "close_redis",
    "Principal",
    "decode_access_token",
    "AuctionError",
    "ValidationError",
    "NotFoundError",
    "StateConflictError",
    "PermissionDeniedError",
    "ConcurrencyError",
    "PersistenceError",
]
