"""Shared async Redis client for the auction and sweep locks."""

from typing import Optional

import redis.asyncio as redis
from redis.asyncio import ConnectionPool

from app.core.config import settings

redis_pool: Optional[ConnectionPool] = None
redis_client: Optional[redis.Redis] = None


def get_redis_pool() -> ConnectionPool:
    """Get or create the lock connection pool.

    Lock calls sit on the bid path, so timeouts are short and never retried:
    a slow Redis degrades to database-only locking instead of stalling bids.
    """
    global redis_pool
    if redis_pool is None:
        redis_pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            decode_responses=True,
            encoding="utf-8",
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            retry_on_timeout=False,
        )
    return redis_pool


async def get_redis() -> redis.Redis:
    global redis_client
    if redis_client is None:
        redis_client = redis.Redis(connection_pool=get_redis_pool())
    return redis_client


async def close_redis() -> None:
    """Close the client and drop the pool; the next get_redis() reconnects."""
    global redis_client, redis_pool
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
    if redis_pool is not None:
        await redis_pool.disconnect()
        redis_pool = None
