"""Redis service for distributed auction locks."""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager, nullcontext
from typing import AsyncIterator

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.exceptions import ConcurrencyError

logger = logging.getLogger(__name__)

LOCK_POLL_INTERVAL_SECONDS = 0.05
SWEEP_LOCK_KEY = "lock:sweep:expiry"


class RedisService:
    """Service class for Redis lock operations.

    The Redis lock is a first layer that keeps contending writers off the
    database. Correctness never depends on it: if Redis is unreachable the
    caller proceeds and the row lock plus version check still serialise
    mutations.
    """

    # Lua script for safe lock release (only delete own lock)
    RELEASE_LOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, redis: Redis):
        """Initialize Redis service with a Redis client.

        Args:
            redis: Async Redis client instance
        """
        self.redis = redis
        self._release_lock_script = None

    async def _get_release_lock_script(self):
        """Get or register the release lock Lua script."""
        if self._release_lock_script is None:
            self._release_lock_script = self.redis.register_script(self.RELEASE_LOCK_SCRIPT)
        return self._release_lock_script

    @staticmethod
    def auction_lock_key(auction_id: uuid.UUID | str) -> str:
        return f"lock:auction:{auction_id}"

    # ==================== Distributed Lock Operations ====================

    async def acquire_lock(
        self, key: str, owner_id: str | None = None, ttl: int | None = None
    ) -> tuple[bool, str]:
        """Try once to acquire a distributed lock.

        Uses SET NX EX for atomic lock acquisition.

        Args:
            key: Lock key, e.g. lock:auction:{auction_id}
            owner_id: Unique identifier for lock owner (auto-generated if None)
            ttl: Lock timeout in seconds, so a crashed holder cannot deadlock

        Returns:
            Tuple of (success, owner_id)
        """
        if owner_id is None:
            owner_id = str(uuid.uuid4())
        ttl = ttl or settings.AUCTION_LOCK_TTL_SECONDS

        acquired = await self.redis.set(key, owner_id, nx=True, ex=ttl)
        return (bool(acquired), owner_id)

    async def release_lock(self, key: str, owner_id: str) -> bool:
        """Release a distributed lock (only if owner matches).

        Returns:
            True if lock was released, False if not owner or already expired
        """
        script = await self._get_release_lock_script()
        result = await script(keys=[key], args=[owner_id])
        return int(result) == 1

    async def wait_for_lock(
        self, key: str, wait_seconds: float | None = None, ttl: int | None = None
    ) -> str | None:
        """Poll for a lock until acquired or ``wait_seconds`` elapse.

        Returns:
            The owner id on success, None on timeout
        """
        wait_seconds = settings.AUCTION_LOCK_WAIT_SECONDS if wait_seconds is None else wait_seconds
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds
        owner_id = str(uuid.uuid4())

        while True:
            acquired, _ = await self.acquire_lock(key, owner_id=owner_id, ttl=ttl)
            if acquired:
                return owner_id
            if loop.time() >= deadline:
                return None
            await asyncio.sleep(LOCK_POLL_INTERVAL_SECONDS)

    @asynccontextmanager
    async def auction_lock(self, auction_id: uuid.UUID) -> AsyncIterator[bool]:
        """Hold the per-auction lock for the duration of the block.

        Yields:
            True if the Redis lock is held, False if Redis was unavailable
            and the block runs under the database locks alone

        Raises:
            ConcurrencyError: Another holder kept the lock past the wait bound
        """
        key = self.auction_lock_key(auction_id)
        try:
            owner_id = await self.wait_for_lock(key)
        except RedisError as e:
            logger.warning(f"Redis lock unavailable for auction {auction_id}, using database locks only: {e}")
            owner_id = None
            held = False
        else:
            if owner_id is None:
                raise ConcurrencyError(f"Auction {auction_id} is busy, please retry")
            held = True

        try:
            yield held
        finally:
            if held:
                try:
                    released = await self.release_lock(key, owner_id)
                    if not released:
                        logger.warning(f"Lock {key} expired before release")
                except RedisError as e:
                    logger.warning(f"Failed to release lock {key}: {e}")

    # ==================== Sweep Leader Lock ====================

    async def try_acquire_sweep_lock(self, ttl: int) -> str | None:
        """Claim the expiry sweep for one pass so only one instance runs it.

        Returns:
            Owner id if this instance won, otherwise None
        """
        acquired, owner_id = await self.acquire_lock(SWEEP_LOCK_KEY, ttl=ttl)
        return owner_id if acquired else None

    async def release_sweep_lock(self, owner_id: str) -> bool:
        return await self.release_lock(SWEEP_LOCK_KEY, owner_id)


def auction_guard(redis_service: RedisService | None, auction_id: uuid.UUID):
    """Per-auction Redis lock, or a no-op when distributed locks are disabled."""
    if redis_service is None:
        return nullcontext(False)
    return redis_service.auction_lock(auction_id)
