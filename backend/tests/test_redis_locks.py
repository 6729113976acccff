"""Tests for the Redis lock layer."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.config import settings
from app.core.exceptions import ConcurrencyError
from app.services.redis_service import SWEEP_LOCK_KEY, RedisService, auction_guard


class TestAcquireRelease:
    """Test single lock operations."""

    @pytest.mark.asyncio
    async def test_acquire_uses_set_nx_with_ttl(self, mock_redis):
        service = RedisService(mock_redis)

        acquired, owner = await service.acquire_lock("lock:auction:1", ttl=7)

        assert acquired
        mock_redis.set.assert_awaited_once_with("lock:auction:1", owner, nx=True, ex=7)

    @pytest.mark.asyncio
    async def test_default_ttl(self, mock_redis):
        await RedisService(mock_redis).acquire_lock("k", owner_id="me")

        mock_redis.set.assert_awaited_once_with(
            "k", "me", nx=True, ex=settings.AUCTION_LOCK_TTL_SECONDS
        )

    @pytest.mark.asyncio
    async def test_acquire_when_held(self, mock_redis):
        mock_redis.set.return_value = None

        acquired, _ = await RedisService(mock_redis).acquire_lock("k")

        assert not acquired

    @pytest.mark.asyncio
    async def test_release_runs_owner_checked_script(self, mock_redis):
        service = RedisService(mock_redis)

        assert await service.release_lock("k", "me")

        script = mock_redis.register_script.return_value
        script.assert_awaited_once_with(keys=["k"], args=["me"])
        # Registered once, reused afterwards
        await service.release_lock("k", "me")
        mock_redis.register_script.assert_called_once()

    @pytest.mark.asyncio
    async def test_release_of_foreign_lock(self, mock_redis):
        mock_redis.register_script.return_value = AsyncMock(return_value=0)

        assert not await RedisService(mock_redis).release_lock("k", "someone-else")


class TestWaitForLock:
    """Test wait_for_lock polling."""

    @pytest.mark.asyncio
    async def test_acquires_after_holder_leaves(self, mock_redis):
        mock_redis.set.side_effect = [None, None, True]

        owner = await RedisService(mock_redis).wait_for_lock("k", wait_seconds=1)

        assert owner is not None
        assert mock_redis.set.await_count == 3

    @pytest.mark.asyncio
    async def test_times_out(self, mock_redis):
        mock_redis.set.return_value = None

        assert await RedisService(mock_redis).wait_for_lock("k", wait_seconds=0.1) is None


class TestAuctionLock:
    """Test the auction_lock context manager."""

    @pytest.mark.asyncio
    async def test_held_and_released(self, mock_redis):
        auction_id = uuid4()
        service = RedisService(mock_redis)

        async with service.auction_lock(auction_id) as held:
            assert held
            mock_redis.register_script.return_value.assert_not_awaited()

        key, owner = mock_redis.set.await_args.args
        assert key == f"lock:auction:{auction_id}"
        mock_redis.register_script.return_value.assert_awaited_once_with(keys=[key], args=[owner])

    @pytest.mark.asyncio
    async def test_released_when_block_raises(self, mock_redis):
        service = RedisService(mock_redis)

        with pytest.raises(RuntimeError):
            async with service.auction_lock(uuid4()):
                raise RuntimeError("boom")

        mock_redis.register_script.return_value.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_redis_down_runs_unlocked(self, mock_redis):
        mock_redis.set.side_effect = RedisConnectionError("connection refused")

        async with RedisService(mock_redis).auction_lock(uuid4()) as held:
            assert not held

        mock_redis.register_script.assert_not_called()

    @pytest.mark.asyncio
    async def test_busy_lock(self, mock_redis, monkeypatch):
        monkeypatch.setattr(settings, "AUCTION_LOCK_WAIT_SECONDS", 0.1)
        mock_redis.set.return_value = None

        with pytest.raises(ConcurrencyError):
            async with RedisService(mock_redis).auction_lock(uuid4()):
                pass

    @pytest.mark.asyncio
    async def test_release_failure_is_not_raised(self, mock_redis):
        mock_redis.register_script.return_value = AsyncMock(
            side_effect=RedisConnectionError("gone")
        )

        async with RedisService(mock_redis).auction_lock(uuid4()) as held:
            assert held

    @pytest.mark.asyncio
    async def test_guard_without_redis(self):
        async with auction_guard(None, uuid4()) as held:
            assert not held


class TestSweepLock:
    """Test the sweep leader lock."""

    @pytest.mark.asyncio
    async def test_leader_claims_sweep(self, mock_redis):
        service = RedisService(mock_redis)

        owner = await service.try_acquire_sweep_lock(ttl=30)

        assert owner is not None
        mock_redis.set.assert_awaited_once_with(SWEEP_LOCK_KEY, owner, nx=True, ex=30)
        assert await service.release_sweep_lock(owner)

    @pytest.mark.asyncio
    async def test_follower_skips(self, mock_redis):
        mock_redis.set.return_value = None

        assert await RedisService(mock_redis).try_acquire_sweep_lock(ttl=30) is None
