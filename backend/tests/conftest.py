"""Pytest configuration and fixtures for testing."""

import os

# Must be set before app modules read settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["DISTRIBUTED_LOCKS_ENABLED"] = "false"
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import jwt
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.clock import utcnow
from app.core.config import settings
from app.core.database import Base, create_engine_for, create_session_maker
from app.models import Auction, AuctionStatus, Bid, ListingType
from app.services.auction_state import AuctionSnapshot


# File-backed SQLite so concurrent sessions really contend for the write lock
@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh database with all tables for one test."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'auctions.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(engine)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def seller_id() -> UUID:
    return uuid4()


@pytest.fixture
def bidder_id() -> UUID:
    return uuid4()


# Inserts rows directly, bypassing creation rules, so tests can place
# auctions anywhere in their lifecycle
@pytest.fixture
def make_auction(session_factory, seller_id) -> Callable[..., Awaitable[Auction]]:
    """Factory that persists an auction and returns it."""

    async def _make(**overrides) -> Auction:
        now = utcnow()
        end_time = overrides.pop("end_time", now + timedelta(hours=1))
        values = {
            "seller_id": seller_id,
            "title": "Test Auction",
            "listing_type": ListingType.AUCTION.value,
            "starting_bid": Decimal("100.00"),
            "current_bid": Decimal("100.00"),
            "bid_increment": Decimal("5.00"),
            "start_time": now - timedelta(hours=1),
            "end_time": end_time,
            "scheduled_end_time": end_time,
            "status": AuctionStatus.ACTIVE.value,
            "bid_count": 0,
            "views": 0,
            "version": 0,
        }
        values.update(overrides)
        for key in ("listing_type", "status"):
            if hasattr(values[key], "value"):
                values[key] = values[key].value

        async with session_factory() as session:
            auction = Auction(**values)
            session.add(auction)
            await session.commit()
            return auction

    return _make


@pytest.fixture
def add_bid(session_factory) -> Callable[..., Awaitable[Bid]]:
    """Persist a bid and keep the auction's counters in step with it."""

    async def _add(auction: Auction, bidder_id: UUID, amount: Decimal, created_at: datetime | None = None) -> Bid:
        async with session_factory() as session:
            bid = Bid(
                auction_id=auction.auction_id,
                bidder_id=bidder_id,
                amount=amount,
                created_at=created_at or utcnow(),
            )
            session.add(bid)
            stored = await session.get(Auction, auction.auction_id)
            stored.current_bid = max(stored.current_bid, amount)
            stored.bid_count += 1
            await session.commit()
            return bid

    return _add


@pytest.fixture
def load_auction(session_factory):
    """Read the committed state of an auction in a fresh session."""

    async def _load(auction_id: UUID) -> Auction:
        async with session_factory() as session:
            return await session.get(Auction, auction_id)

    return _load


@pytest.fixture
def snapshot_factory() -> Callable[..., AuctionSnapshot]:
    """Build AuctionSnapshot values for pure-function tests."""

    def _snapshot(now: datetime, **overrides) -> AuctionSnapshot:
        values = {
            "auction_id": uuid4(),
            "seller_id": uuid4(),
            "status": AuctionStatus.ACTIVE,
            "listing_type": ListingType.AUCTION,
            "start_time": now - timedelta(hours=1),
            "end_time": now + timedelta(hours=1),
            "current_bid": Decimal("100.00"),
            "bid_increment": Decimal("5.00"),
        }
        values.update(overrides)
        return AuctionSnapshot(**values)

    return _snapshot


# Mock Redis client fixture
@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create a mock Redis client whose locks are always free."""
    redis = AsyncMock()

    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    # Lua release script: 1 means our lock was deleted
    redis.register_script = MagicMock(return_value=AsyncMock(return_value=1))

    return redis


def make_token(user_id: UUID, role: str = "user") -> str:
    return jwt.encode(
        {"sub": str(user_id), "role": role},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Bearer headers for a given user id and role."""

    def _headers(user_id: UUID, role: str = "user") -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return _headers
