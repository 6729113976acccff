"""Reset database to empty state.

Creates any missing tables, then clears:
- bids
- auctions

Also removes auction lock keys from Redis.

Usage:
    cd backend && python -m scripts.reset_db
"""

import asyncio

from sqlalchemy import text
from redis.exceptions import RedisError

from app.core.database import Base, async_session_maker, engine
from app.core.redis import close_redis, get_redis
from app.models import Auction, Bid  # noqa: F401  (register tables on Base.metadata)


async def create_tables():
    """Create tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def reset_database():
    """Clear all data from the database."""
    print("=" * 60)
    print("Resetting database to empty state...")
    print("=" * 60)

    await create_tables()

    async with async_session_maker() as session:
        # Delete in correct order due to foreign key constraints
        tables = ["bids", "auctions"]

        for table in tables:
            result = await session.execute(text(f"DELETE FROM {table}"))
            print(f"  Deleted {result.rowcount} rows from {table}")

        await session.commit()
        print("\nDatabase cleared successfully!")


async def reset_redis():
    """Remove leftover auction and sweep locks."""
    print("\nResetting Redis locks...")

    try:
        redis = await get_redis()
        removed = 0
        async for key in redis.scan_iter(match="lock:*"):
            removed += await redis.delete(key)
        print(f"  Removed {removed} lock keys")
    except RedisError as e:
        print(f"  Warning: Could not clear Redis: {e}")
        print("  (This is OK if Redis is not running locally)")
    finally:
        await close_redis()


async def main():
    await reset_database()
    await reset_redis()

    print("\n" + "=" * 60)
    print("Reset complete!")
    print("=" * 60)
    print("\nTo re-seed the database, run:")
    print("  cd backend && python -m scripts.seed_data")
    print("=" * 60)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
