"""Seed data script for development and testing.

Creates:
- demo seller, bidder and admin identities, with bearer tokens printed
- one auction of each listing type, plus one closing soon and one upcoming

Environment Variables:
    AUCTION_DURATION_MINUTES: Duration of the regular auctions (default: 60)
    RESET_DATA: Set to "true" to clear bids/auctions before seeding (default: false)

Usage:
    # First time setup
    python -m scripts.seed_data

    # Start over with fresh auctions
    RESET_DATA=true python -m scripts.seed_data
"""

import asyncio
import os
import uuid
from datetime import timedelta
from decimal import Decimal

import jwt

# Configuration from environment variables
AUCTION_DURATION_MINUTES = int(os.getenv("AUCTION_DURATION_MINUTES", "60"))
RESET_DATA = os.getenv("RESET_DATA", "false").lower() == "true"

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.config import settings
from app.core.database import Base, async_session_maker, engine
from app.core.security import ROLE_ADMIN, ROLE_USER
from app.models import Auction, ListingType
from app.schemas.auction import AuctionCreate
from app.services.auction_service import AuctionService

# Fixed ids so tokens stay valid across re-seeds
SELLER_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")
BIDDER_ID = uuid.UUID("00000000-0000-4000-8000-000000000002")
ADMIN_ID = uuid.UUID("00000000-0000-4000-8000-000000000003")


def issue_token(user_id: uuid.UUID, role: str = ROLE_USER) -> str:
    """Sign a development token the way the identity provider would."""
    payload = {
        "sub": str(user_id),
        "role": role,
        "exp": utcnow() + timedelta(days=7),
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


async def reset_auction_data(session: AsyncSession) -> None:
    """Clear bids and auctions."""
    print("Resetting auction data...")
    await session.execute(text("DELETE FROM bids"))
    await session.execute(text("DELETE FROM auctions"))
    await session.commit()
    print("  Cleared bids, auctions")


async def seed_auctions(session: AsyncSession) -> list[Auction]:
    """Create one auction per scenario through AuctionService."""
    print("Seeding auctions...")

    if not RESET_DATA:
        result = await session.execute(select(Auction).limit(1))
        if result.scalar_one_or_none():
            print("  Auctions already exist, skipping...")
            result = await session.execute(select(Auction))
            return list(result.scalars().all())

    now = utcnow()
    end = now + timedelta(minutes=AUCTION_DURATION_MINUTES)
    listings = [
        AuctionCreate(
            title="Vintage Film Camera",
            description="Fully working rangefinder with original case",
            category="Cameras",
            listing_type=ListingType.AUCTION,
            starting_bid=Decimal("100.00"),
            bid_increment=Decimal("5.00"),
            end_time=end,
        ),
        AuctionCreate(
            title="Mechanical Keyboard",
            category="Electronics",
            listing_type=ListingType.AUCTION_BUY_NOW,
            starting_bid=Decimal("50.00"),
            buy_now_price=Decimal("150.00"),
            end_time=end,
        ),
        AuctionCreate(
            title="Signed First Edition",
            category="Books",
            listing_type=ListingType.BUY_NOW,
            starting_bid=Decimal("200.00"),
            buy_now_price=Decimal("350.00"),
            end_time=end,
        ),
        AuctionCreate(
            title="Closing Soon: Desk Lamp",
            description="Ends within the soft-close window",
            category="Home",
            starting_bid=Decimal("20.00"),
            bid_increment=Decimal("1.00"),
            end_time=now + timedelta(minutes=3),
        ),
        AuctionCreate(
            title="Upcoming: Road Bike",
            category="Sports",
            starting_bid=Decimal("300.00"),
            bid_increment=Decimal("10.00"),
            start_time=now + timedelta(minutes=10),
            end_time=end + timedelta(minutes=10),
        ),
    ]

    service = AuctionService(session)
    auctions = []
    for listing in listings:
        auction = await service.create_auction(listing, SELLER_ID)
        auctions.append(auction)
        print(f"  Created {auction.listing_type} auction {auction.auction_id}: {auction.title} ({auction.status})")

    return auctions


async def main():
    """Main seed function."""
    print("=" * 60)
    print("Auction House - Seed Data Script")
    print("=" * 60)
    print(f"  RESET_DATA: {RESET_DATA}")
    print(f"  AUCTION_DURATION_MINUTES: {AUCTION_DURATION_MINUTES}")
    print("=" * 60)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as session:
        if RESET_DATA:
            await reset_auction_data(session)
        auctions = await seed_auctions(session)

    print("=" * 60)
    print("Seed data complete!")
    print(f"  Auctions: {len(auctions)}")
    print("")
    print("Bearer tokens (valid 7 days):")
    print(f"  seller {SELLER_ID}: {issue_token(SELLER_ID)}")
    print(f"  bidder {BIDDER_ID}: {issue_token(BIDDER_ID)}")
    print(f"  admin  {ADMIN_ID}: {issue_token(ADMIN_ID, ROLE_ADMIN)}")
    print("=" * 60)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
