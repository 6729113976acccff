"""Auction record store: reads and conditional writes of auctions and bids.

Mutations are layered under the optional Redis lock:
- SELECT ... FOR UPDATE row lock (BEGIN IMMEDIATE on SQLite)
- optimistic version check on the UPDATE
- unique (auction_id, amount) on bids as a last line of defence
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.exceptions import ConcurrencyError, NotFoundError
from app.models.auction import Auction, AuctionStatus
from app.models.bid import Bid

OPEN_STATUSES = (AuctionStatus.UPCOMING.value, AuctionStatus.ACTIVE.value)


class AuctionStore:
    """Persistence operations for the auction core."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, auction_id: UUID) -> Auction | None:
        """Plain read of an auction, no lock."""
        result = await self.db.execute(
            select(Auction)
            .where(Auction.auction_id == auction_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, auction_id: UUID) -> Auction:
        """Read an auction holding its row lock until the transaction ends.

        populate_existing refreshes an instance already in the identity map,
        so the caller always validates against the locked row.

        Raises:
            NotFoundError: Unknown auction id
        """
        result = await self.db.execute(
            select(Auction)
            .where(Auction.auction_id == auction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        auction = result.scalar_one_or_none()
        if auction is None:
            raise NotFoundError(f"Auction with ID {auction_id} not found")
        return auction

    async def apply_changes(self, auction: Auction, **values: Any) -> Auction:
        """Write ``values`` to the auction if nobody changed it since it was read.

        Args:
            auction: Auction read inside the current transaction
            **values: Column values to set

        Returns:
            The same instance with the new values applied

        Raises:
            ConcurrencyError: Version conflict
        """
        read_version = auction.version
        result = await self.db.execute(
            update(Auction)
            .where(Auction.auction_id == auction.auction_id)
            .where(Auction.version == read_version)
            .values(version=read_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConcurrencyError(f"Concurrent update conflict for auction {auction.auction_id}")

        # Mirror the write on the instance without marking it dirty
        for key, value in values.items():
            set_committed_value(auction, key, value)
        set_committed_value(auction, "version", read_version + 1)
        return auction

    async def add_bid(
        self, auction: Auction, bidder_id: UUID, amount: Decimal, now: datetime
    ) -> Bid:
        bid = Bid(
            auction_id=auction.auction_id,
            bidder_id=bidder_id,
            amount=amount,
            created_at=now,
        )
        self.db.add(bid)
        await self.db.flush()
        return bid

    async def leading_bid(self, auction_id: UUID) -> Bid | None:
        """Highest bid; ties go to the earliest one."""
        result = await self.db.execute(
            select(Bid)
            .where(Bid.auction_id == auction_id)
            .order_by(Bid.amount.desc(), Bid.created_at.asc(), Bid.bid_id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_bids(self, auction_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Bid.bid_id)).where(Bid.auction_id == auction_id)
        )
        return result.scalar_one()

    async def bid_history(
        self, auction_id: UUID, skip: int = 0, limit: int = 100
    ) -> list[Bid]:
        """Bids on an auction, newest first."""
        result = await self.db.execute(
            select(Bid)
            .where(Bid.auction_id == auction_id)
            .order_by(Bid.created_at.desc(), Bid.amount.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def bids_by_bidder(
        self, bidder_id: UUID, skip: int = 0, limit: int = 100
    ) -> tuple[list[Bid], int]:
        count_result = await self.db.execute(
            select(func.count(Bid.bid_id)).where(Bid.bidder_id == bidder_id)
        )
        total = count_result.scalar_one()

        result = await self.db.execute(
            select(Bid)
            .where(Bid.bidder_id == bidder_id)
            .order_by(Bid.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_auctions(
        self,
        status: AuctionStatus | None = None,
        seller_id: UUID | None = None,
        skip: int = 0,
        limit: int = 20,
        now: datetime | None = None,
    ) -> tuple[list[Auction], int]:
        """Page through auctions, newest first.

        With ``now`` given, the status filter matches effective status, so a
        started auction still stored as upcoming is listed as active.
        """
        conditions = []
        if status is not None:
            conditions.append(self._status_condition(status, now))
        if seller_id is not None:
            conditions.append(Auction.seller_id == seller_id)
        where = and_(*conditions) if conditions else None

        count_query = select(func.count(Auction.auction_id))
        query = select(Auction)
        if where is not None:
            count_query = count_query.where(where)
            query = query.where(where)

        total = (await self.db.execute(count_query)).scalar_one()
        result = await self.db.execute(
            query.order_by(Auction.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    @staticmethod
    def _status_condition(status: AuctionStatus, now: datetime | None):
        if now is None:
            return Auction.status == status.value
        if status == AuctionStatus.ACTIVE:
            return or_(
                Auction.status == AuctionStatus.ACTIVE.value,
                and_(
                    Auction.status == AuctionStatus.UPCOMING.value,
                    Auction.start_time <= now,
                ),
            )
        if status == AuctionStatus.UPCOMING:
            return and_(
                Auction.status == AuctionStatus.UPCOMING.value,
                Auction.start_time > now,
            )
        return Auction.status == status.value

    async def expired_auction_ids(self, now: datetime) -> list[UUID]:
        """Ids of auctions still open whose end time has passed."""
        result = await self.db.execute(
            select(Auction.auction_id)
            .where(
                and_(
                    Auction.status.in_(OPEN_STATUSES),
                    Auction.end_time <= now,
                )
            )
            .order_by(Auction.end_time.asc())
        )
        return list(result.scalars().all())

    async def activate_due(self, now: datetime) -> int:
        """Persist upcoming -> active for every auction whose window is open."""
        result = await self.db.execute(
            update(Auction)
            .where(
                and_(
                    Auction.status == AuctionStatus.UPCOMING.value,
                    Auction.start_time <= now,
                    Auction.end_time > now,
                )
            )
            .values(status=AuctionStatus.ACTIVE.value, version=Auction.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def increment_views(self, auction_id: UUID) -> None:
        await self.db.execute(
            update(Auction)
            .where(Auction.auction_id == auction_id)
            .values(views=Auction.views + 1)
            .execution_options(synchronize_session=False)
        )
