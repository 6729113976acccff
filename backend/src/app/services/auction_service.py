"""Auction service for listing, reading and cancelling auctions."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import to_naive_utc, utcnow
from app.core.config import settings
from app.core.exceptions import NotFoundError, PermissionDeniedError, StateConflictError, ValidationError
from app.core.security import Principal
from app.core.transactions import run_in_transaction
from app.models.auction import Auction, AuctionStatus, ListingType
from app.models.bid import Bid
from app.schemas.auction import AuctionCreate
from app.services.auction_state import AuctionSnapshot, initial_status, transition
from app.services.auction_store import AuctionStore
from app.services.bid_service import normalize_amount
from app.services.bid_validator import minimum_bid
from app.services.redis_service import RedisService, auction_guard

logger = logging.getLogger(__name__)

RECENT_BIDS_LIMIT = 10


@dataclass
class AuctionStatusView:
    """Live view of an auction from one caller's point of view."""

    auction_id: UUID
    status: AuctionStatus
    is_active: bool
    can_bid: bool
    can_buy_now: bool
    min_bid: Decimal
    current_bid: Decimal
    buy_now_price: Decimal | None
    ends_in_ms: int
    bid_count: int
    is_winning: bool


class AuctionService:
    """Service class for auction operations."""

    def __init__(self, db: AsyncSession, redis_service: RedisService | None = None):
        self.db = db
        self.redis_service = redis_service
        self.store = AuctionStore(db)

    async def create_auction(self, data: AuctionCreate, seller_id: UUID) -> Auction:
        """List a new auction.

        Args:
            data: Auction creation data
            seller_id: Listing user

        Returns:
            Created auction, active if its start time has passed, else upcoming

        Raises:
            ValidationError: Invalid prices or times
        """
        now = utcnow()
        starting_bid = normalize_amount(data.starting_bid, "Starting bid")
        bid_increment = normalize_amount(
            data.bid_increment if data.bid_increment is not None else settings.DEFAULT_BID_INCREMENT,
            "Bid increment",
        )

        buy_now_price = None
        if data.buy_now_price is not None:
            buy_now_price = normalize_amount(data.buy_now_price, "Buy now price")
            if buy_now_price <= starting_bid:
                raise ValidationError("Buy now price must be greater than the starting bid")
        if data.listing_type != ListingType.AUCTION and buy_now_price is None:
            raise ValidationError(f"A {data.listing_type.value} listing requires a buy now price")

        start_time = to_naive_utc(data.start_time) if data.start_time is not None else now
        end_time = to_naive_utc(data.end_time)
        if end_time <= start_time:
            raise ValidationError("End time must be after start time")
        if end_time <= now:
            raise ValidationError("End time must be in the future")

        auction = Auction(
            seller_id=seller_id,
            title=data.title,
            description=data.description,
            category=data.category,
            image_url=data.image_url,
            listing_type=data.listing_type.value,
            starting_bid=starting_bid,
            current_bid=starting_bid,
            bid_increment=bid_increment,
            buy_now_price=buy_now_price,
            start_time=start_time,
            end_time=end_time,
            scheduled_end_time=end_time,
            status=initial_status(start_time, now).value,
            bid_count=0,
            views=0,
            version=0,
        )

        async def insert() -> Auction:
            self.db.add(auction)
            await self.db.flush()
            return auction

        auction = await run_in_transaction(self.db, insert, label="create_auction")
        logger.info(f"Auction {auction.auction_id} listed by {seller_id}, status {auction.status}")
        return auction

    async def get_auction(self, auction_id: UUID) -> tuple[Auction, list[Bid]]:
        """Get an auction with its most recent bids, counting the view.

        Raises:
            NotFoundError: Unknown auction
        """

        async def read() -> tuple[Auction, list[Bid]]:
            await self.store.increment_views(auction_id)
            auction = await self._get_or_404(auction_id)
            bids = await self.store.bid_history(auction_id, limit=RECENT_BIDS_LIMIT)
            return auction, bids

        return await run_in_transaction(self.db, read, label=f"get_auction:{auction_id}")

    async def _get_or_404(self, auction_id: UUID) -> Auction:
        auction = await self.store.get(auction_id)
        if auction is None:
            raise NotFoundError(f"Auction with ID {auction_id} not found")
        return auction

    async def list_auctions(
        self,
        status: AuctionStatus | None = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[Auction], int]:
        return await run_in_transaction(
            self.db,
            lambda: self.store.list_auctions(status=status, skip=skip, limit=limit, now=utcnow()),
            label="list_auctions",
        )

    async def get_seller_auctions(
        self, seller_id: UUID, skip: int = 0, limit: int = 20
    ) -> tuple[list[Auction], int]:
        return await run_in_transaction(
            self.db,
            lambda: self.store.list_auctions(seller_id=seller_id, skip=skip, limit=limit),
            label=f"seller_auctions:{seller_id}",
        )

    async def get_auction_status(
        self,
        auction_id: UUID,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> AuctionStatusView:
        """Report what ``user_id`` (or an anonymous caller) can do right now.

        Uses the same effective-status rules as the bid and buy-now paths,
        so a true ``can_bid`` means a bid of ``min_bid`` would be accepted
        unless the auction changes first.

        Raises:
            NotFoundError: Unknown auction
        """
        now = to_naive_utc(now) if now is not None else utcnow()

        async def read() -> tuple[AuctionSnapshot, UUID | None]:
            auction = await self._get_or_404(auction_id)
            snapshot = AuctionSnapshot.from_model(auction)
            if snapshot.status == AuctionStatus.SOLD:
                return snapshot, snapshot.winner_id
            leading = await self.store.leading_bid(auction_id) if snapshot.bid_count else None
            return snapshot, leading.bidder_id if leading is not None else None

        snapshot, leader_id = await run_in_transaction(
            self.db, read, label=f"auction_status:{auction_id}"
        )
        capabilities = snapshot.capabilities

        is_active = snapshot.is_open(now)
        is_seller = user_id is not None and user_id == snapshot.seller_id
        is_winning = user_id is not None and leader_id == user_id

        ends_in_ms = 0
        if is_active:
            ends_in_ms = int((snapshot.end_time - now).total_seconds() * 1000)

        return AuctionStatusView(
            auction_id=auction_id,
            status=snapshot.status_at(now),
            is_active=is_active,
            can_bid=is_active and capabilities.can_bid and not is_seller,
            can_buy_now=(
                is_active
                and capabilities.can_buy_now
                and snapshot.bid_count == 0
                and not is_seller
            ),
            min_bid=minimum_bid(snapshot),
            current_bid=snapshot.current_bid,
            buy_now_price=snapshot.buy_now_price,
            ends_in_ms=ends_in_ms,
            bid_count=snapshot.bid_count,
            is_winning=is_winning,
        )

    async def cancel_auction(self, auction_id: UUID, principal: Principal) -> Auction:
        """Withdraw an auction that has not received any bids.

        Raises:
            NotFoundError: Unknown auction
            PermissionDeniedError: Caller is neither the seller nor an admin
            StateConflictError: Auction closed, past its end time, or has bids
        """

        async def cancel() -> Auction:
            auction = await self.store.get_for_update(auction_id)
            if auction.seller_id != principal.user_id and not principal.is_admin:
                raise PermissionDeniedError(
                    "Only the seller or an admin can cancel this auction", "NOT_AUCTION_OWNER"
                )

            now = utcnow()
            snapshot = AuctionSnapshot.from_model(auction)
            status = transition(snapshot.status_at(now), AuctionStatus.CANCELLED)
            if snapshot.status_at(now) == AuctionStatus.ACTIVE and now >= snapshot.end_time:
                raise StateConflictError("AUCTION_ENDED", "Auction has ended and is awaiting settlement")
            if snapshot.bid_count > 0:
                raise StateConflictError("AUCTION_HAS_BIDS", "An auction with bids cannot be cancelled")

            return await self.store.apply_changes(auction, status=status.value)

        async with auction_guard(self.redis_service, auction_id):
            auction = await run_in_transaction(self.db, cancel, label=f"cancel:{auction_id}")

        logger.info(f"Auction {auction_id} cancelled by {principal.user_id}")
        return auction
