"""Bid service: the bid acceptance protocol."""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.config import settings
from app.core.exceptions import AuctionError, NotFoundError, StateConflictError, ValidationError
from app.core.transactions import run_in_transaction
from app.middleware.metrics import record_bid, record_soft_close_extension
from app.models.auction import Auction, AuctionStatus
from app.models.bid import Bid
from app.services.auction_state import AuctionSnapshot
from app.services.auction_store import AuctionStore
from app.services.bid_validator import evaluate_bid
from app.services.redis_service import RedisService, auction_guard

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
# Largest value a Numeric(12, 2) money column holds
MAX_AMOUNT = Decimal("9999999999.99")


def normalize_amount(amount: Decimal | str | int | float, field: str = "Bid amount") -> Decimal:
    """Parse a money amount: positive, finite, at most MAX_AMOUNT, whole cents.

    Raises:
        ValidationError: For anything else
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} is not a valid number: {amount!r}", "INVALID_AMOUNT")

    if not value.is_finite() or value <= 0:
        raise ValidationError(f"{field} must be greater than zero", "INVALID_AMOUNT")
    if value > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}", "INVALID_AMOUNT")

    try:
        cents = value.quantize(CENT)
    except InvalidOperation:
        raise ValidationError(f"{field} is not a valid number: {amount!r}", "INVALID_AMOUNT")
    if cents != value:
        raise ValidationError(f"{field} can have at most two decimal places", "INVALID_AMOUNT")
    return cents


def soft_close_end_time(
    end_time: datetime, scheduled_end_time: datetime, now: datetime
) -> datetime | None:
    """New end time if a bid at ``now`` falls in the soft-close window.

    Returns None when the bid does not extend the auction. The optional
    SOFT_CLOSE_MAX_EXTENSION_MINUTES cap bounds how far past the originally
    scheduled end an auction can be pushed.
    """
    window = timedelta(minutes=settings.SOFT_CLOSE_WINDOW_MINUTES)
    if now < end_time - window:
        return None

    new_end = end_time + timedelta(minutes=settings.SOFT_CLOSE_EXTENSION_MINUTES)
    cap = settings.SOFT_CLOSE_MAX_EXTENSION_MINUTES
    if cap is not None:
        new_end = min(new_end, scheduled_end_time + timedelta(minutes=cap))
    return new_end if new_end > end_time else None


@dataclass
class BidPlacement:
    """Result of an accepted bid."""

    bid: Bid
    auction: Auction
    extended: bool = False


class BidService:
    """Service class for bid operations."""

    def __init__(self, db: AsyncSession, redis_service: RedisService | None = None):
        self.db = db
        self.redis_service = redis_service
        self.store = AuctionStore(db)

    async def place_bid(
        self,
        auction_id: UUID,
        amount: Decimal,
        bidder_id: UUID,
    ) -> BidPlacement:
        """Place a bid on an auction.

        Steps:
        1. Validate the amount before touching the store
        2. Take the per-auction Redis lock (skipped when disabled or unreachable)
        3. In one transaction: lock the row, evaluate the bid against it,
           insert the bid, raise current_bid, bump bid_count and apply the
           soft-close extension with a version-checked update

        Either every write commits or none does.

        Args:
            auction_id: Auction to bid on
            amount: Bid amount
            bidder_id: Bidding user

        Returns:
            BidPlacement with the new bid and the updated auction

        Raises:
            ValidationError: Malformed amount
            NotFoundError: Unknown auction
            StateConflictError: Bid rejected, ``code`` names the reason
            ConcurrencyError: Conflicts persisted past the retry budget
        """
        start_time = time.perf_counter()
        try:
            amount = normalize_amount(amount)
            async with auction_guard(self.redis_service, auction_id):
                placement = await run_in_transaction(
                    self.db,
                    lambda: self._accept_bid(auction_id, amount, bidder_id),
                    label=f"place_bid:{auction_id}",
                )
        except (ValidationError, NotFoundError, StateConflictError) as e:
            record_bid("rejected", e.code, time.perf_counter() - start_time)
            raise
        except AuctionError as e:
            record_bid("error", e.code, time.perf_counter() - start_time)
            raise

        record_bid("accepted", duration=time.perf_counter() - start_time)
        if placement.extended:
            record_soft_close_extension()
            logger.info(
                f"Bid {placement.bid.bid_id} on auction {auction_id} extended end_time to {placement.auction.end_time}"
            )
        return placement

    async def _accept_bid(
        self, auction_id: UUID, amount: Decimal, bidder_id: UUID
    ) -> BidPlacement:
        """One attempt of the acceptance transaction. Caller commits."""
        auction = await self.store.get_for_update(auction_id)
        now = utcnow()
        snapshot = AuctionSnapshot.from_model(auction)

        evaluate_bid(snapshot, amount, bidder_id, now).raise_if_rejected()

        changes = {
            "current_bid": amount,
            "bid_count": auction.bid_count + 1,
        }
        if snapshot.status != snapshot.status_at(now):
            changes["status"] = AuctionStatus.ACTIVE.value

        new_end = soft_close_end_time(auction.end_time, auction.scheduled_end_time, now)
        if new_end is not None:
            changes["end_time"] = new_end

        bid = await self.store.add_bid(auction, bidder_id, amount, now)
        await self.store.apply_changes(auction, **changes)

        return BidPlacement(bid=bid, auction=auction, extended=new_end is not None)

    async def get_bid_history(
        self, auction_id: UUID, skip: int = 0, limit: int = 100
    ) -> tuple[list[Bid], int]:
        """Get one page of bids on an auction, newest first, and the total count.

        Raises:
            NotFoundError: Unknown auction
        """

        async def read() -> tuple[list[Bid], int]:
            if await self.store.get(auction_id) is None:
                raise NotFoundError(f"Auction with ID {auction_id} not found")
            bids = await self.store.bid_history(auction_id, skip=skip, limit=limit)
            return bids, await self.store.count_bids(auction_id)

        return await run_in_transaction(self.db, read, label=f"bid_history:{auction_id}")

    async def get_user_bids(
        self, bidder_id: UUID, skip: int = 0, limit: int = 100
    ) -> tuple[list[Bid], int]:
        return await run_in_transaction(
            self.db,
            lambda: self.store.bids_by_bidder(bidder_id, skip=skip, limit=limit),
            label=f"user_bids:{bidder_id}",
        )
