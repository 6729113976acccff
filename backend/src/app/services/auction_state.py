"""Auction lifecycle state machine.

States:
- upcoming: listed, start_time not reached
- active: open for bids / buy-now while start_time <= now < end_time
- ended: closed with no bids
- sold: closed with a winner (highest bid or buy-now)
- cancelled: withdrawn by the seller

upcoming -> active happens implicitly once start_time has passed. Every read
and write path goes through effective_status() so the bidding path, the
buy-now path and the status query never disagree about whether an auction is
live.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from functools import cached_property
from uuid import UUID

from app.core.exceptions import StateConflictError
from app.models.auction import Auction, AuctionStatus, ListingType

TERMINAL_STATUSES = frozenset(
    {AuctionStatus.ENDED, AuctionStatus.SOLD, AuctionStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: dict[AuctionStatus, frozenset[AuctionStatus]] = {
    AuctionStatus.UPCOMING: frozenset({AuctionStatus.ACTIVE, AuctionStatus.CANCELLED}),
    AuctionStatus.ACTIVE: frozenset(
        {AuctionStatus.ENDED, AuctionStatus.SOLD, AuctionStatus.CANCELLED}
    ),
    AuctionStatus.ENDED: frozenset(),
    AuctionStatus.SOLD: frozenset(),
    AuctionStatus.CANCELLED: frozenset(),
}


def can_transition(current: AuctionStatus, target: AuctionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(current: AuctionStatus, target: AuctionStatus) -> AuctionStatus:
    """Validate a status change and return the new status.

    Raises:
        StateConflictError: If the lifecycle does not allow current -> target
    """
    if not can_transition(current, target):
        raise StateConflictError(
            "INVALID_TRANSITION",
            f"Auction cannot move from {current.value} to {target.value}",
        )
    return target


def effective_status(status: AuctionStatus, start_time: datetime, now: datetime) -> AuctionStatus:
    """Stored status with the implicit upcoming -> active promotion applied."""
    if status == AuctionStatus.UPCOMING and start_time <= now:
        return AuctionStatus.ACTIVE
    return status


def initial_status(start_time: datetime, now: datetime) -> AuctionStatus:
    """Status a newly created auction starts in."""
    return AuctionStatus.ACTIVE if start_time <= now else AuctionStatus.UPCOMING


@dataclass(frozen=True)
class ListingCapabilities:
    """Sale mechanisms an auction offers, resolved once from its listing."""

    can_bid: bool
    can_buy_now: bool

    @classmethod
    def for_listing(
        cls, listing_type: ListingType, buy_now_price: Decimal | None
    ) -> "ListingCapabilities":
        return cls(
            can_bid=listing_type != ListingType.BUY_NOW,
            can_buy_now=listing_type != ListingType.AUCTION and buy_now_price is not None,
        )


@dataclass(frozen=True)
class AuctionSnapshot:
    """Immutable view of an auction row, the input of every pure decision."""

    auction_id: UUID
    seller_id: UUID
    status: AuctionStatus
    listing_type: ListingType
    start_time: datetime
    end_time: datetime
    current_bid: Decimal
    bid_increment: Decimal
    buy_now_price: Decimal | None = None
    bid_count: int = 0
    winner_id: UUID | None = None

    @classmethod
    def from_model(cls, auction: Auction) -> "AuctionSnapshot":
        return cls(
            auction_id=auction.auction_id,
            seller_id=auction.seller_id,
            status=AuctionStatus(auction.status),
            listing_type=ListingType(auction.listing_type),
            start_time=auction.start_time,
            end_time=auction.end_time,
            current_bid=auction.current_bid,
            bid_increment=auction.bid_increment,
            buy_now_price=auction.buy_now_price,
            bid_count=auction.bid_count,
            winner_id=auction.winner_id,
        )

    @cached_property
    def capabilities(self) -> ListingCapabilities:
        return ListingCapabilities.for_listing(self.listing_type, self.buy_now_price)

    @property
    def minimum_bid(self) -> Decimal:
        return self.current_bid + self.bid_increment

    def status_at(self, now: datetime) -> AuctionStatus:
        return effective_status(self.status, self.start_time, now)

    def is_open(self, now: datetime) -> bool:
        """True iff the auction is active and now lies in [start_time, end_time)."""
        return (
            self.status_at(now) == AuctionStatus.ACTIVE
            and self.start_time <= now < self.end_time
        )

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
