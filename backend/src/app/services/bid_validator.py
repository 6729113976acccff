"""Bid and buy-now eligibility rules.

Pure functions of (auction snapshot, proposal, caller, now). They never touch
the store; services call them on a row read inside the locking transaction.

Bid checks, in order:
1. auction is active (upcoming auctions report AUCTION_NOT_STARTED)
2. start_time <= now < end_time
3. bidder is not the seller
4. listing permits bidding
5. amount >= current_bid + bid_increment
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from app.core.exceptions import StateConflictError
from app.models.auction import AuctionStatus
from app.services.auction_state import AuctionSnapshot

AUCTION_NOT_STARTED = "AUCTION_NOT_STARTED"
AUCTION_NOT_ACTIVE = "AUCTION_NOT_ACTIVE"
AUCTION_ENDED = "AUCTION_ENDED"
SELF_BID = "SELF_BID"
BIDDING_NOT_ALLOWED = "BIDDING_NOT_ALLOWED"
BID_TOO_LOW = "BID_TOO_LOW"
BUY_NOW_UNAVAILABLE = "BUY_NOW_UNAVAILABLE"
BUY_NOW_NOT_ALLOWED = "BUY_NOW_NOT_ALLOWED"
BUY_NOW_CLOSED = "BUY_NOW_CLOSED"
SELF_PURCHASE = "SELF_PURCHASE"


@dataclass(frozen=True)
class Evaluation:
    """Outcome of an eligibility check."""

    accepted: bool
    reason: str | None = None
    message: str = ""

    def raise_if_rejected(self) -> None:
        if not self.accepted:
            raise StateConflictError(self.reason, self.message)


@dataclass(frozen=True)
class BidEvaluation(Evaluation):
    minimum_bid: Decimal | None = None


ACCEPTED = Evaluation(accepted=True)


def _check_window(snapshot: AuctionSnapshot, now: datetime) -> Evaluation:
    """Checks 1 and 2: lifecycle status, then the time window."""
    status = snapshot.status_at(now)
    if status == AuctionStatus.UPCOMING:
        return Evaluation(False, AUCTION_NOT_STARTED, "Auction has not started yet")
    if status != AuctionStatus.ACTIVE:
        return Evaluation(False, AUCTION_NOT_ACTIVE, f"Auction is not active (status: {status.value})")
    if now < snapshot.start_time:
        return Evaluation(False, AUCTION_NOT_STARTED, "Auction has not started yet")
    if now >= snapshot.end_time:
        return Evaluation(False, AUCTION_ENDED, "Auction has ended")
    return ACCEPTED


def minimum_bid(snapshot: AuctionSnapshot) -> Decimal:
    return snapshot.minimum_bid


def evaluate_bid(
    snapshot: AuctionSnapshot,
    amount: Decimal,
    bidder_id: UUID,
    now: datetime,
) -> BidEvaluation:
    """Decide whether ``bidder_id`` may bid ``amount`` on the auction at ``now``."""
    required = minimum_bid(snapshot)

    window = _check_window(snapshot, now)
    if not window.accepted:
        return BidEvaluation(False, window.reason, window.message, required)

    if bidder_id == snapshot.seller_id:
        return BidEvaluation(False, SELF_BID, "You cannot bid on your own auction", required)

    if not snapshot.capabilities.can_bid:
        return BidEvaluation(
            False, BIDDING_NOT_ALLOWED, "This listing is buy-now only", required
        )

    if amount < required:
        return BidEvaluation(
            False,
            BID_TOO_LOW,
            f"Bid must be at least {required} (current bid + increment)",
            required,
        )

    return BidEvaluation(True, minimum_bid=required)


def evaluate_buy_now(
    snapshot: AuctionSnapshot,
    buyer_id: UUID,
    now: datetime,
) -> Evaluation:
    """Decide whether ``buyer_id`` may buy the item outright at ``now``.

    Buy-now is withdrawn once the first bid is accepted, so a bid and a
    buy-now racing on the same auction can never both succeed.
    """
    if snapshot.buy_now_price is None:
        return Evaluation(False, BUY_NOW_UNAVAILABLE, "This auction does not have a buy now option")

    if not snapshot.capabilities.can_buy_now:
        return Evaluation(
            False, BUY_NOW_NOT_ALLOWED, "Buy now is not available for auction-only listings"
        )

    window = _check_window(snapshot, now)
    if not window.accepted:
        return window

    if buyer_id == snapshot.seller_id:
        return Evaluation(False, SELF_PURCHASE, "You cannot buy your own item")

    if snapshot.bid_count > 0:
        return Evaluation(
            False, BUY_NOW_CLOSED, "Buy now is no longer available once bidding has started"
        )

    return ACCEPTED
