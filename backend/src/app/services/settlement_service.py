"""Settlement service: buy-now and the expiry sweep."""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import to_naive_utc, utcnow
from app.core.exceptions import AuctionError
from app.core.transactions import run_in_transaction
from app.middleware.metrics import record_buy_now, record_sweep
from app.models.auction import Auction, AuctionStatus
from app.services.auction_state import AuctionSnapshot, transition
from app.services.auction_store import AuctionStore
from app.services.bid_validator import evaluate_buy_now
from app.services.redis_service import RedisService, auction_guard

logger = logging.getLogger(__name__)


@dataclass
class AuctionResolution:
    """How the sweep resolved one expired auction."""

    auction_id: UUID
    status: AuctionStatus
    winner_id: UUID | None = None
    final_price: Decimal | None = None


@dataclass
class SweepFailure:
    auction_id: UUID
    error: str


@dataclass
class SweepResult:
    """Outcome of one expiry sweep pass."""

    resolutions: list[AuctionResolution] = field(default_factory=list)
    failed: list[SweepFailure] = field(default_factory=list)

    @property
    def closed_count(self) -> int:
        return len(self.resolutions)

    def count_by_status(self) -> dict[str, int]:
        counts = {AuctionStatus.SOLD.value: 0, AuctionStatus.ENDED.value: 0}
        for resolution in self.resolutions:
            counts[resolution.status.value] += 1
        return counts


class SettlementService:
    """Service class for buy-now settlement and auction expiry."""

    def __init__(self, db: AsyncSession, redis_service: RedisService | None = None):
        self.db = db
        self.redis_service = redis_service
        self.store = AuctionStore(db)

    # ==================== Buy Now ====================

    async def buy_now(self, auction_id: UUID, buyer_id: UUID) -> Auction:
        """Buy the item outright, closing the auction as sold to ``buyer_id``.

        Runs under the same per-auction lock and transaction discipline as
        bidding, so of two concurrent buy-now attempts exactly one wins and
        the other sees a closed auction.

        Raises:
            NotFoundError: Unknown auction
            StateConflictError: Buy-now not possible, ``code`` names the reason
            ConcurrencyError: Conflicts persisted past the retry budget
        """
        try:
            async with auction_guard(self.redis_service, auction_id):
                auction = await run_in_transaction(
                    self.db,
                    lambda: self._settle_buy_now(auction_id, buyer_id),
                    label=f"buy_now:{auction_id}",
                )
        except AuctionError as e:
            record_buy_now("rejected" if e.status_code < 500 else "error", e.code)
            raise

        record_buy_now("accepted")
        logger.info(f"Auction {auction_id} sold via buy-now to {buyer_id} for {auction.final_price}")
        return auction

    async def _settle_buy_now(self, auction_id: UUID, buyer_id: UUID) -> Auction:
        auction = await self.store.get_for_update(auction_id)
        now = utcnow()
        snapshot = AuctionSnapshot.from_model(auction)

        evaluate_buy_now(snapshot, buyer_id, now).raise_if_rejected()

        status = transition(snapshot.status_at(now), AuctionStatus.SOLD)
        return await self.store.apply_changes(
            auction,
            status=status.value,
            winner_id=buyer_id,
            final_price=auction.buy_now_price,
            end_time=now,
        )

    # ==================== Expiry Sweep ====================

    async def activate_upcoming(self, now: datetime | None = None) -> int:
        """Persist upcoming -> active for auctions whose start time has passed.

        Reads already treat such auctions as active; this only makes the
        stored status catch up.

        Returns:
            Number of auctions activated
        """
        now = to_naive_utc(now) if now is not None else utcnow()
        activated = await run_in_transaction(
            self.db,
            lambda: self.store.activate_due(now),
            label="activate_upcoming",
        )
        if activated:
            logger.info(f"Activated {activated} upcoming auctions")
        return activated

    async def close_expired_auctions(self, now: datetime | None = None) -> SweepResult:
        """Resolve every auction whose end time has passed while still open.

        Each auction is resolved in its own transaction:
        - at least one bid: sold to the leading bidder at the leading amount
        - no bids: ended

        A failure on one auction is logged and recorded, and the batch
        continues; the auction is picked up again on the next pass. Running
        the sweep twice resolves nothing the second time.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            SweepResult listing resolutions and failures
        """
        start = time.perf_counter()
        now = to_naive_utc(now) if now is not None else utcnow()
        result = SweepResult()

        auction_ids = await self.store.expired_auction_ids(now)
        # End the read transaction before per-auction writes begin
        await self.db.rollback()

        for auction_id in auction_ids:
            try:
                async with auction_guard(self.redis_service, auction_id):
                    resolution = await run_in_transaction(
                        self.db,
                        lambda: self._resolve_expired(auction_id, now),
                        label=f"sweep:{auction_id}",
                    )
            except Exception as e:
                await self.db.rollback()
                logger.error(f"Failed to resolve expired auction {auction_id}: {e}")
                result.failed.append(SweepFailure(auction_id=auction_id, error=str(e)))
                continue

            if resolution is not None:
                result.resolutions.append(resolution)

        record_sweep(result.count_by_status(), len(result.failed), time.perf_counter() - start)
        if auction_ids:
            logger.info(
                f"Expiry sweep closed {result.closed_count} auctions, {len(result.failed)} failed"
            )
        return result

    async def _resolve_expired(
        self, auction_id: UUID, now: datetime
    ) -> AuctionResolution | None:
        """Resolve one auction under its row lock. None if it needs nothing."""
        auction = await self.store.get_for_update(auction_id)
        snapshot = AuctionSnapshot.from_model(auction)

        # Re-check: a late bid may have extended it, or another pass closed it
        if snapshot.is_terminal() or snapshot.end_time > now:
            return None

        # An upcoming auction whose whole window has passed was implicitly active
        current = snapshot.status_at(now)
        leading = await self.store.leading_bid(auction_id)

        if leading is None:
            status = transition(current, AuctionStatus.ENDED)
            await self.store.apply_changes(auction, status=status.value)
            logger.info(f"Auction {auction_id} ended with no bids")
            return AuctionResolution(auction_id=auction_id, status=status)

        status = transition(current, AuctionStatus.SOLD)
        await self.store.apply_changes(
            auction,
            status=status.value,
            winner_id=leading.bidder_id,
            final_price=leading.amount,
        )
        logger.info(f"Auction {auction_id} sold to {leading.bidder_id} for {leading.amount}")
        return AuctionResolution(
            auction_id=auction_id,
            status=status,
            winner_id=leading.bidder_id,
            final_price=leading.amount,
        )
