"""Business logic services."""

from app.services.auction_service import AuctionService, AuctionStatusView
from app.services.auction_store import AuctionStore
from app.services.bid_service import BidPlacement, BidService
from app.services.redis_service import RedisService
from app.services.settlement_service import AuctionResolution, SettlementService, SweepResult

__all__ = [
    "AuctionService",
    "AuctionStatusView",
    "AuctionStore",
    "BidService",
    "BidPlacement",
    "RedisService",
    "SettlementService",
    "SweepResult",
    "AuctionResolution",
]
