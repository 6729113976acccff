"""SQLAlchemy ORM models."""

from app.models.auction import Auction, AuctionStatus, ListingType
from app.models.base import TimestampMixin
from app.models.bid import Bid

__all__ = [
    "TimestampMixin",
    "Auction",
    "AuctionStatus",
    "ListingType",
    "Bid",
]
