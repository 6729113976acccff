"""Auction model for listed items."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.base import TimestampMixin

if TYPE_CHECKING:
    from app.models.bid import Bid


class AuctionStatus(str, enum.Enum):
    """Lifecycle states of an auction."""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    ENDED = "ended"
    SOLD = "sold"
    CANCELLED = "cancelled"


class ListingType(str, enum.Enum):
    """Sale mechanisms a listing permits."""

    AUCTION = "auction"
    BUY_NOW = "buy_now"
    AUCTION_BUY_NOW = "auction_buy_now"


class Auction(Base, TimestampMixin):
    """Auction model representing one listed item and its sale state."""

    __tablename__ = "auctions"

    auction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    # Seller and winner come from the identity provider, referenced by id only
    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
    )
    winner_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    category: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )
    image_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    listing_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ListingType.AUCTION.value,
    )
    starting_bid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    current_bid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    bid_increment: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("5.00"),
    )
    buy_now_price: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    final_price: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    start_time: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    end_time: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    # End time as listed, before any soft-close extension
    scheduled_end_time: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AuctionStatus.UPCOMING.value,
    )
    bid_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    views: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # Relationships
    bids: Mapped[List["Bid"]] = relationship(
        "Bid",
        back_populates="auction",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("starting_bid > 0", name="chk_auction_starting_bid_positive"),
        CheckConstraint("bid_increment > 0", name="chk_auction_increment_positive"),
        CheckConstraint("current_bid >= starting_bid", name="chk_auction_current_bid"),
        CheckConstraint(
            "buy_now_price IS NULL OR buy_now_price > starting_bid",
            name="chk_auction_buy_now_price",
        ),
        CheckConstraint("end_time > start_time", name="chk_auction_time"),
        CheckConstraint("bid_count >= 0 AND views >= 0", name="chk_auction_counters"),
        CheckConstraint(
            "(status = 'sold' AND winner_id IS NOT NULL) "
            "OR (status <> 'sold' AND winner_id IS NULL)",
            name="chk_auction_winner_iff_sold",
        ),
        Index("idx_auctions_status_end", "status", "end_time"),
        Index("idx_auctions_seller_created", "seller_id", "created_at"),
    )
