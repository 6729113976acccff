"""Bid model for auction bidding records."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.core.clock import utcnow
from app.core.database import Base

if TYPE_CHECKING:
    from app.models.auction import Auction


class Bid(Base):
    """Bid model representing one accepted, immutable bid on an auction."""

    __tablename__ = "bids"

    bid_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    auction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("auctions.auction_id", ondelete="CASCADE"),
        nullable=False,
    )
    bidder_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    # Relationships
    auction: Mapped["Auction"] = relationship("Auction", back_populates="bids")

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_bid_amount_positive"),
        # Accepted amounts strictly increase, so no two bids on an auction share one
        UniqueConstraint("auction_id", "amount", name="uq_bids_auction_amount"),
        Index("idx_bids_auction_created", "auction_id", "created_at"),
        Index("idx_bids_bidder_created", "bidder_id", "created_at"),
    )
