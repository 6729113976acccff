"""Bid schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel


class BidCreate(BaseModel):
    """Schema for bid creation request."""

    auction_id: UUID
    # Positivity and two-decimal precision are enforced by BidService
    amount: Decimal


class BidResponse(BaseModel):
    """Schema for bid response."""

    bid_id: UUID
    auction_id: UUID
    bidder_id: UUID
    amount: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}


class BidPlacementResponse(BaseModel):
    """Schema for an accepted bid and the auction state it produced."""

    bid: BidResponse
    current_bid: Decimal
    min_next_bid: Decimal
    bid_count: int
    end_time: datetime
    extended: bool


class BidHistoryResponse(BaseModel):
    """Schema for bid history response."""

    bids: list[BidResponse]
    total: int
