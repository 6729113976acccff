"""Auction schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.auction import AuctionStatus, ListingType
from app.schemas.bid import BidResponse


class AuctionCreate(BaseModel):
    """Schema for auction creation request.

    Business rules (positive prices, time ordering, buy-now price above the
    starting bid) are checked by AuctionService so they surface as
    VALIDATION_ERROR responses.
    """

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    image_url: str | None = Field(default=None, max_length=500)
    listing_type: ListingType = ListingType.AUCTION
    starting_bid: Decimal
    bid_increment: Decimal | None = None
    buy_now_price: Decimal | None = None
    # Defaults to now, so the auction opens immediately
    start_time: datetime | None = None
    end_time: datetime


class AuctionResponse(BaseModel):
    """Schema for auction response."""

    auction_id: UUID
    seller_id: UUID
    title: str
    description: str | None
    category: str | None
    image_url: str | None
    listing_type: ListingType
    starting_bid: Decimal
    current_bid: Decimal
    bid_increment: Decimal
    buy_now_price: Decimal | None
    final_price: Decimal | None
    start_time: datetime
    end_time: datetime
    status: AuctionStatus
    winner_id: UUID | None
    bid_count: int
    views: int
    created_at: datetime

    model_config = {"from_attributes": True}


class AuctionDetailResponse(AuctionResponse):
    """Schema for auction detail response with the latest bids."""

    scheduled_end_time: datetime
    recent_bids: list[BidResponse] = []


class AuctionListResponse(BaseModel):
    """Schema for auction list response."""

    auctions: list[AuctionResponse]
    total: int


class AuctionStatusResponse(BaseModel):
    """What a given caller can do on an auction right now."""

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


class AuctionResolutionResponse(BaseModel):
    auction_id: UUID
    status: AuctionStatus
    winner_id: UUID | None = None
    final_price: Decimal | None = None


class SweepResponse(BaseModel):
    """Schema for a manual expiry sweep run."""

    activated: int
    closed_count: int
    resolutions: list[AuctionResolutionResponse]
    failed: list[UUID]
