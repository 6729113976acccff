"""Pydantic schemas for request/response validation."""

from app.schemas.auction import (
    AuctionCreate,
    AuctionDetailResponse,
    AuctionListResponse,
    AuctionResolutionResponse,
    AuctionResponse,
    AuctionStatusResponse,
    SweepResponse,
)
from app.schemas.bid import BidCreate, BidHistoryResponse, BidPlacementResponse, BidResponse

__all__ = [
    "AuctionCreate",
    "AuctionResponse",
    "AuctionDetailResponse",
    "AuctionListResponse",
    "AuctionStatusResponse",
    "AuctionResolutionResponse",
    "SweepResponse",
    "BidCreate",
    "BidResponse",
    "BidPlacementResponse",
    "BidHistoryResponse",
]
