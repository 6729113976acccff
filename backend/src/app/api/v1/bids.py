"""Bidding API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.api.deps import BidServiceDep, CurrentPrincipal
from app.schemas.bid import BidCreate, BidHistoryResponse, BidPlacementResponse, BidResponse

router = APIRouter()


@router.post("", response_model=BidPlacementResponse, status_code=status.HTTP_201_CREATED)
async def place_bid(
    bid_data: BidCreate,
    principal: CurrentPrincipal,
    bid_service: BidServiceDep,
):
    """Place a bid on an auction.

    Rejections come back as {"detail": {"code", "message"}} with the reason
    code, e.g. BID_TOO_LOW or AUCTION_ENDED.
    """
    placement = await bid_service.place_bid(
        auction_id=bid_data.auction_id,
        amount=bid_data.amount,
        bidder_id=principal.user_id,
    )
    auction = placement.auction

    return BidPlacementResponse(
        bid=BidResponse.model_validate(placement.bid),
        current_bid=auction.current_bid,
        min_next_bid=auction.current_bid + auction.bid_increment,
        bid_count=auction.bid_count,
        end_time=auction.end_time,
        extended=placement.extended,
    )


@router.get("/me", response_model=BidHistoryResponse)
async def get_my_bids(
    principal: CurrentPrincipal,
    bid_service: BidServiceDep,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
):
    """Get the caller's bids across all auctions, newest first."""
    bids, total = await bid_service.get_user_bids(principal.user_id, skip=skip, limit=limit)
    return BidHistoryResponse(
        bids=[BidResponse.model_validate(bid) for bid in bids],
        total=total,
    )


@router.get("/{auction_id}/history", response_model=BidHistoryResponse)
async def get_bid_history(
    auction_id: UUID,
    bid_service: BidServiceDep,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
):
    """Get all bids on an auction, newest first."""
    bids, total = await bid_service.get_bid_history(auction_id, skip=skip, limit=limit)
    return BidHistoryResponse(
        bids=[BidResponse.model_validate(bid) for bid in bids],
        total=total,
    )
