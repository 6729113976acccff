"""Auction API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.api.deps import (
    AdminPrincipal,
    AuctionServiceDep,
    CurrentPrincipal,
    OptionalPrincipal,
    SettlementServiceDep,
)
from app.core.clock import utcnow
from app.models.auction import Auction, AuctionStatus
from app.schemas.auction import (
    AuctionCreate,
    AuctionDetailResponse,
    AuctionListResponse,
    AuctionResolutionResponse,
    AuctionResponse,
    AuctionStatusResponse,
    SweepResponse,
)
from app.schemas.bid import BidResponse
from app.services.auction_state import effective_status

router = APIRouter()


def _auction_response(auction: Auction) -> AuctionResponse:
    """Serialize an auction, reporting its effective status."""
    response = AuctionResponse.model_validate(auction)
    response.status = effective_status(response.status, auction.start_time, utcnow())
    return response


@router.post("", response_model=AuctionResponse, status_code=status.HTTP_201_CREATED)
async def create_auction(
    auction_data: AuctionCreate,
    principal: CurrentPrincipal,
    service: AuctionServiceDep,
):
    """List a new auction. The caller becomes the seller."""
    auction = await service.create_auction(auction_data, principal.user_id)
    return _auction_response(auction)


@router.get("", response_model=AuctionListResponse)
async def list_auctions(
    service: AuctionServiceDep,
    status_filter: AuctionStatus | None = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
):
    """Get auctions with pagination, optionally filtered by status."""
    auctions, total = await service.list_auctions(status=status_filter, skip=skip, limit=limit)
    return AuctionListResponse(
        auctions=[_auction_response(auction) for auction in auctions],
        total=total,
    )


@router.get("/mine", response_model=AuctionListResponse)
async def list_my_auctions(
    principal: CurrentPrincipal,
    service: AuctionServiceDep,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
):
    """Get the caller's own listings."""
    auctions, total = await service.get_seller_auctions(principal.user_id, skip=skip, limit=limit)
    return AuctionListResponse(
        auctions=[_auction_response(auction) for auction in auctions],
        total=total,
    )


@router.post("/close-expired", response_model=SweepResponse)
async def close_expired_auctions(
    admin: AdminPrincipal,
    settlement_service: SettlementServiceDep,
):
    """Run one expiry sweep now (admin only)."""
    activated = await settlement_service.activate_upcoming()
    result = await settlement_service.close_expired_auctions()
    return SweepResponse(
        activated=activated,
        closed_count=result.closed_count,
        resolutions=[
            AuctionResolutionResponse(
                auction_id=resolution.auction_id,
                status=resolution.status,
                winner_id=resolution.winner_id,
                final_price=resolution.final_price,
            )
            for resolution in result.resolutions
        ],
        failed=[failure.auction_id for failure in result.failed],
    )


@router.get("/{auction_id}", response_model=AuctionDetailResponse)
async def get_auction(
    auction_id: UUID,
    service: AuctionServiceDep,
):
    """Get auction by ID with its latest bids. Counts as a view."""
    auction, bids = await service.get_auction(auction_id)
    response = AuctionDetailResponse.model_validate(auction)
    response.status = effective_status(response.status, auction.start_time, utcnow())
    response.recent_bids = [BidResponse.model_validate(bid) for bid in bids]
    return response


@router.get("/{auction_id}/status", response_model=AuctionStatusResponse)
async def get_auction_status(
    auction_id: UUID,
    principal: OptionalPrincipal,
    service: AuctionServiceDep,
):
    """What the caller can do on the auction right now."""
    view = await service.get_auction_status(
        auction_id, user_id=principal.user_id if principal else None
    )
    return AuctionStatusResponse(
        auction_id=view.auction_id,
        status=view.status,
        is_active=view.is_active,
        can_bid=view.can_bid,
        can_buy_now=view.can_buy_now,
        min_bid=view.min_bid,
        current_bid=view.current_bid,
        buy_now_price=view.buy_now_price,
        ends_in_ms=view.ends_in_ms,
        bid_count=view.bid_count,
        is_winning=view.is_winning,
    )


@router.post("/{auction_id}/buy-now", response_model=AuctionResponse)
async def buy_now(
    auction_id: UUID,
    principal: CurrentPrincipal,
    settlement_service: SettlementServiceDep,
):
    """Buy the item outright at its buy-now price."""
    auction = await settlement_service.buy_now(auction_id, principal.user_id)
    return _auction_response(auction)


@router.post("/{auction_id}/cancel", response_model=AuctionResponse)
async def cancel_auction(
    auction_id: UUID,
    principal: CurrentPrincipal,
    service: AuctionServiceDep,
):
    """Withdraw an auction without bids (seller or admin)."""
    auction = await service.cancel_auction(auction_id, principal)
    return _auction_response(auction)
