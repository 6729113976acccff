"""API v1 routers."""

from app.api.v1 import auctions, bids

__all__ = ["auctions", "bids"]
