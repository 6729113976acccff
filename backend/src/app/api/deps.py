"""API dependencies for authentication, database access and services."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.redis import get_redis
from app.core.security import Principal, decode_access_token, principal_from_payload
from app.services.auction_service import AuctionService
from app.services.bid_service import BidService
from app.services.redis_service import RedisService
from app.services.settlement_service import SettlementService

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _principal_from_token(token: str) -> Principal:
    """Resolve a bearer token to a Principal.

    Raises:
        HTTPException: If the token is invalid or carries no usable subject
    """
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = principal_from_payload(payload)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Principal:
    """Get the authenticated caller from the bearer token."""
    return _principal_from_token(credentials.credentials)


async def get_optional_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(optional_security)],
) -> Principal | None:
    """Like get_current_principal, but anonymous callers get None."""
    if credentials is None:
        return None
    return _principal_from_token(credentials.credentials)


async def get_current_admin(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    """Get current caller and verify they are an admin.

    Raises:
        HTTPException: If the caller is not an admin
    """
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return principal


# Type aliases for cleaner dependency injection
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
OptionalPrincipal = Annotated[Principal | None, Depends(get_optional_principal)]
AdminPrincipal = Annotated[Principal, Depends(get_current_admin)]
DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_redis_service() -> RedisService | None:
    """Get RedisService on the shared pool, or None when locks are disabled."""
    if not settings.DISTRIBUTED_LOCKS_ENABLED:
        return None
    redis = await get_redis()
    return RedisService(redis)


RedisServiceDep = Annotated[RedisService | None, Depends(get_redis_service)]


async def get_auction_service(db: DbSession, redis_service: RedisServiceDep) -> AuctionService:
    return AuctionService(db, redis_service)


async def get_bid_service(db: DbSession, redis_service: RedisServiceDep) -> BidService:
    return BidService(db, redis_service)


async def get_settlement_service(
    db: DbSession, redis_service: RedisServiceDep
) -> SettlementService:
    return SettlementService(db, redis_service)


AuctionServiceDep = Annotated[AuctionService, Depends(get_auction_service)]
BidServiceDep = Annotated[BidService, Depends(get_bid_service)]
SettlementServiceDep = Annotated[SettlementService, Depends(get_settlement_service)]
