import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from app.api.v1 import auctions, bids
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import AuctionError
from app.core.redis import close_redis, get_redis
from app.middleware.metrics import PrometheusMiddleware, metrics_endpoint
from app.services.redis_service import RedisService
from app.services.settlement_service import SettlementService

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Background task control
_expiry_sweep_task: asyncio.Task | None = None


async def run_expiry_sweep() -> None:
    """One sweep pass: promote started auctions, then resolve expired ones.

    With distributed locks enabled only the instance holding
    lock:sweep:expiry runs the pass; the others skip this tick.
    """
    redis_service = None
    owner_id = None
    if settings.DISTRIBUTED_LOCKS_ENABLED:
        redis_service = RedisService(await get_redis())
        try:
            owner_id = await redis_service.try_acquire_sweep_lock(
                ttl=settings.EXPIRY_SWEEP_INTERVAL_SECONDS
            )
        except RedisError as e:
            logger.warning(f"Sweep leader lock unavailable, sweeping without it: {e}")
            redis_service = None
        else:
            if owner_id is None:
                logger.debug("Another instance holds the sweep lock, skipping this tick")
                return

    try:
        async for db in get_db():
            settlement_service = SettlementService(db, redis_service)
            await settlement_service.activate_upcoming()
            await settlement_service.close_expired_auctions()
            break  # Only run once per iteration
    finally:
        if owner_id is not None:
            try:
                await redis_service.release_sweep_lock(owner_id)
            except RedisError as e:
                logger.warning(f"Failed to release sweep lock: {e}")


async def expiry_sweep_loop():
    """Background task resolving expired auctions every EXPIRY_SWEEP_INTERVAL_SECONDS."""
    while True:
        try:
            await run_expiry_sweep()
            await asyncio.sleep(settings.EXPIRY_SWEEP_INTERVAL_SECONDS)

        except asyncio.CancelledError:
            logger.info("Expiry sweep loop cancelled")
            break
        except Exception as e:
            logger.error(f"Error in expiry sweep loop: {e}")
            await asyncio.sleep(settings.EXPIRY_SWEEP_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    global _expiry_sweep_task

    # Startup
    logger.info("Starting application...")

    if settings.EXPIRY_SWEEP_ENABLED:
        logger.info("Starting expiry sweep...")
        _expiry_sweep_task = asyncio.create_task(expiry_sweep_loop())

    yield

    # Shutdown
    logger.info("Stopping background tasks")

    if _expiry_sweep_task:
        _expiry_sweep_task.cancel()
        try:
            await _expiry_sweep_task
        except asyncio.CancelledError:
            pass
        _expiry_sweep_task = None

    await close_redis()


app = FastAPI(
    title="Auction House",
    version="1.0.0",
    description="Auction marketplace: bidding, buy-now and expiry settlement",
    lifespan=lifespan,
)

# Prometheus Metrics Middleware (must be first to capture all requests)
app.add_middleware(PrometheusMiddleware)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuctionError)
async def auction_error_handler(request: Request, exc: AuctionError) -> JSONResponse:
    """Render domain errors as {"detail": {"code", "message"}}."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


# Include API routers
app.include_router(auctions.router, prefix="/api/v1/auctions", tags=["auctions"])
app.include_router(bids.router, prefix="/api/v1/bids", tags=["bids"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


# Prometheus metrics endpoint
app.add_route("/metrics", metrics_endpoint)
