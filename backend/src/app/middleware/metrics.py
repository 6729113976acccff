"""Prometheus metrics middleware and auction core counters."""
import re
import time
from typing import Callable

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


# =============================================================================
# Prometheus Metrics Definitions
# =============================================================================

# Request metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
)

# Auction core metrics
BID_COUNTER = Counter(
    "auction_bids_total",
    "Bid attempts by outcome",
    ["outcome", "reason"],  # accepted/rejected/error, reason code or "none"
)

BID_LATENCY = Histogram(
    "auction_bid_latency_seconds",
    "Bid acceptance latency in seconds",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

BUY_NOW_COUNTER = Counter(
    "auction_buy_now_total",
    "Buy-now attempts by outcome",
    ["outcome", "reason"],
)

SOFT_CLOSE_EXTENSIONS = Counter(
    "auction_soft_close_extensions_total",
    "Bids that extended an auction's end time",
)

SWEEP_RESOLUTIONS = Counter(
    "auction_sweep_resolutions_total",
    "Auctions resolved by the expiry sweep",
    ["status"],  # sold, ended
)

SWEEP_FAILURES = Counter(
    "auction_sweep_failures_total",
    "Auctions the expiry sweep failed to resolve",
)

SWEEP_DURATION = Histogram(
    "auction_sweep_duration_seconds",
    "Expiry sweep pass duration in seconds",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


# =============================================================================
# Metrics Middleware
# =============================================================================

class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for all HTTP requests."""

    # Endpoints to normalize for metrics (reduce cardinality)
    ENDPOINT_PATTERNS = [
        (re.compile(r"^/api/v1/auctions/[^/]+/status$"), "/api/v1/auctions/{id}/status"),
        (re.compile(r"^/api/v1/auctions/[^/]+/buy-now$"), "/api/v1/auctions/{id}/buy-now"),
        (re.compile(r"^/api/v1/auctions/[^/]+/cancel$"), "/api/v1/auctions/{id}/cancel"),
        (re.compile(r"^/api/v1/auctions/(mine|close-expired)$"), None),
        (re.compile(r"^/api/v1/auctions/[^/]+$"), "/api/v1/auctions/{id}"),
        (re.compile(r"^/api/v1/auctions$"), "/api/v1/auctions"),
        (re.compile(r"^/api/v1/bids/[^/]+/history$"), "/api/v1/bids/{id}/history"),
        (re.compile(r"^/api/v1/bids(/me)?$"), None),
    ]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            ACTIVE_REQUESTS.dec()
            latency = time.perf_counter() - start_time
            endpoint = self._normalize_endpoint(request.url.path)

            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status=status_code,
            ).inc()

            REQUEST_LATENCY.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(latency)

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce metric cardinality."""
        path = path.rstrip("/") or "/"
        for pattern, normalized in self.ENDPOINT_PATTERNS:
            if pattern.match(path):
                return normalized or path

        # Keep health and other endpoints as-is
        if path in ("/health", "/metrics"):
            return path

        return "/other"


# =============================================================================
# Metrics Endpoint
# =============================================================================

async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics scrape endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# =============================================================================
# Helper Functions for Manual Metric Recording
# =============================================================================

def record_bid(outcome: str, reason: str | None = None, duration: float | None = None) -> None:
    """Record one bid attempt."""
    BID_COUNTER.labels(outcome=outcome, reason=reason or "none").inc()
    if duration is not None:
        BID_LATENCY.observe(duration)


def record_soft_close_extension() -> None:
    SOFT_CLOSE_EXTENSIONS.inc()


def record_buy_now(outcome: str, reason: str | None = None) -> None:
    BUY_NOW_COUNTER.labels(outcome=outcome, reason=reason or "none").inc()


def record_sweep(resolved: dict[str, int], failed: int, duration: float) -> None:
    """Record one expiry sweep pass."""
    for status, count in resolved.items():
        if count:
            SWEEP_RESOLUTIONS.labels(status=status).inc(count)
    if failed:
        SWEEP_FAILURES.inc(failed)
    SWEEP_DURATION.observe(duration)
