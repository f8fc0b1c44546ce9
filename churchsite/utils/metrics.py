"""
Prometheus Metrics Module

Provides application metrics using the prometheus_client library.
Metrics are exposed at /metrics endpoint for Prometheus scraping.
"""

import time
from collections.abc import Callable

from prometheus_client import Counter, Gauge, Histogram, Info
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# =============================================================================
# Application Info
# =============================================================================

APP_INFO = Info("churchsite_app", "Church site application information")


def set_app_info(version: str, environment: str) -> None:
    """Set application info labels."""
    APP_INFO.info({"version": version, "environment": environment})


# =============================================================================
# HTTP Request Metrics
# =============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "churchsite_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "churchsite_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "churchsite_http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method"],
)

# Redis connectivity, set by CacheManager / RedisViewStore on connect
REDIS_CONNECTED = Gauge(
    "churchsite_redis_connected",
    "Redis connection status (1 = connected, 0 = disconnected)",
    ["role"],  # "cache" or "view_store"
)

# =============================================================================
# Cache Metrics
# =============================================================================

CACHE_HITS_TOTAL = Counter(
    "churchsite_cache_hits_total",
    "Total cache hits",
    ["cache_type"],
)

CACHE_MISSES_TOTAL = Counter(
    "churchsite_cache_misses_total",
    "Total cache misses",
    ["cache_type"],
)

# =============================================================================
# Engagement Metrics
# =============================================================================

VIEW_EVENTS_TOTAL = Counter(
    "churchsite_view_events_total",
    "View tracking outcomes",
    ["content_type", "outcome"],  # recorded, duplicate, rate_limited, bot, unavailable
)

LIKE_OPERATIONS_TOTAL = Counter(
    "churchsite_like_operations_total",
    "Like ledger operations",
    ["content_type", "operation"],  # like, unlike
)

ENGAGEMENT_PINGS_TOTAL = Counter(
    "churchsite_engagement_pings_total",
    "Engagement pings received",
    ["content_type"],
)

SHARES_TOTAL = Counter(
    "churchsite_shares_total",
    "Shares recorded",
    ["content_type", "platform"],
)

STATS_RECOMPUTES_TOTAL = Counter(
    "churchsite_stats_recomputes_total",
    "Stats snapshot recomputations",
    ["content_type", "reason"],  # missing, drift, expired
)

# =============================================================================
# Application Health Metrics
# =============================================================================

APP_UPTIME_SECONDS = Gauge(
    "churchsite_uptime_seconds",
    "Application uptime in seconds",
)

HEALTH_CHECK_STATUS = Gauge(
    "churchsite_health_check_status",
    "Health check status (1=healthy, 0=unhealthy)",
    ["service"],  # database, redis
)

# =============================================================================
# Prometheus Metrics Middleware
# =============================================================================


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect HTTP request metrics for Prometheus.

    Tracks:
    - Request count by method, endpoint, and status code
    - Request duration by method and endpoint
    - In-progress requests by method
    """

    EXCLUDED_PATHS = {"/metrics", "/health", "/ready", "/favicon.ico"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.EXCLUDED_PATHS:
            return await call_next(request)

        method = request.method
        endpoint = self._normalize_path(path)

        HTTP_REQUESTS_IN_PROGRESS.labels(method=method).inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            status_code = 500
            raise
        finally:
            duration = time.perf_counter() - start_time
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, endpoint=endpoint).observe(duration)
            HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
            HTTP_REQUESTS_IN_PROGRESS.labels(method=method).dec()

        return response

    @staticmethod
    def _normalize_path(path: str) -> str:
        """
        Normalize URL path for metrics by replacing dynamic segments.

        Slugs sit right after the blog prefixes, so they are collapsed too:
            /api/blog/welcome-home/stats -> /api/blog/{slug}/stats
            /api/admin/analytics/church/12 -> /api/admin/analytics/church/{id}
        """
        parts = path.split("/")
        normalized = []
        previous = ""

        for part in parts:
            if part.isdigit():
                normalized.append("{id}")
            elif previous in ("blog", "community-blogs") and part:
                normalized.append("{slug}")
            else:
                normalized.append(part)
            previous = part

        return "/".join(normalized)


# =============================================================================
# Helper Functions
# =============================================================================


def record_cache_hit(cache_type: str = "default") -> None:
    """Record a cache hit."""
    CACHE_HITS_TOTAL.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str = "default") -> None:
    """Record a cache miss."""
    CACHE_MISSES_TOTAL.labels(cache_type=cache_type).inc()


def record_view_outcome(content_type: str, outcome: str) -> None:
    VIEW_EVENTS_TOTAL.labels(content_type=content_type, outcome=outcome).inc()


def record_like_operation(content_type: str, operation: str) -> None:
    LIKE_OPERATIONS_TOTAL.labels(content_type=content_type, operation=operation).inc()


def record_engagement_ping(content_type: str) -> None:
    ENGAGEMENT_PINGS_TOTAL.labels(content_type=content_type).inc()


def record_share(content_type: str, platform: str) -> None:
    SHARES_TOTAL.labels(content_type=content_type, platform=platform).inc()


def record_stats_recompute(content_type: str, reason: str) -> None:
    STATS_RECOMPUTES_TOTAL.labels(content_type=content_type, reason=reason).inc()


def update_health_status(service: str, healthy: bool) -> None:
    """Update health check status for a service."""
    HEALTH_CHECK_STATUS.labels(service=service).set(1 if healthy else 0)


def update_uptime(start_time: float) -> None:
    """Update application uptime."""
    APP_UPTIME_SECONDS.set(time.time() - start_time)
