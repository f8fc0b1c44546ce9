"""
Rate Limiting for explicit user actions

Like/unlike requests are throttled per client address with slowapi,
independently of the view rate window kept in the view store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from churchsite.config import settings

# Create rate limiter instance
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",  # Per-process counters; point at Redis when running several workers
    headers_enabled=True,  # Include rate limit headers in responses
)


def like_rate_limit() -> str:
    """Current like/unlike limit, read at request time so tests can tune it."""
    return settings.like_rate_limit


def get_rate_limiter():
    """Get the rate limiter instance."""
    return limiter


def configure_rate_limiting(app):
    """
    Configure rate limiting for the FastAPI application.

    The RateLimitExceeded handler is registered with the other exception
    handlers so throttled responses share the error envelope.

    Args:
        app: FastAPI application instance
    """
    app.state.limiter = limiter
