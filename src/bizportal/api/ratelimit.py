"""Rate limiting configuration for API endpoints.

Uses slowapi with in-memory storage; the portal core is a single process
behind its writer lock.
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from bizportal.shared.logging import get_logger

logger = get_logger(__name__)


def _get_rate_limit_key(request: Request) -> str:
    """Get rate limit key based on portal session or IP.

    Authenticated portal requests are keyed by session; invite exchange
    and other anonymous calls by client address.
    """
    session_id = getattr(request.state, "portal_session_id", None)
    if session_id is not None:
        return f"portal_session:{session_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=_get_rate_limit_key,
    storage_uri="memory://",
    strategy="fixed-window",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Custom handler for rate limit exceeded errors."""
    logger.warning(
        "rate_limit_exceeded",
        path=request.url.path,
        method=request.method,
        key=_get_rate_limit_key(request),
        limit=str(exc.detail),
    )
    retry_after = str(getattr(exc, "retry_after", 60))
    return JSONResponse(
        status_code=429,
        content={
            "error": "too_many_requests",
            "message": "Too many requests. Please wait a moment.",
            "details": {"limit": str(exc.detail)},
        },
        headers={"Retry-After": retry_after},
    )


# ----- Rate Limits -----
# Usage: @limiter.limit(RATE_LIMIT_INVITE_ACCEPT)

RATE_LIMIT_INVITE_ACCEPT = "10/minute"  # brute-forcing invite codes
RATE_LIMIT_PORTAL = "60/minute"  # authenticated portal calls
RATE_LIMIT_PORTAL_ACTION = "20/minute"  # estimate acceptance, contract signing
RATE_LIMIT_HEALTH = "60/minute"
