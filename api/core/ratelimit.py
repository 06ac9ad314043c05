"""Rate limiting for the habit streaks API using slowapi.

Limits are keyed by the gateway-asserted user id, so one user shares a
budget across devices; anonymous calls (health probes) are keyed by IP.

SCALABILITY NOTES:
- memory:// keeps separate counters per worker/replica, so the effective
  limit is multiplied by the number of processes
- Set RATELIMIT_STORAGE_URI="redis://host:port/db" to share counters
"""

import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _get_request_identifier(request: Request) -> str:
    """Rate limit key: ``user:<id>`` once ``require_auth`` ran, else client IP."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"

    return get_remote_address(request)


_using_redis = settings.ratelimit_storage_uri.startswith("redis://")

limiter = Limiter(
    key_func=_get_request_identifier,
    default_limits=["100/minute"],
    storage_uri=settings.ratelimit_storage_uri,
    # Degrade to in-memory counters while Redis is unavailable
    in_memory_fallback_enabled=_using_redis,
    key_prefix="habits:",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    logger.warning(
        "ratelimit.exceeded",
        extra={"key": _get_request_identifier(request), "limit": exc.detail},
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )


# Completion reads: habit list, completed days, ranges, streak detail
READ_LIMIT = "60/minute"

# Toggles and per-day metadata updates
WRITE_LIMIT = "60/minute"

CREATE_LIMIT = "30/minute"

# Aggregates scan a month or every habit of the user
REPORT_LIMIT = "30/minute"

HEALTH_LIMIT = "30/minute"
