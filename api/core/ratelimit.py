"""Rate limiting configuration using slowapi.

SCALABILITY NOTES:
- Production MUST use Redis: set RATELIMIT_STORAGE_URI="redis://host:port/db"
- memory:// storage does NOT work with multiple workers/replicas
- Each replica maintains separate counters, effectively multiplying limits by N
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import get_settings
from core.logger import get_logger

logger = get_logger(__name__)

settings = get_settings()

if not settings.debug and settings.ratelimit_storage_uri == "memory://":
    logger.warning(
        "ratelimit.memory_storage",
        detail=(
            "In-memory rate limiting does not work across workers/replicas. "
            "Set RATELIMIT_STORAGE_URI to a Redis URL."
        ),
    )


def _get_request_identifier(request: Request) -> str:
    """Admin id when the request is authenticated, otherwise the client IP.

    Admin dependencies run before the limit check, so admin writes are
    keyed per admin.
    """
    if hasattr(request.state, "user_id") and request.state.user_id:
        return f"admin:{request.state.user_id}"

    return get_remote_address(request)


_using_redis = settings.ratelimit_storage_uri.startswith("redis://")

limiter = Limiter(
    key_func=_get_request_identifier,
    default_limits=["100/minute"],
    storage_uri=settings.ratelimit_storage_uri,
    # Degrade to per-process limits if Redis is briefly unavailable
    in_memory_fallback_enabled=_using_redis,
    key_prefix="visibility:",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """429 with Retry-After set to the exceeded limit's window in seconds."""
    retry_after = exc.limit.limit.get_expiry()
    logger.warning(
        "ratelimit.exceeded",
        client=_get_request_identifier(request),
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(retry_after)},
    )


ADMIN_WRITE_LIMIT = "30/minute"

ADMIN_BATCH_LIMIT = "10/minute"

PUBLIC_READ_LIMIT = "120/minute"
