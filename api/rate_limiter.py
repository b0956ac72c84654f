"""
Rate limiting configuration for the auth sync admin API.

Each sync fans out to one edge function call that may create many auth
identities, so the sync route gets a much tighter limit than the default.
Limits are configurable via environment variables.
"""
import os
import hashlib
import logging
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("auth-sync.rate_limiter")

# Format: "number/period" where period can be: second, minute, hour, day
DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "60/minute")
SYNC_RATE_LIMIT = os.getenv("RATE_LIMIT_SYNC", "5/minute")

logger.info(f"Rate limiting configured - Default: {DEFAULT_RATE_LIMIT}, Sync: {SYNC_RATE_LIMIT}")


def get_caller_key(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    Uses a hash of the Bearer token when present so admins behind the same
    proxy don't share a bucket; falls back to the client IP.
    """
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        if token:
            return "token:" + hashlib.sha256(token.encode()).hexdigest()[:16]

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_caller_key,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded responses.

    Returns:
        JSONResponse with 429 status code and Retry-After header
    """
    logger.warning(f"Rate limit exceeded on path {request.url.path}")

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": "Too many requests. Please slow down and try again later.",
            "detail": str(exc.detail) if hasattr(exc, 'detail') else "Rate limit exceeded",
            "retry_after": getattr(exc, 'retry_after', 60)
        },
        headers={
            "Retry-After": str(getattr(exc, 'retry_after', 60))
        }
    )
