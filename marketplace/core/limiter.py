# File: marketplace/core/limiter.py

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from marketplace.core.config import settings

# Request counters live in the configured store (Redis in production), keyed by client IP.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
    default_limits=[settings.rate_limit],
)


async def custom_rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """
    Custom exception handler for rate-limited requests to return a JSON response.
    """
    return JSONResponse(
        status_code=429,
        content={
            "ok": False,
            "reason": "rate_limited",
            "detail": f"Too Many Requests: rate limit exceeded ({exc.detail})",
        },
    )
