"""
Rate limiting configuration and setup.

Uses slowapi to cap how often operators can start runs by hand.
Manual triggers hit the market-data provider, which is itself rate limited.
"""

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from pricesync.core.config import settings

DEFAULT_RATE_LIMIT = settings.rate_limit_default
TRIGGER_RATE_LIMIT = settings.rate_limit_trigger

limiter = Limiter(key_func=get_remote_address, default_limits=[DEFAULT_RATE_LIMIT])


async def rate_limit_exceeded_handler(
    _request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """Return a 429 JSON body in the same shape as the domain error responses."""
    return JSONResponse(
        status_code=429,
        content={"error": "Rate limit exceeded", "detail": str(exc.detail)},
    )
