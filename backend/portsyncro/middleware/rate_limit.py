# backend/portsyncro/middleware/rate_limit.py
"""
Coarse per-address rate limiting with slowapi.

This limiter protects the cheap endpoints (health, holdings, snapshots
listing) per client address. Price resolution is additionally guarded by
the per-identity sliding window in portsyncro.services.rate_limiter, which
produces the price API's own 429 contract.

Key by: Client IP address (X-Forwarded-For only from trusted proxies)
Storage: In-memory

Usage:
    from portsyncro.middleware.rate_limit import limiter, RATE_LIMIT_HEALTH

    @router.get("/health")
    @limiter.limit(RATE_LIMIT_HEALTH)
    async def health(request: Request):
        ...
"""

import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from portsyncro.services.constants import (
    PRICE_RATE_LIMIT_RETRY_AFTER,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_HEALTH,
    RATE_LIMIT_WRITE,
)

logger = logging.getLogger(__name__)


def _is_trusted_proxy(request: Request) -> bool:
    """True when the immediate peer may set forwarded headers."""
    from portsyncro.config import settings

    if settings.trust_proxy_headers:
        return True

    return get_remote_address(request) in settings.trusted_proxy_ips


def get_client_ip(request: Request) -> str:
    """
    Client address, honouring X-Forwarded-For / X-Real-IP only from
    trusted proxies so clients cannot spoof their address.
    """
    if _is_trusted_proxy(request):
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # First entry is the original client
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

    return get_remote_address(request)


# =============================================================================
# LIMITER INSTANCE
# =============================================================================

limiter = Limiter(
    key_func=get_client_ip,
    default_limits=[RATE_LIMIT_DEFAULT],
)


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """429 with a Retry-After header, in the shared error shape."""
    limit_info = str(exc.detail) if exc.detail else "Rate limit exceeded"

    logger.warning(f"Rate limit exceeded for {get_client_ip(request)}: {limit_info}")

    return JSONResponse(
        status_code=429,
        content={
            "error": "RateLimitError",
            "message": f"Too many requests. {limit_info}",
            "details": {"retry_after": PRICE_RATE_LIMIT_RETRY_AFTER},
        },
        headers={"Retry-After": str(PRICE_RATE_LIMIT_RETRY_AFTER)},
    )


__all__ = [
    "limiter",
    "get_client_ip",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_WRITE",
    "RATE_LIMIT_HEALTH",
]
