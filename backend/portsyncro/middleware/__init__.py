# backend/portsyncro/middleware/__init__.py
"""
ASGI middleware for PortSyncro.

- Correlation ID tracking for request tracing
- Per-address rate limiting (slowapi)

Usage:
    from portsyncro.middleware import CorrelationIdMiddleware, limiter

    app.add_middleware(CorrelationIdMiddleware)
    app.state.limiter = limiter
"""

from portsyncro.middleware.correlation import CorrelationIdMiddleware
from portsyncro.middleware.rate_limit import (
    limiter,
    get_client_ip,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_WRITE,
    RATE_LIMIT_HEALTH,
)

__all__ = [
    "CorrelationIdMiddleware",
    "limiter",
    "get_client_ip",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_WRITE",
    "RATE_LIMIT_HEALTH",
]
