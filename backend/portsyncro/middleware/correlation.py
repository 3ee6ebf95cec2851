# backend/portsyncro/middleware/correlation.py
"""
Correlation ID middleware for request tracing.

For each request this middleware:
1. Extracts or generates a correlation ID
2. Stores it in context so every log line of the request carries it
3. Adds it to the response headers

Correlation ID sources (in order of precedence):
1. X-Correlation-ID header
2. X-Request-ID header
3. Generated UUID

The caller identity set by the price endpoint is cleared together with the
correlation ID when the request completes.
"""

import logging
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from portsyncro.utils.context import (
    clear_caller_identity,
    clear_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Attaches a correlation ID to the request context and the response."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        correlation_id = self._get_correlation_id(request)
        set_correlation_id(correlation_id)

        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()
            clear_caller_identity()

    @staticmethod
    def _get_correlation_id(request: Request) -> str:
        return (
            request.headers.get(CORRELATION_ID_HEADER)
            or request.headers.get(REQUEST_ID_HEADER)
            or str(uuid.uuid4())
        )
