# backend/portsyncro/services/__init__.py
"""
Service layer for business logic.

Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions
- Receive their collaborators through the constructor

Architecture:
    services/
    ├── __init__.py           # This file - exception exports
    ├── exceptions.py         # Domain exceptions
    ├── constants.py          # Business constants and limits
    ├── protocols.py          # Service interfaces (Protocol classes)
    ├── rate_limiter.py       # Per-identity sliding window
    ├── fx_rate_service.py    # USD/IDR rate with fallback
    ├── identity.py           # Bearer token verification, caller identity
    ├── document_store.py     # SQL-backed document store
    ├── snapshot_service.py   # Holdings storage and snapshot capture
    ├── market_data/          # Price resolution
    └── valuation/            # Per-position and portfolio valuation

Usage:
    from portsyncro.services import RateLimitExceededError, SnapshotNotFoundError
    from portsyncro.services.snapshot_service import SnapshotService
"""

from portsyncro.services.exceptions import (
    ServiceError,
    ValidationError,
    InvalidPriceRequestError,
    BatchTooLargeError,
    InvalidHoldingsError,
    NotFoundError,
    SnapshotNotFoundError,
    MarketDataError,
    FetchError,
    FetchTimeoutError,
    UpstreamRateLimitError,
    UpstreamHTTPError,
    MalformedPayloadError,
    FXRateError,
    RateLimitExceededError,
    AuthenticationError,
    InvalidTokenError,
    TokenExpiredError,
)

__all__ = [
    "ServiceError",
    "ValidationError",
    "InvalidPriceRequestError",
    "BatchTooLargeError",
    "InvalidHoldingsError",
    "NotFoundError",
    "SnapshotNotFoundError",
    "MarketDataError",
    "FetchError",
    "FetchTimeoutError",
    "UpstreamRateLimitError",
    "UpstreamHTTPError",
    "MalformedPayloadError",
    "FXRateError",
    "RateLimitExceededError",
    "AuthenticationError",
    "InvalidTokenError",
    "TokenExpiredError",
]
