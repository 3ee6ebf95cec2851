# backend/portsyncro/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.

- errors: Error response formats (shared and price-endpoint specific)
- prices: Batch price request/response
- exchange_rates: USD/IDR rate response
- holdings: Holdings document
- snapshots: Snapshot capture and history
- valuation: On-demand portfolio valuation

Usage:
    from portsyncro.schemas import PriceRequest, PriceResponse
    from portsyncro.schemas import HoldingsPayload, SnapshotResponse
"""

from portsyncro.schemas.errors import (
    ErrorDetail,
    ValidationErrorDetail,
    PriceRateLimitResponse,
    PriceErrorResponse,
)
from portsyncro.schemas.prices import PriceRequest, PriceQuote, PriceResponse
from portsyncro.schemas.exchange_rates import ExchangeRateResponse
from portsyncro.schemas.holdings import (
    StockHolding,
    CryptoHolding,
    GoldHolding,
    CashHolding,
    HoldingsPayload,
)
from portsyncro.schemas.snapshots import (
    SnapshotCaptureRequest,
    SnapshotResponse,
    SnapshotListResponse,
)
from portsyncro.schemas.valuation import (
    SuppliedPrice,
    ValuationRequest,
    AssetClassBreakdownResponse,
    ValuationResponse,
)

__all__ = [
    "ErrorDetail",
    "ValidationErrorDetail",
    "PriceRateLimitResponse",
    "PriceErrorResponse",
    "PriceRequest",
    "PriceQuote",
    "PriceResponse",
    "ExchangeRateResponse",
    "StockHolding",
    "CryptoHolding",
    "GoldHolding",
    "CashHolding",
    "HoldingsPayload",
    "SnapshotCaptureRequest",
    "SnapshotResponse",
    "SnapshotListResponse",
    "SuppliedPrice",
    "ValuationRequest",
    "AssetClassBreakdownResponse",
    "ValuationResponse",
]
