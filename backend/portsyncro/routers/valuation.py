# backend/portsyncro/routers/valuation.py
"""
On-demand portfolio valuation.

- POST /api/valuation - Value a holdings payload without storing anything

Prices come from the request (``prices``) when given; otherwise they are
resolved live under the caller's price rate limit. The exchange rate comes
from the request (``exchangeRate``) or the live rate service.
"""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from portsyncro.dependencies import get_optional_user_id, get_snapshot_service
from portsyncro.middleware.rate_limit import get_client_ip
from portsyncro.schemas.errors import ErrorDetail
from portsyncro.schemas.valuation import (
    AssetClassBreakdownResponse,
    ValuationRequest,
    ValuationResponse,
)
from portsyncro.services.identity import resolve_caller_identity
from portsyncro.services.snapshot_service import SnapshotService, snapshot_to_document
from portsyncro.services.valuation.holdings import parse_holdings
from portsyncro.services.valuation.types import PortfolioSnapshot
from portsyncro.utils.context import set_caller_identity

router = APIRouter(
    prefix="/api",
    tags=["Valuation"],
)


# =============================================================================
# MAPPER FUNCTIONS (Internal Types -> Pydantic Schemas)
# =============================================================================

def _map_valuation(snapshot: PortfolioSnapshot, valued_at: datetime) -> ValuationResponse:
    document = snapshot_to_document(snapshot, valued_at.isoformat())
    return ValuationResponse(
        **document,
        breakdown=[AssetClassBreakdownResponse.from_breakdown(item) for item in snapshot.breakdown],
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post(
    "/valuation",
    response_model=ValuationResponse,
    responses={
        400: {"model": ErrorDetail},
        429: {"model": ErrorDetail},
    },
)
async def value_portfolio(
    request: Request,
    payload: ValuationRequest,
    service: Annotated[SnapshotService, Depends(get_snapshot_service)],
    verified_user_id: Annotated[str | None, Depends(get_optional_user_id)],
) -> ValuationResponse:
    """
    Value holdings in IDR and USD.

    Positions without a price are returned with zero values and
    ``error: "PRICE_UNAVAILABLE"``; a missing exchange rate zeroes the
    opposite-currency fields and marks ``EXCHANGE_RATE_UNAVAILABLE``.
    """
    holdings = parse_holdings(payload.holdings.to_document())

    identity = resolve_caller_identity(
        verified_user_id,
        payload.user_id,
        get_client_ip(request),
        request.headers.get("user-agent"),
    )
    set_caller_identity(identity)

    snapshot = await service.value(
        holdings,
        identity,
        fetch_prices=payload.fetch_prices,
        supplied_prices=payload.supplied_prices(),
        exchange_rate=payload.exchange_rate_decimal(),
    )
    return _map_valuation(snapshot, datetime.now(timezone.utc))
