# backend/portsyncro/routers/exchange_rate.py
"""
Exchange rate endpoint.

- GET /api/exchange-rate - Current IDR per 1 USD

Never fails because of upstream problems: when every live source is down
the offline fallback rate is returned with ``isFallback: true``.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from portsyncro.dependencies import get_exchange_rate_service
from portsyncro.middleware.rate_limit import limiter, RATE_LIMIT_DEFAULT
from portsyncro.schemas.exchange_rates import ExchangeRateResponse
from portsyncro.services.fx_rate_service import ExchangeRateService

router = APIRouter(
    prefix="/api",
    tags=["Exchange Rate"],
)


@router.get("/exchange-rate", response_model=ExchangeRateResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_exchange_rate(
    request: Request,
    service: Annotated[ExchangeRateService, Depends(get_exchange_rate_service)],
    refresh: bool = Query(default=False, description="Bypass the short-lived cache"),
) -> ExchangeRateResponse:
    rate = await service.get_rate(force_refresh=refresh)
    return ExchangeRateResponse.from_rate(rate)
