# backend/portsyncro/routers/prices.py
"""
Batch price endpoint.

- POST /api/prices - Resolve current prices for stocks, crypto and gold

Response contract (kept stable for existing clients):
- 200: {"prices": {id: {...}}, "timestamp", "statusMessage"}
- 400: malformed body (invalid JSON, wrong field types, oversized arrays)
- 429: {"message", "retryAfter", "error": "RATE_LIMIT_EXCEEDED", "identifier"}
       with a Retry-After header
- 500: {"message", "prices": {}, "timestamp"} and no stack trace

The body is parsed by hand rather than through a typed parameter so that
malformed input gets this endpoint's 400 shape instead of the global 422.
Instruments that could not be priced are simply absent from ``prices``.
"""

import logging
from datetime import datetime, timezone
from typing import Annotated

import pydantic
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from portsyncro.config import settings
from portsyncro.dependencies import get_batch_price_service, get_optional_user_id
from portsyncro.middleware.rate_limit import get_client_ip
from portsyncro.schemas.errors import PriceErrorResponse, PriceRateLimitResponse
from portsyncro.schemas.prices import PriceQuote, PriceRequest, PriceResponse
from portsyncro.services.constants import PRICE_RATE_LIMIT_RETRY_AFTER
from portsyncro.services.exceptions import RateLimitExceededError, ValidationError
from portsyncro.services.identity import resolve_caller_identity
from portsyncro.services.market_data.batch import BatchPriceService
from portsyncro.utils.context import set_caller_identity

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "Failed to fetch price data"

router = APIRouter(
    prefix="/api",
    tags=["Prices"],
)


# =============================================================================
# RESPONSE HELPERS
# =============================================================================

def _bad_request(message: str, timestamp: datetime) -> JSONResponse:
    logger.info(f"Rejected price request: {message}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=PriceErrorResponse(message=message, timestamp=timestamp).model_dump(mode="json"),
    )


def _rate_limited(identity: str) -> JSONResponse:
    exc = RateLimitExceededError(identity, retry_after=PRICE_RATE_LIMIT_RETRY_AFTER)
    body = PriceRateLimitResponse(
        message=exc.message,
        retry_after=exc.retry_after,
        identifier=exc.identity,
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=body.model_dump(by_alias=True),
        headers={"Retry-After": str(exc.retry_after)},
    )


def _describe_validation_error(exc: pydantic.ValidationError) -> str:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "body"
    return f"Invalid field '{field}': {first['msg']}"


# =============================================================================
# ENDPOINT
# =============================================================================

@router.post(
    "/prices",
    response_model=PriceResponse,
    responses={
        400: {"model": PriceErrorResponse},
        429: {"model": PriceRateLimitResponse},
        500: {"model": PriceErrorResponse},
    },
)
async def get_prices(
    request: Request,
    batch_service: Annotated[BatchPriceService, Depends(get_batch_price_service)],
    verified_user_id: Annotated[str | None, Depends(get_optional_user_id)],
):
    """
    Resolve current prices.

    Body: ``{"stocks": [str], "crypto": [str], "gold": bool, "userId": str}``,
    every field optional. Stock identifiers may be ``BBCA``, ``BBCA.JK``
    (domestic) or ``AAPL:US`` (foreign). Gold is returned under ``"gold"``
    in IDR per gram.
    """
    timestamp = datetime.now(timezone.utc)

    try:
        body = await request.json()
    except ValueError:
        return _bad_request("Request body must be valid JSON", timestamp)
    if not isinstance(body, dict):
        return _bad_request("Request body must be a JSON object", timestamp)

    try:
        payload = PriceRequest.model_validate(body)
    except pydantic.ValidationError as e:
        return _bad_request(_describe_validation_error(e), timestamp)

    limit = settings.max_instruments_per_category
    for category, identifiers in (("stocks", payload.stocks), ("crypto", payload.crypto)):
        if len(identifiers) > limit:
            return _bad_request(
                f"Too many {category} identifiers: {len(identifiers)} (maximum {limit})",
                timestamp,
            )

    identity = resolve_caller_identity(
        verified_user_id,
        payload.user_id,
        get_client_ip(request),
        request.headers.get("user-agent"),
    )
    set_caller_identity(identity)

    try:
        result = await batch_service.resolve_prices(
            stocks=payload.stocks,
            crypto=payload.crypto,
            caller_identity=identity,
            include_gold=payload.gold,
        )
    except ValidationError as e:
        return _bad_request(str(e), timestamp)
    except Exception:
        logger.exception("Price resolution failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=PriceErrorResponse(message=FAILURE_MESSAGE, timestamp=timestamp).model_dump(mode="json"),
        )

    if result.rejected:
        return _rate_limited(identity)

    return PriceResponse(
        prices={key: PriceQuote.from_resolved(price) for key, price in result.prices.items()},
        timestamp=timestamp,
    )
