# backend/portsyncro/routers/snapshots.py
"""
Holdings and snapshot history for the authenticated user.

- PUT  /users/me/holdings          - Replace the holdings document
- GET  /users/me/holdings          - Current holdings
- POST /users/me/snapshots         - Capture (or re-capture) a daily snapshot
- GET  /users/me/snapshots         - All snapshots, oldest first
- GET  /users/me/snapshots/{date}  - One snapshot

Re-capturing a date replaces the stored snapshot completely.
"""

import datetime as dt
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from portsyncro.dependencies import get_current_user_id, get_snapshot_service
from portsyncro.middleware.rate_limit import limiter, RATE_LIMIT_DEFAULT, RATE_LIMIT_WRITE
from portsyncro.schemas.errors import ErrorDetail
from portsyncro.schemas.holdings import HoldingsPayload
from portsyncro.schemas.snapshots import (
    SnapshotCaptureRequest,
    SnapshotListResponse,
    SnapshotResponse,
)
from portsyncro.services.snapshot_service import SnapshotService
from portsyncro.services.valuation.holdings import holdings_to_document

router = APIRouter(
    prefix="/users/me",
    tags=["Snapshots"],
)


# =============================================================================
# HOLDINGS
# =============================================================================

@router.put("/holdings", response_model=HoldingsPayload)
@limiter.limit(RATE_LIMIT_WRITE)
def replace_holdings(
    request: Request,
    payload: HoldingsPayload,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[SnapshotService, Depends(get_snapshot_service)],
) -> HoldingsPayload:
    holdings = service.replace_holdings(user_id, payload.to_document())
    return HoldingsPayload.model_validate(holdings_to_document(holdings))


@router.get("/holdings", response_model=HoldingsPayload)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_holdings(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[SnapshotService, Depends(get_snapshot_service)],
) -> HoldingsPayload:
    return HoldingsPayload.model_validate(holdings_to_document(service.get_holdings(user_id)))


# =============================================================================
# SNAPSHOTS
# =============================================================================

@router.post(
    "/snapshots",
    response_model=SnapshotResponse,
    status_code=status.HTTP_201_CREATED,
    responses={429: {"model": ErrorDetail}},
)
@limiter.limit(RATE_LIMIT_WRITE)
async def capture_snapshot(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[SnapshotService, Depends(get_snapshot_service)],
    payload: SnapshotCaptureRequest | None = None,
) -> SnapshotResponse:
    """
    Value the stored holdings and save the result for the given date.

    With ``fetchPrices: false`` (or when every live price fails) each
    holding is valued from its stored valuation.
    """
    payload = payload or SnapshotCaptureRequest()
    _, document = await service.capture(
        user_id,
        snapshot_date=payload.date,
        fetch_prices=payload.fetch_prices,
    )
    return SnapshotResponse.model_validate(document)


@router.get("/snapshots", response_model=SnapshotListResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
def list_snapshots(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[SnapshotService, Depends(get_snapshot_service)],
) -> SnapshotListResponse:
    documents = service.list_snapshots(user_id)
    return SnapshotListResponse(
        snapshots=[SnapshotResponse.model_validate(d) for d in documents],
        total=len(documents),
    )


@router.get(
    "/snapshots/{snapshot_date}",
    response_model=SnapshotResponse,
    responses={404: {"model": ErrorDetail}},
)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_snapshot(
    request: Request,
    snapshot_date: dt.date,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[SnapshotService, Depends(get_snapshot_service)],
) -> SnapshotResponse:
    return SnapshotResponse.model_validate(service.get_snapshot(user_id, snapshot_date))
