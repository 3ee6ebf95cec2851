# backend/portsyncro/schemas/prices.py
"""
Pydantic schemas for the batch price endpoint.

Wire format is camelCase (``userId``, ``changeTime``, ``lastUpdate``,
``statusMessage``) to match existing clients. Numbers are plain JSON
numbers.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr

from portsyncro.services.market_data.types import ResolvedPrice

SUCCESS_STATUS_MESSAGE = "Successfully fetched the latest prices"


# =============================================================================
# REQUEST
# =============================================================================

class PriceRequest(BaseModel):
    """
    Identifiers to price.

    Fields must have exactly these types: a list where a string is sent
    (or a number inside a list) is rejected with 400.
    """

    model_config = ConfigDict(populate_by_name=True)

    stocks: list[StrictStr] = Field(default_factory=list)
    crypto: list[StrictStr] = Field(default_factory=list)
    gold: StrictBool = False
    user_id: StrictStr | None = Field(default=None, alias="userId")


# =============================================================================
# RESPONSE
# =============================================================================

class PriceQuote(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price: float
    currency: str
    change: float = Field(..., description="Signed percent change")
    change_time: str = Field(..., alias="changeTime", description="'24h' or '1d'")
    last_update: datetime = Field(..., alias="lastUpdate")
    source: str

    @classmethod
    def from_resolved(cls, resolved: ResolvedPrice) -> "PriceQuote":
        return cls(
            price=float(resolved.price),
            currency=resolved.currency.value,
            change=float(resolved.change_percent),
            change_time=resolved.change_window,
            last_update=resolved.resolved_at,
            source=resolved.source.value,
        )


class PriceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prices: dict[str, PriceQuote]
    timestamp: datetime
    status_message: str = Field(default=SUCCESS_STATUS_MESSAGE, alias="statusMessage")
