# backend/portsyncro/schemas/valuation.py
"""
Pydantic schemas for on-demand portfolio valuation.

These schemas handle:
- Valuing a holdings payload against supplied or live prices
- Per asset class breakdown
"""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from portsyncro.models import Currency
from portsyncro.schemas.holdings import HoldingsPayload
from portsyncro.schemas.snapshots import SnapshotResponse
from portsyncro.services.valuation.types import AssetClassBreakdown


class SuppliedPrice(BaseModel):
    price: float = Field(..., gt=0)
    currency: Literal["IDR", "USD"] | None = Field(
        default=None,
        description="Defaults to the position's native currency",
    )


class ValuationRequest(BaseModel):
    """
    Holdings to value.

    With ``prices`` the supplied prices are used as-is and nothing is
    fetched. Without it live prices are resolved (rate limited) unless
    ``fetchPrices`` is false.
    """

    model_config = ConfigDict(populate_by_name=True)

    holdings: HoldingsPayload
    prices: dict[str, SuppliedPrice | float] | None = None
    exchange_rate: float | None = Field(default=None, gt=0, alias="exchangeRate")
    fetch_prices: bool = Field(default=True, alias="fetchPrices")
    user_id: str | None = Field(default=None, alias="userId")

    def exchange_rate_decimal(self) -> Decimal | None:
        return Decimal(str(self.exchange_rate)) if self.exchange_rate is not None else None

    def supplied_prices(self) -> dict[str, tuple[Decimal, Currency | None]] | None:
        if self.prices is None:
            return None
        supplied = {}
        for key, entry in self.prices.items():
            if isinstance(entry, SuppliedPrice):
                currency = Currency(entry.currency) if entry.currency else None
                supplied[key] = (Decimal(str(entry.price)), currency)
            else:
                supplied[key] = (Decimal(str(entry)), None)
        return supplied


class AssetClassBreakdownResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    asset_class: str = Field(..., alias="assetClass")
    value_idr: float = Field(..., alias="valueIDR")
    value_usd: float = Field(..., alias="valueUSD")
    cost_basis_idr: float = Field(..., alias="costBasisIDR")
    gain_idr: float = Field(..., alias="gainIDR")
    position_count: int = Field(..., alias="positionCount")
    unpriced_count: int = Field(..., alias="unpricedCount")

    @classmethod
    def from_breakdown(cls, item: AssetClassBreakdown) -> "AssetClassBreakdownResponse":
        return cls(
            asset_class=item.asset_class.value,
            value_idr=float(item.value_idr),
            value_usd=float(item.value_usd),
            cost_basis_idr=float(item.cost_basis_idr),
            gain_idr=float(item.gain_idr),
            position_count=item.position_count,
            unpriced_count=item.unpriced_count,
        )


class ValuationResponse(SnapshotResponse):
    breakdown: list[AssetClassBreakdownResponse]
