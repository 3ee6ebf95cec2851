# backend/portsyncro/schemas/holdings.py
"""
Pydantic schemas for the holdings document.

Entries accept extra fields so valuations saved alongside a holding
(``portoIDR``, ``totalCostIDR``, ...) round-trip unchanged.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _HoldingEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class StockHolding(_HoldingEntry):
    ticker: str = Field(..., min_length=1, max_length=32)
    lots: float = Field(..., ge=0, description="Lots for IDX listings, shares for US listings")
    avg_price: float = Field(default=0, ge=0, alias="avgPrice")
    market: Literal["IDX", "US"] = "IDX"


class CryptoHolding(_HoldingEntry):
    symbol: str = Field(..., min_length=1, max_length=32)
    amount: float = Field(..., ge=0)
    avg_price: float = Field(default=0, ge=0, alias="avgPrice", description="USD per coin")


class GoldHolding(_HoldingEntry):
    name: str = Field(default="gold", min_length=1)
    weight: float = Field(..., ge=0, description="Grams")
    avg_price: float = Field(default=0, ge=0, alias="avgPrice", description="IDR per gram")


class CashHolding(_HoldingEntry):
    bank: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)
    currency: Literal["IDR", "USD"] = "IDR"


class HoldingsPayload(BaseModel):
    """A complete holdings document."""

    stocks: list[StockHolding] = Field(default_factory=list)
    crypto: list[CryptoHolding] = Field(default_factory=list)
    gold: list[GoldHolding] = Field(default_factory=list)
    cash: list[CashHolding] = Field(default_factory=list)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
