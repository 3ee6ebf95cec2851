# backend/portsyncro/schemas/snapshots.py
"""
Pydantic schemas for portfolio snapshots.

A snapshot is stored and returned in the same camelCase layout:
totals at the top level and every valued position under ``portfolio``.
"""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field


class SnapshotCaptureRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: dt.date | None = Field(default=None, description="Defaults to today (UTC)")
    fetch_prices: bool = Field(
        default=True,
        alias="fetchPrices",
        description="False values holdings from their stored valuations only",
    )


class SnapshotResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    date: dt.date
    total_value_idr: float = Field(..., alias="totalValueIDR")
    total_value_usd: float = Field(..., alias="totalValueUSD")
    total_invested_idr: float = Field(..., alias="totalInvestedIDR", description="Excludes cash")
    total_gain_idr: float = Field(default=0, alias="totalGainIDR")
    total_gain_usd: float = Field(default=0, alias="totalGainUSD")
    gain_percentage: float = Field(default=0, alias="gainPercentage")
    exchange_rate: float | None = Field(default=None, alias="exchangeRate")
    exchange_rate_source: str | None = Field(default=None, alias="exchangeRateSource")
    timestamp: str | None = None
    portfolio: dict[str, list[dict]] = Field(default_factory=dict)


class SnapshotListResponse(BaseModel):
    snapshots: list[SnapshotResponse]
    total: int
