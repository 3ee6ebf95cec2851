# backend/portsyncro/schemas/exchange_rates.py
"""Pydantic schema for the USD/IDR exchange rate endpoint."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from portsyncro.services.fx_rate_service import ExchangeRate


class ExchangeRateResponse(BaseModel):
    """IDR per 1 USD."""

    model_config = ConfigDict(populate_by_name=True)

    rate: float = Field(..., description="IDR per 1 USD")
    source: str = Field(..., description="Source name, or 'Fallback (Offline)'")
    timestamp: datetime
    is_fallback: bool = Field(..., alias="isFallback")

    @classmethod
    def from_rate(cls, rate: ExchangeRate) -> "ExchangeRateResponse":
        return cls(
            rate=float(rate.rate),
            source=rate.source,
            timestamp=rate.timestamp,
            is_fallback=rate.is_fallback,
        )
