# backend/portsyncro/services/fx_rate_service.py
"""
USD/IDR exchange rate service.

=============================================================================
RATE CONVENTION
=============================================================================

    rate = IDR per 1 USD

    IDR_amount = USD_amount × rate
    USD_amount = IDR_amount ÷ rate

=============================================================================

Sources, in order:
1. ExchangeRate-API (``rates.IDR``, ``conversion_rates.IDR`` or top-level ``IDR``)
2. Frankfurter (``rates.IDR``)
3. The process-wide fallback constant, marked ``source="Fallback (Offline)"``

The fallback is a documented degraded mode: callers receive a valid
ExchangeRate with ``is_fallback=True`` and never an exception. Live rates
are cached for a short TTL; fallback results are not cached so the next
call tries the live sources again.

Usage:
    service = ExchangeRateService(fetcher)
    rate = await service.get_rate()
    idr = usd * rate.rate
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from portsyncro.services.constants import (
    EXCHANGE_RATE_API_URL,
    EXCHANGE_RATE_SANE_MAX,
    EXCHANGE_RATE_SANE_MIN,
    FALLBACK_EXCHANGE_RATE,
    FALLBACK_RATE_SOURCE,
    FRANKFURTER_API_URL,
)
from portsyncro.services.exceptions import FXRateError, MarketDataError
from portsyncro.services.market_data.fetcher import SourceFetcher
from portsyncro.services.market_data.types import Clock, positive_decimal, utc_now

logger = logging.getLogger(__name__)

EXCHANGE_RATE_API_SOURCE = "ExchangeRate-API"
FRANKFURTER_SOURCE = "Frankfurter"


@dataclass(frozen=True)
class ExchangeRate:
    """
    IDR per 1 USD at a point in time.

    Attributes:
        rate: IDR per USD, always positive
        source: Name of the source that produced it
        timestamp: When it was obtained (UTC)
        is_fallback: True when the offline constant was used
    """

    rate: Decimal
    source: str
    timestamp: datetime
    is_fallback: bool = False

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError("rate must be positive")


def extract_idr_rate(payload: Any) -> Decimal | None:
    """Read the IDR rate from any of the known response shapes."""
    if not isinstance(payload, dict):
        return None
    for container in ("rates", "conversion_rates"):
        block = payload.get(container)
        if isinstance(block, dict) and "IDR" in block:
            return positive_decimal(block["IDR"])
    return positive_decimal(payload.get("IDR"))


class ExchangeRateService:
    """
    Resolves the current USD/IDR rate with live sources and a fallback.

    Args:
        fetcher: SourceFetcher for upstream calls
        fallback_rate: IDR per USD used when every live source fails
        cache_ttl_seconds: How long a live rate is reused (0 disables caching)
        clock: UTC time source
    """

    def __init__(
            self,
            fetcher: SourceFetcher,
            fallback_rate: Decimal = FALLBACK_EXCHANGE_RATE,
            cache_ttl_seconds: float = 300.0,
            clock: Clock = utc_now,
    ) -> None:
        self._fetcher = fetcher
        self.fallback_rate = fallback_rate
        self.cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._cached: ExchangeRate | None = None
        self._sources: list[tuple[str, Callable[[], Awaitable[Decimal]]]] = [
            (EXCHANGE_RATE_API_SOURCE, self._from_exchange_rate_api),
            (FRANKFURTER_SOURCE, self._from_frankfurter),
        ]

    async def get_rate(self, force_refresh: bool = False) -> ExchangeRate:
        """
        Get the current rate. Never raises.

        Args:
            force_refresh: Skip the cache

        Returns:
            A live ExchangeRate, or the fallback with is_fallback=True
        """
        now = self._clock()
        if not force_refresh and self._cached is not None:
            age = (now - self._cached.timestamp).total_seconds()
            if age < self.cache_ttl_seconds:
                logger.debug(f"Exchange rate cache hit ({age:.0f}s old)")
                return self._cached

        for source_name, load in self._sources:
            try:
                rate = await load()
            except (MarketDataError, FXRateError) as e:
                logger.warning(f"Exchange rate source {source_name} failed: {e}")
                continue

            if not EXCHANGE_RATE_SANE_MIN <= rate <= EXCHANGE_RATE_SANE_MAX:
                logger.warning(
                    f"Exchange rate {rate} from {source_name} is outside the expected "
                    f"range {EXCHANGE_RATE_SANE_MIN}-{EXCHANGE_RATE_SANE_MAX}"
                )

            result = ExchangeRate(rate=rate, source=source_name, timestamp=self._clock())
            self._cached = result
            logger.info(f"Exchange rate refreshed from {source_name}: {rate} IDR/USD")
            return result

        logger.warning(f"All exchange rate sources failed, using fallback {self.fallback_rate} IDR/USD")
        return self.fallback()

    def fallback(self) -> ExchangeRate:
        return ExchangeRate(
            rate=self.fallback_rate,
            source=FALLBACK_RATE_SOURCE,
            timestamp=self._clock(),
            is_fallback=True,
        )

    async def _from_exchange_rate_api(self) -> Decimal:
        response = await self._fetcher.fetch(EXCHANGE_RATE_API_URL)
        rate = extract_idr_rate(response.json())
        if rate is None:
            raise FXRateError("No IDR rate in ExchangeRate-API response", source=EXCHANGE_RATE_API_SOURCE)
        return rate

    async def _from_frankfurter(self) -> Decimal:
        response = await self._fetcher.fetch(FRANKFURTER_API_URL, params={"from": "USD", "to": "IDR"})
        rate = extract_idr_rate(response.json())
        if rate is None:
            raise FXRateError("No IDR rate in Frankfurter response", source=FRANKFURTER_SOURCE)
        return rate
