# backend/portsyncro/services/market_data/gold.py
"""
Gold spot price in IDR per gram.

Gold holdings are recorded in grams and valued in rupiah, but the only
reliable public quote is the COMEX futures contract in USD per troy ounce.
The quote is resolved through the normal strategy chain and then converted:

    IDR/gram = USD/oz × (IDR per USD) ÷ 31.1034768
"""

import dataclasses
import logging
from decimal import ROUND_HALF_UP

from portsyncro.models import Currency
from portsyncro.services.constants import IDR_QUANTUM, TROY_OUNCE_GRAMS
from portsyncro.services.fx_rate_service import ExchangeRateService
from portsyncro.services.market_data.resolver import InstrumentPriceResolver
from portsyncro.services.market_data.types import InstrumentId, ResolvedPrice

logger = logging.getLogger(__name__)


class GoldPriceService:

    def __init__(
            self,
            resolver: InstrumentPriceResolver,
            exchange_rate_service: ExchangeRateService,
    ) -> None:
        self._resolver = resolver
        self._exchange_rate_service = exchange_rate_service

    async def resolve(self) -> ResolvedPrice | None:
        """Resolve gold in IDR per gram, or None if no quote is available."""
        quote = await self._resolver.resolve(InstrumentId.gold())
        if quote is None:
            return None
        if quote.currency == Currency.IDR:
            return quote

        exchange_rate = await self._exchange_rate_service.get_rate()
        per_gram = (quote.price * exchange_rate.rate / TROY_OUNCE_GRAMS).quantize(
            IDR_QUANTUM, rounding=ROUND_HALF_UP
        )
        logger.debug(
            f"Gold {quote.price} USD/oz at {exchange_rate.rate} IDR/USD -> {per_gram} IDR/g"
        )
        return dataclasses.replace(quote, price=per_gram, currency=Currency.IDR)
