# backend/portsyncro/services/market_data/cryptocompare.py
"""
CryptoCompare strategies for crypto assets.

- Full detail (``pricemultifull``): price plus 24h percent change. First
  choice for every crypto symbol.
- Spot (``price``): price only, tried last. Change is reported as
  unavailable and defaults to 0.
"""

import logging

from portsyncro.models import AssetClass, Currency
from portsyncro.services.constants import (
    CHANGE_WINDOW_24H,
    CRYPTOCOMPARE_FULL_URL,
    CRYPTOCOMPARE_SPOT_URL,
)
from portsyncro.services.exceptions import MalformedPayloadError
from portsyncro.services.market_data.types import (
    InstrumentId,
    PriceSource,
    PriceStrategy,
    ResolvedPrice,
    positive_decimal,
    round_percent,
    to_decimal,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "cryptocompare"


def _check_error(payload: object, symbol: str) -> None:
    # CryptoCompare answers 200 with {"Response": "Error", "Message": ...}
    if isinstance(payload, dict) and payload.get("Response") == "Error":
        raise MalformedPayloadError(
            f"CryptoCompare error for {symbol}: {payload.get('Message', 'unknown')}",
            provider=PROVIDER_NAME,
        )


class CryptoCompareFullStrategy(PriceStrategy):

    @property
    def source(self) -> PriceSource:
        return PriceSource.CRYPTOCOMPARE_FULL

    def supports(self, instrument: InstrumentId) -> bool:
        return instrument.asset_class == AssetClass.CRYPTO

    async def fetch_price(self, instrument: InstrumentId) -> ResolvedPrice:
        symbol = instrument.symbol
        response = await self._fetcher.fetch(
            CRYPTOCOMPARE_FULL_URL,
            params={"fsyms": symbol, "tsyms": "USD"},
        )
        payload = response.json()
        _check_error(payload, symbol)

        try:
            raw = payload["RAW"][symbol]["USD"]
        except (KeyError, TypeError) as e:
            raise MalformedPayloadError(
                f"No RAW.{symbol}.USD block in CryptoCompare response", provider=PROVIDER_NAME
            ) from e

        price = positive_decimal(raw.get("PRICE"))
        if price is None:
            raise MalformedPayloadError(f"No usable price for {symbol}", provider=PROVIDER_NAME)

        change = to_decimal(raw.get("CHANGEPCT24HOUR"))
        return self._build(
            price,
            Currency.USD,
            round_percent(change) if change is not None else None,
            CHANGE_WINDOW_24H,
        )


class CryptoCompareSpotStrategy(PriceStrategy):

    @property
    def source(self) -> PriceSource:
        return PriceSource.CRYPTOCOMPARE_SPOT

    def supports(self, instrument: InstrumentId) -> bool:
        return instrument.asset_class == AssetClass.CRYPTO

    async def fetch_price(self, instrument: InstrumentId) -> ResolvedPrice:
        symbol = instrument.symbol
        response = await self._fetcher.fetch(
            CRYPTOCOMPARE_SPOT_URL,
            params={"fsym": symbol, "tsyms": "USD"},
        )
        payload = response.json()
        _check_error(payload, symbol)

        price = positive_decimal(payload.get("USD")) if isinstance(payload, dict) else None
        if price is None:
            raise MalformedPayloadError(f"No usable spot price for {symbol}", provider=PROVIDER_NAME)

        return self._build(price, Currency.USD, None, CHANGE_WINDOW_24H)
