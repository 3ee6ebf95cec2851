# backend/portsyncro/services/market_data/yahoo.py
"""
Yahoo Finance strategies.

Two public JSON endpoints are used, both through SourceFetcher:

- Quote (v7): batch-style payload with price, currency and percent change.
- Chart (v8): time series with a ``meta`` block. Used as the final fallback
  because it almost always answers, even when the quote endpoint refuses.

Symbol conventions:
    Domestic equity  BBCA   -> BBCA.JK
    Foreign equity   BRK.B  -> BRK-B
    Crypto           BTC    -> BTC-USD
    Gold             gold   -> GC=F (USD per troy ounce)
"""

import logging
from decimal import Decimal
from typing import Any

from portsyncro.models import AssetClass, Currency, Market
from portsyncro.services.constants import (
    CHANGE_WINDOW_1D,
    CHANGE_WINDOW_24H,
    GOLD_FUTURES_SYMBOL,
    YAHOO_CHART_URL,
    YAHOO_QUOTE_URL,
)
from portsyncro.services.exceptions import MalformedPayloadError
from portsyncro.services.market_data.types import (
    InstrumentId,
    PriceSource,
    PriceStrategy,
    ResolvedPrice,
    parse_currency,
    percent_change,
    positive_decimal,
    round_percent,
    to_decimal,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "yahoo"


def build_yahoo_symbol(instrument: InstrumentId) -> str:
    """Map an instrument to the symbol Yahoo Finance expects."""
    if instrument.asset_class == AssetClass.GOLD:
        return GOLD_FUTURES_SYMBOL
    if instrument.asset_class == AssetClass.CRYPTO:
        return f"{instrument.symbol}-USD"
    if instrument.market == Market.DOMESTIC:
        return f"{instrument.symbol}.JK"
    return instrument.symbol.replace(".", "-")


def _default_currency(instrument: InstrumentId) -> Currency:
    return Currency.IDR if instrument.is_domestic_stock else Currency.USD


def _resolve_currency(instrument: InstrumentId, reported: Any, url: str) -> Currency:
    if reported is None:
        return _default_currency(instrument)
    currency = parse_currency(reported)
    if currency is None:
        raise MalformedPayloadError(
            f"Unsupported currency {reported!r} for {instrument.key} from {url}",
            provider=PROVIDER_NAME,
        )
    return currency


class YahooQuoteStrategy(PriceStrategy):
    """Structured quote endpoint: price, currency and change in one payload."""

    @property
    def source(self) -> PriceSource:
        return PriceSource.YAHOO_QUOTE

    def supports(self, instrument: InstrumentId) -> bool:
        return True

    async def fetch_price(self, instrument: InstrumentId) -> ResolvedPrice:
        symbol = build_yahoo_symbol(instrument)
        response = await self._fetcher.fetch(YAHOO_QUOTE_URL, params={"symbols": symbol})
        payload = response.json()

        try:
            quote = payload["quoteResponse"]["result"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedPayloadError(
                f"No quote for {symbol} in Yahoo quote response", provider=PROVIDER_NAME
            ) from e

        price = positive_decimal(quote.get("regularMarketPrice"))
        if price is None:
            raise MalformedPayloadError(f"No usable price for {symbol}", provider=PROVIDER_NAME)

        currency = _resolve_currency(instrument, quote.get("currency"), response.url)

        change = to_decimal(quote.get("regularMarketChangePercent"))
        if change is not None:
            change = round_percent(change)
        else:
            change = percent_change(price, positive_decimal(quote.get("regularMarketPreviousClose")))

        return self._build(price, currency, change, CHANGE_WINDOW_24H)


class YahooChartStrategy(PriceStrategy):
    """
    Chart endpoint, the last structured fallback.

    Change is taken from the first of:
    1. meta.chartPreviousClose
    2. meta.previousClose
    3. meta.regularMarketChangePercent
    4. the last two non-null closes of the series (window "1d")
    and is reported as unavailable (0) when none of them is usable.
    """

    @property
    def source(self) -> PriceSource:
        return PriceSource.YAHOO_CHART

    def supports(self, instrument: InstrumentId) -> bool:
        return True

    async def fetch_price(self, instrument: InstrumentId) -> ResolvedPrice:
        symbol = build_yahoo_symbol(instrument)
        response = await self._fetcher.fetch(
            YAHOO_CHART_URL.format(symbol=symbol),
            params={"interval": "1d"},
        )
        payload = response.json()

        try:
            result = payload["chart"]["result"][0]
            meta = result["meta"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedPayloadError(
                f"No chart data for {symbol}", provider=PROVIDER_NAME
            ) from e

        price = positive_decimal(meta.get("regularMarketPrice"))
        if price is None:
            raise MalformedPayloadError(f"No usable price for {symbol}", provider=PROVIDER_NAME)

        currency = _resolve_currency(instrument, meta.get("currency"), response.url)
        change, window = self._change(price, meta, result)
        return self._build(price, currency, change, window)

    @staticmethod
    def _change(price: Decimal, meta: dict, result: dict) -> tuple[Decimal | None, str]:
        for field_name in ("chartPreviousClose", "previousClose"):
            change = percent_change(price, positive_decimal(meta.get(field_name)))
            if change is not None:
                return change, CHANGE_WINDOW_24H

        reported = to_decimal(meta.get("regularMarketChangePercent"))
        if reported is not None:
            return round_percent(reported), CHANGE_WINDOW_24H

        try:
            closes = result["indicators"]["quote"][0]["close"] or []
        except (KeyError, IndexError, TypeError):
            closes = []
        valid = [c for c in (positive_decimal(value) for value in closes) if c is not None]
        if len(valid) >= 2:
            return percent_change(valid[-1], valid[-2]), CHANGE_WINDOW_1D

        return None, CHANGE_WINDOW_24H
