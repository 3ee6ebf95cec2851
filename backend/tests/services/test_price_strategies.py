# backend/tests/services/test_price_strategies.py
"""
Tests for the individual price strategies.

Each upstream shape is normalized into a ResolvedPrice:
- Yahoo quote and chart JSON
- CryptoCompare full and spot JSON
- The domestic quote page HTML
- Instrument key parsing
"""

from decimal import Decimal

import httpx
import pytest

from portsyncro.models import AssetClass, Currency, Market
from portsyncro.services.exceptions import MalformedPayloadError
from portsyncro.services.market_data.cryptocompare import (
    CryptoCompareFullStrategy,
    CryptoCompareSpotStrategy,
)
from portsyncro.services.market_data.idx_scraper import (
    IdxQuotePageStrategy,
    parse_inline_percent,
    parse_number,
)
from portsyncro.services.market_data.types import InstrumentId, PriceQuality, PriceSource
from portsyncro.services.market_data.yahoo import (
    YahooChartStrategy,
    YahooQuoteStrategy,
    build_yahoo_symbol,
)
from tests.conftest import FIXED_NOW, fixed_utc_now, make_fetcher


def json_fetcher(payload, captured: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return httpx.Response(200, json=payload)

    return make_fetcher(handler)


def html_fetcher(html: str):
    return make_fetcher(lambda request: httpx.Response(200, text=html))


# =============================================================================
# INSTRUMENT KEYS
# =============================================================================

class TestInstrumentId:
    """Tests for request key parsing."""

    @pytest.mark.parametrize("key", ["BBCA", "bbca", "BBCA.JK", "BBCA:JK", "BBCA:IDX"])
    def test_domestic_keys(self, key):
        """Should parse every domestic spelling to the same symbol."""
        instrument = InstrumentId.stock(key)

        assert instrument.symbol == "BBCA"
        assert instrument.market == Market.DOMESTIC
        assert instrument.key == key

    @pytest.mark.parametrize("key,symbol", [
        ("AAPL:US", "AAPL"),
        ("AAPL.US", "AAPL"),
        ("MSFT:NASDAQ", "MSFT"),
        ("BRK.B", "BRK.B"),
    ])
    def test_foreign_keys(self, key, symbol):
        """Should parse exchange-qualified keys as foreign equities."""
        instrument = InstrumentId.stock(key)

        assert instrument.symbol == symbol
        assert instrument.market == Market.FOREIGN

    def test_case_insensitive_dedup_key(self):
        """Should give different spellings of one listing the same dedup key."""
        assert InstrumentId.stock("bbca.jk").dedup_key == InstrumentId.stock("BBCA").dedup_key
        assert InstrumentId.crypto("btc").dedup_key == InstrumentId.crypto("BTC").dedup_key

    def test_empty_symbol_rejected(self):
        """Should refuse an identifier with no symbol."""
        with pytest.raises(ValueError):
            InstrumentId.crypto("  ")

    @pytest.mark.parametrize("instrument,expected", [
        (InstrumentId.stock("BBCA"), "BBCA.JK"),
        (InstrumentId.stock("BRK.B"), "BRK-B"),
        (InstrumentId.crypto("eth"), "ETH-USD"),
        (InstrumentId.gold(), "GC=F"),
    ])
    def test_yahoo_symbols(self, instrument, expected):
        """Should map instruments to Yahoo Finance symbols."""
        assert build_yahoo_symbol(instrument) == expected


# =============================================================================
# YAHOO
# =============================================================================

class TestYahooQuoteStrategy:
    """Tests for the structured quote endpoint."""

    @pytest.mark.asyncio
    async def test_extracts_price_currency_and_change(self):
        """Should normalize price, currency and percent change."""
        captured = []
        fetcher = json_fetcher({
            "quoteResponse": {"result": [{
                "regularMarketPrice": 190.5,
                "currency": "USD",
                "regularMarketChangePercent": 1.2345,
            }]}
        }, captured)
        strategy = YahooQuoteStrategy(fetcher, fixed_utc_now)

        price = await strategy.fetch_price(InstrumentId.stock("AAPL:US"))

        assert price.price == Decimal("190.5")
        assert price.currency == Currency.USD
        assert price.change_percent == Decimal("1.23")
        assert price.change_window == "24h"
        assert price.source == PriceSource.YAHOO_QUOTE
        assert price.resolved_at == FIXED_NOW
        assert captured[0].url.params["symbols"] == "AAPL"

    @pytest.mark.asyncio
    async def test_change_from_previous_close(self):
        """Should compute change locally when no percent is reported."""
        fetcher = json_fetcher({
            "quoteResponse": {"result": [{
                "regularMarketPrice": 9900,
                "currency": "IDR",
                "regularMarketPreviousClose": 9000,
            }]}
        })

        price = await YahooQuoteStrategy(fetcher).fetch_price(InstrumentId.stock("BBCA"))

        assert price.currency == Currency.IDR
        assert price.change_percent == Decimal("10.00")
        assert price.quality == PriceQuality.COMPLETE

    @pytest.mark.asyncio
    async def test_missing_currency_defaults_by_market(self):
        """Should assume IDR for domestic listings when currency is absent."""
        fetcher = json_fetcher({"quoteResponse": {"result": [{"regularMarketPrice": 4000}]}})

        price = await YahooQuoteStrategy(fetcher).fetch_price(InstrumentId.stock("TLKM"))

        assert price.currency == Currency.IDR
        assert price.change_percent == Decimal("0.00")
        assert price.quality == PriceQuality.CHANGE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_empty_result_raises(self):
        """Should raise MalformedPayloadError for an empty result list."""
        fetcher = json_fetcher({"quoteResponse": {"result": []}})

        with pytest.raises(MalformedPayloadError):
            await YahooQuoteStrategy(fetcher).fetch_price(InstrumentId.stock("XXXX"))

    @pytest.mark.asyncio
    async def test_non_positive_price_raises(self):
        """Should reject a zero price instead of returning it."""
        fetcher = json_fetcher({"quoteResponse": {"result": [{"regularMarketPrice": 0}]}})

        with pytest.raises(MalformedPayloadError):
            await YahooQuoteStrategy(fetcher).fetch_price(InstrumentId.crypto("BTC"))

    @pytest.mark.asyncio
    async def test_unsupported_currency_raises(self):
        """Should reject quotes in currencies the valuation cannot bridge."""
        fetcher = json_fetcher({
            "quoteResponse": {"result": [{"regularMarketPrice": 100, "currency": "EUR"}]}
        })

        with pytest.raises(MalformedPayloadError, match="EUR"):
            await YahooQuoteStrategy(fetcher).fetch_price(InstrumentId.stock("SAP:XETRA"))


class TestYahooChartStrategy:
    """Tests for the chart endpoint fallback."""

    @staticmethod
    def chart(meta: dict, closes: list | None = None) -> dict:
        result = {"meta": meta}
        if closes is not None:
            result["indicators"] = {"quote": [{"close": closes}]}
        return {"chart": {"result": [result]}}

    @pytest.mark.asyncio
    async def test_change_from_chart_previous_close(self):
        """Should compute change from meta.chartPreviousClose."""
        fetcher = json_fetcher(self.chart({
            "regularMarketPrice": 9875,
            "chartPreviousClose": 9800,
            "currency": "IDR",
        }))

        price = await YahooChartStrategy(fetcher).fetch_price(InstrumentId.stock("BBCA"))

        assert price.price == Decimal("9875")
        assert price.change_percent == Decimal("0.77")
        assert price.source == PriceSource.YAHOO_CHART

    @pytest.mark.asyncio
    async def test_change_from_close_series(self):
        """Should fall back to the last two closes with window 1d."""
        fetcher = json_fetcher(self.chart(
            {"regularMarketPrice": 110, "currency": "USD"},
            closes=[100, None, 110],
        ))

        price = await YahooChartStrategy(fetcher).fetch_price(InstrumentId.stock("AAPL:US"))

        assert price.change_percent == Decimal("10.00")
        assert price.change_window == "1d"

    @pytest.mark.asyncio
    async def test_no_change_information(self):
        """Should default change to 0 and mark it unavailable."""
        fetcher = json_fetcher(self.chart({"regularMarketPrice": 2350.4, "currency": "USD"}))

        price = await YahooChartStrategy(fetcher).fetch_price(InstrumentId.gold())

        assert price.price == Decimal("2350.4")
        assert price.change_percent == Decimal("0.00")
        assert price.quality == PriceQuality.CHANGE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_missing_chart_raises(self):
        """Should raise MalformedPayloadError when the chart has no result."""
        fetcher = json_fetcher({"chart": {"result": None, "error": {"code": "Not Found"}}})

        with pytest.raises(MalformedPayloadError):
            await YahooChartStrategy(fetcher).fetch_price(InstrumentId.stock("NOPE:US"))


# =============================================================================
# CRYPTOCOMPARE
# =============================================================================

class TestCryptoCompareStrategies:
    """Tests for the dedicated crypto provider."""

    @pytest.mark.asyncio
    async def test_full_detail(self):
        """Should read price and 24h change from the RAW block."""
        captured = []
        fetcher = json_fetcher({
            "RAW": {"BTC": {"USD": {"PRICE": 65000.5, "CHANGEPCT24HOUR": -2.3456}}}
        }, captured)

        price = await CryptoCompareFullStrategy(fetcher).fetch_price(InstrumentId.crypto("btc"))

        assert price.price == Decimal("65000.5")
        assert price.currency == Currency.USD
        assert price.change_percent == Decimal("-2.35")
        assert price.source == PriceSource.CRYPTOCOMPARE_FULL
        assert captured[0].url.params["fsyms"] == "BTC"

    @pytest.mark.asyncio
    async def test_full_detail_error_response(self):
        """Should treat a 200 carrying Response=Error as malformed."""
        fetcher = json_fetcher({"Response": "Error", "Message": "fsyms param is invalid"})

        with pytest.raises(MalformedPayloadError, match="fsyms"):
            await CryptoCompareFullStrategy(fetcher).fetch_price(InstrumentId.crypto("NOPE"))

    @pytest.mark.asyncio
    async def test_full_detail_missing_symbol(self):
        """Should raise when the RAW block omits the requested symbol."""
        fetcher = json_fetcher({"RAW": {}})

        with pytest.raises(MalformedPayloadError):
            await CryptoCompareFullStrategy(fetcher).fetch_price(InstrumentId.crypto("ETH"))

    @pytest.mark.asyncio
    async def test_spot_price_has_no_change(self):
        """Should return the spot price with change defaulted to 0."""
        fetcher = json_fetcher({"USD": 3000.25})

        price = await CryptoCompareSpotStrategy(fetcher).fetch_price(InstrumentId.crypto("ETH"))

        assert price.price == Decimal("3000.25")
        assert price.change_percent == Decimal("0.00")
        assert price.quality == PriceQuality.CHANGE_UNAVAILABLE
        assert price.source == PriceSource.CRYPTOCOMPARE_SPOT

    def test_only_supports_crypto(self):
        """Should not claim stocks or gold."""
        strategy = CryptoCompareFullStrategy(make_fetcher(lambda r: httpx.Response(200)))

        assert strategy.supports(InstrumentId.crypto("BTC"))
        assert not strategy.supports(InstrumentId.stock("BBCA"))
        assert not strategy.supports(InstrumentId.gold())


# =============================================================================
# DOMESTIC QUOTE PAGE
# =============================================================================

PRICE_BLOCK = (
    '<div class="rPF6Lc"><div class="AHmHk"><span>'
    '<div class="YMlKec fxKbKc">Rp 9,875.00</div>'
    '</span></div>'
    '<div class="enJeMd"><span class="P2Luy">Down by 0.51%</span></div></div>'
)
PREVIOUS_CLOSE_BLOCK = (
    '<div class="gyFHrc"><div class="mfs7Fc">Previous close</div>'
    '<div class="P6K39c">Rp 9,800.00</div></div>'
)


class TestIdxQuotePageStrategy:
    """Tests for the best-effort quote page scrape."""

    @pytest.mark.asyncio
    async def test_change_from_previous_close(self):
        """Should prefer the locally computed change from the previous close."""
        html = f"<html><body>{PRICE_BLOCK}{PREVIOUS_CLOSE_BLOCK}</body></html>"

        price = await IdxQuotePageStrategy(html_fetcher(html)).fetch_price(InstrumentId.stock("BBCA"))

        assert price.price == Decimal("9875")
        assert price.currency == Currency.IDR
        assert price.change_percent == Decimal("0.77")
        assert price.source == PriceSource.IDX_QUOTE_PAGE

    @pytest.mark.asyncio
    async def test_inline_percentage_fallback(self):
        """Should use the inline percentage when there is no previous close."""
        html = f"<html><body>{PRICE_BLOCK}</body></html>"

        price = await IdxQuotePageStrategy(html_fetcher(html)).fetch_price(InstrumentId.stock("BBCA"))

        assert price.change_percent == Decimal("-0.51")
        assert price.quality == PriceQuality.COMPLETE

    @pytest.mark.asyncio
    async def test_change_defaults_to_zero(self):
        """Should default change to 0 rather than failing."""
        html = '<html><body><div class="YMlKec fxKbKc">Rp 4,000</div></body></html>'

        price = await IdxQuotePageStrategy(html_fetcher(html)).fetch_price(InstrumentId.stock("TLKM"))

        assert price.price == Decimal("4000")
        assert price.change_percent == Decimal("0.00")
        assert price.quality == PriceQuality.CHANGE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_missing_price_element_raises(self):
        """Should raise MalformedPayloadError when the layout changed."""
        html = "<html><body><div class='somethingElse'>9,875</div></body></html>"

        with pytest.raises(MalformedPayloadError):
            await IdxQuotePageStrategy(html_fetcher(html)).fetch_price(InstrumentId.stock("BBCA"))

    def test_only_supports_domestic_stocks(self):
        """Should not claim foreign stocks or crypto."""
        strategy = IdxQuotePageStrategy(html_fetcher(""))

        assert strategy.supports(InstrumentId.stock("BBCA.JK"))
        assert not strategy.supports(InstrumentId.stock("AAPL:US"))
        assert not strategy.supports(InstrumentId.crypto("BTC"))

    @pytest.mark.parametrize("text,expected", [
        ("Up by 1.25%", Decimal("1.25")),
        ("Down by 0.51% today", Decimal("-0.51")),
        ("−0.40%", Decimal("-0.40")),
        ("+2%", Decimal("2.00")),
        ("no change shown", None),
    ])
    def test_parse_inline_percent(self, text, expected):
        """Should honor direction words and signs."""
        assert parse_inline_percent(text) == expected

    @pytest.mark.parametrize("text,expected", [
        ("Rp 9,875.00", Decimal("9875.00")),
        ("1,234,567", Decimal("1234567")),
        ("", None),
        ("n/a", None),
    ])
    def test_parse_number(self, text, expected):
        """Should pull the first positive number out of display text."""
        assert parse_number(text) == expected
