# backend/tests/services/test_snapshot_aggregator.py
"""
Tests for SnapshotAggregator.

This module tests:
- Totals across all four asset classes
- Cash excluded from invested and gain figures
- Price lookup by request key variants
- Stored-valuation fallback when the price map is empty
- Idempotence (no accumulation across calls)
- Caller-supplied prices
"""

from datetime import date
from decimal import Decimal

import pytest

from portsyncro.models import AssetClass, Currency
from portsyncro.services.fx_rate_service import ExchangeRate
from portsyncro.services.market_data.types import PriceSource
from portsyncro.services.valuation.holdings import parse_holdings
from portsyncro.services.valuation.service import (
    SnapshotAggregator,
    price_key_candidates,
    request_key,
    supplied_price_map,
)
from portsyncro.services.valuation.types import ValuationErrorCode
from tests.conftest import FIXED_NOW, make_price

RATE = Decimal("16000")
DAY = date(2024, 6, 3)


@pytest.fixture
def aggregator() -> SnapshotAggregator:
    return SnapshotAggregator()


@pytest.fixture
def price_map() -> dict:
    """Prices keyed the way BatchPriceService returns them."""
    return {
        "BBCA.JK": make_price(5500, Currency.IDR),
        "AAPL:US": make_price(200, Currency.USD),
        "BTC": make_price(50000, Currency.USD),
        "gold": make_price(1200000, Currency.IDR),
    }


class TestTotals:
    """Tests for portfolio-level sums."""

    def test_cash_only_portfolio(self, aggregator):
        """Should report zero invested for a cash-only portfolio."""
        holdings = parse_holdings({"cash": [{"bank": "BCA", "amount": 1000000, "currency": "IDR"}]})

        snapshot = aggregator.aggregate(holdings, {}, RATE, DAY)

        assert snapshot.total_invested_idr == 0
        assert snapshot.total_value_idr == Decimal("1000000")
        assert snapshot.total_value_usd == Decimal("62.50")
        assert snapshot.total_gain_idr == 0
        assert snapshot.gain_percent == Decimal("0.00")

    def test_full_portfolio(self, aggregator, holdings_document, price_map):
        """Should sum every class into value and only non-cash into invested."""
        snapshot = aggregator.aggregate(parse_holdings(holdings_document), price_map, RATE, DAY)

        # BBCA 1,100,000 + AAPL 32,000,000 + BTC 400,000,000 + gold 12,000,000 + cash 1,000,000
        assert snapshot.total_value_idr == Decimal("446100000")
        # BBCA 1,000,000 + AAPL 24,000,000 + BTC 320,000,000 + gold 10,000,000
        assert snapshot.total_invested_idr == Decimal("355000000")
        assert snapshot.total_gain_idr == Decimal("90100000")
        assert snapshot.gain_percent == Decimal("25.38")
        assert snapshot.date == DAY

    def test_cash_excluded_from_gain(self, aggregator):
        """Should not let cash dilute the gain percentage."""
        holdings = parse_holdings({
            "stocks": [{"ticker": "BBCA", "lots": 2, "avgPrice": 5000}],
            "cash": [{"bank": "BCA", "amount": 50000000}],
        })

        snapshot = aggregator.aggregate(holdings, {"BBCA.JK": make_price(5500)}, RATE, DAY)

        assert snapshot.total_value_idr == Decimal("51100000")
        assert snapshot.total_invested_idr == Decimal("1000000")
        assert snapshot.gain_percent == Decimal("10.00")

    def test_breakdown_per_class(self, aggregator, holdings_document, price_map):
        """Should report one breakdown row per asset class in fixed order."""
        snapshot = aggregator.aggregate(parse_holdings(holdings_document), price_map, RATE, DAY)

        classes = [b.asset_class for b in snapshot.breakdown]
        assert classes == [AssetClass.STOCK, AssetClass.CRYPTO, AssetClass.GOLD, AssetClass.CASH]
        stocks, _, _, cash = snapshot.breakdown
        assert stocks.position_count == 2
        assert stocks.value_idr == Decimal("33100000")
        assert cash.cost_basis_idr == 0
        assert cash.gain_idr == 0

    def test_exchange_rate_object_records_source(self, aggregator):
        """Should carry the rate and its source onto the snapshot."""
        rate = ExchangeRate(rate=RATE, source="Frankfurter", timestamp=FIXED_NOW)

        snapshot = aggregator.aggregate(parse_holdings({}), {}, rate, DAY)

        assert snapshot.exchange_rate == RATE
        assert snapshot.exchange_rate_source == "Frankfurter"
        assert snapshot.total_value_idr == 0


class TestPriceLookup:
    """Tests for matching positions to price map keys."""

    @pytest.mark.parametrize("key", ["BBCA", "BBCA.JK", "bbca.jk", "BBCA:JK"])
    def test_domestic_key_variants(self, aggregator, key):
        """Should find a domestic price under any of its request keys."""
        holdings = parse_holdings({"stocks": [{"ticker": "BBCA", "lots": 1, "avgPrice": 5000}]})

        snapshot = aggregator.aggregate(holdings, {key: make_price(5500)}, RATE, DAY)

        assert snapshot.total_value_idr == Decimal("550000")

    def test_foreign_key(self, aggregator):
        """Should find a foreign price under TICKER:US."""
        holdings = parse_holdings({"stocks": [{"ticker": "AAPL", "lots": 1, "avgPrice": 150, "market": "US"}]})

        snapshot = aggregator.aggregate(holdings, {"AAPL:US": make_price(200, Currency.USD)}, RATE, DAY)

        assert snapshot.total_value_usd == Decimal("200.00")

    def test_request_keys(self):
        """Should build the identifiers sent to the price API."""
        holdings = parse_holdings({
            "stocks": [
                {"ticker": "bbca", "lots": 1},
                {"ticker": "BBRI.JK", "lots": 1},
                {"ticker": "aapl", "lots": 1, "market": "US"},
            ],
            "crypto": [{"symbol": "eth", "amount": 1}],
        })

        assert [request_key(p) for p in holdings.stocks] == ["BBCA.JK", "BBRI.JK", "AAPL:US"]
        assert request_key(holdings.crypto[0]) == "ETH"

    def test_gold_candidates(self):
        """Should look gold up under the shared 'gold' key first."""
        holdings = parse_holdings({"gold": [{"name": "Antam", "weight": 5}]})

        assert price_key_candidates(holdings.gold[0])[0] == "gold"

    def test_unpriced_position_marked(self, aggregator, price_map):
        """Should mark positions missing from a non-empty price map as unavailable."""
        holdings = parse_holdings({
            "stocks": [
                {"ticker": "BBCA", "lots": 2, "avgPrice": 5000},
                {"ticker": "ZZZZ", "lots": 5, "avgPrice": 100},
            ],
        })

        snapshot = aggregator.aggregate(holdings, price_map, RATE, DAY)

        unpriced = snapshot.positions[1].valuation
        assert unpriced.error == ValuationErrorCode.PRICE_UNAVAILABLE
        assert snapshot.breakdown[0].unpriced_count == 1
        assert snapshot.total_value_idr == Decimal("1100000")


class TestStoredFallback:
    """Tests for degraded mode with no live prices."""

    @pytest.fixture
    def valued_document(self) -> dict:
        return {
            "stocks": [{
                "ticker": "BBCA", "lots": 2, "avgPrice": 5000,
                "portoIDR": 1050000, "portoUSD": 65.63,
                "totalCostIDR": 1000000, "totalCostUSD": 62.5,
            }],
            "crypto": [{"symbol": "BTC", "amount": 0.5, "avgPrice": 40000}],
            "cash": [{"bank": "BCA", "amount": 1000000}],
        }

    def test_empty_price_map_uses_stored_valuations(self, aggregator, valued_document):
        """Should value from stored fields and mark the snapshot."""
        snapshot = aggregator.aggregate(parse_holdings(valued_document), {}, RATE, DAY)

        stock = snapshot.positions[0]
        assert stock.from_stored is True
        assert stock.valuation.value_idr == Decimal("1050000")
        assert stock.valuation.gain_idr == Decimal("50000")
        assert snapshot.used_stored_valuations is True
        assert snapshot.total_value_idr == Decimal("2050000")
        assert snapshot.total_invested_idr == Decimal("1000000")

    def test_positions_without_stored_valuation_unpriced(self, aggregator, valued_document):
        """Should report PRICE_UNAVAILABLE where nothing was stored."""
        snapshot = aggregator.aggregate(parse_holdings(valued_document), {}, RATE, DAY)

        btc = snapshot.positions[1]
        assert btc.from_stored is False
        assert btc.valuation.error == ValuationErrorCode.PRICE_UNAVAILABLE

    def test_live_prices_take_precedence(self, aggregator, valued_document):
        """Should ignore stored fields whenever a price map is supplied."""
        snapshot = aggregator.aggregate(
            parse_holdings(valued_document),
            {"BBCA.JK": make_price(5500)},
            RATE,
            DAY,
        )

        assert snapshot.positions[0].from_stored is False
        assert snapshot.positions[0].valuation.value_idr == Decimal("1100000")
        assert snapshot.used_stored_valuations is False


class TestIdempotence:
    """Tests for repeatable aggregation."""

    def test_identical_inputs_identical_snapshots(self, aggregator, holdings_document, price_map):
        """Should not accumulate anything between calls."""
        holdings = parse_holdings(holdings_document)

        first = aggregator.aggregate(holdings, price_map, RATE, DAY)
        second = aggregator.aggregate(holdings, price_map, RATE, DAY)

        assert first == second
        for field_name in (
            "total_value_idr", "total_value_usd", "total_invested_idr",
            "total_gain_idr", "total_gain_usd", "gain_percent",
        ):
            assert str(getattr(first, field_name)) == str(getattr(second, field_name))


class TestSuppliedPrices:
    """Tests for caller-supplied price maps."""

    def test_supplied_prices_default_to_native_currency(self, holdings_document):
        """Should assume the position's own currency when none is given."""
        holdings = parse_holdings(holdings_document)

        prices = supplied_price_map(
            holdings,
            {"BBCA": (Decimal("5500"), None), "btc": (Decimal("50000"), None)},
            FIXED_NOW,
        )

        assert prices["BBCA"].currency == Currency.IDR
        assert prices["BTC"].currency == Currency.USD
        assert prices["BTC"].source == PriceSource.SUPPLIED

    def test_non_positive_supplied_price_ignored(self, holdings_document):
        """Should leave a position unpriced when its supplied price is not positive."""
        holdings = parse_holdings(holdings_document)

        prices = supplied_price_map(holdings, {"BBCA": (Decimal("0"), None)}, FIXED_NOW)

        assert prices == {}

    def test_explicit_currency(self, holdings_document):
        """Should honor an explicit currency on a supplied price."""
        holdings = parse_holdings(holdings_document)

        prices = supplied_price_map(holdings, {"gold": (Decimal("75"), Currency.USD)}, FIXED_NOW)

        assert prices["gold"].currency == Currency.USD
