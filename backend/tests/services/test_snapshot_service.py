# backend/tests/services/test_snapshot_service.py
"""
Tests for SnapshotService.

Uses a real SqlDocumentStore over in-memory SQLite, a real BatchPriceService
and RateLimiter, and stubbed price and exchange rate sources.

This module tests:
- Holdings storage
- Snapshot capture and re-capture (full replacement per date)
- Stored valuations refreshed after a live capture
- Degraded capture without live prices
- Rate limit propagation
- Store calls kept off the event loop
"""

import asyncio
import time
from datetime import date
from decimal import Decimal

import pytest

from portsyncro.services.exceptions import (
    InvalidHoldingsError,
    RateLimitExceededError,
    SnapshotNotFoundError,
)
from portsyncro.services.market_data.batch import BatchPriceService
from portsyncro.services.rate_limiter import RateLimiter
from portsyncro.services.snapshot_service import SnapshotService, history_key, portfolio_key
from tests.conftest import StaticExchangeRateService, StubResolver, fixed_utc_now

USER = "uid-1"
DAY = date(2024, 6, 3)


class SlowStore:
    """Document store whose calls block the calling thread."""

    def __init__(self, store, delay: float = 0.2) -> None:
        self.store = store
        self.delay = delay

    def get(self, key):
        time.sleep(self.delay)
        return self.store.get(key)

    def set(self, key, data):
        time.sleep(self.delay)
        self.store.set(key, data)

    def update(self, key, data):
        time.sleep(self.delay)
        return self.store.update(key, data)

    def list(self, prefix):
        return self.store.list(prefix)


@pytest.fixture
def resolver(live_prices) -> StubResolver:
    return StubResolver(live_prices)


@pytest.fixture
def rate_limiter(manual_clock) -> RateLimiter:
    return RateLimiter(max_requests=30, window_seconds=60, clock=manual_clock)


@pytest.fixture
def service(document_store, resolver, rate_limiter) -> SnapshotService:
    return SnapshotService(
        document_store,
        BatchPriceService(resolver, rate_limiter),
        StaticExchangeRateService("16000"),
        clock=fixed_utc_now,
    )


class TestHoldings:
    """Tests for holdings storage."""

    def test_replace_and_get(self, service, holdings_document):
        """Should store and read back every position."""
        service.replace_holdings(USER, holdings_document)

        holdings = service.get_holdings(USER)

        assert len(holdings) == 5
        assert holdings.stocks[1].instrument_id == "AAPL"

    def test_missing_holdings_are_empty(self, service):
        """Should treat a user without a portfolio as holding nothing."""
        assert len(service.get_holdings("nobody")) == 0

    def test_invalid_holdings_not_stored(self, service, document_store):
        """Should refuse malformed documents without writing anything."""
        with pytest.raises(InvalidHoldingsError):
            service.replace_holdings(USER, {"stocks": [{"lots": 1}]})

        assert document_store.get(portfolio_key(USER)) is None


class TestCapture:
    """Tests for capture()."""

    @pytest.mark.asyncio
    async def test_capture_writes_history(self, service, holdings_document, document_store):
        """Should store the snapshot under the user's history for the date."""
        service.replace_holdings(USER, holdings_document)

        snapshot, document = await service.capture(USER, DAY)

        assert document_store.get(history_key(USER, DAY)) == document
        assert document["date"] == "2024-06-03"
        assert document["exchangeRate"] == 16000
        assert document["timestamp"] == fixed_utc_now().isoformat()
        assert len(document["portfolio"]["stocks"]) == 2
        assert snapshot.total_value_idr > 0

    @pytest.mark.asyncio
    async def test_default_date_is_today_utc(self, service, holdings_document):
        """Should use the clock's UTC date when none is given."""
        service.replace_holdings(USER, holdings_document)

        snapshot, _ = await service.capture(USER)

        assert snapshot.date == DAY

    @pytest.mark.asyncio
    async def test_recapture_replaces_snapshot(self, service, holdings_document):
        """Should keep exactly one record per date with the same counts."""
        service.replace_holdings(USER, holdings_document)

        await service.capture(USER, DAY)
        _, second = await service.capture(USER, DAY)

        snapshots = service.list_snapshots(USER)
        assert len(snapshots) == 1
        assert snapshots[0] == second
        assert len(second["portfolio"]["stocks"]) == 2
        assert len(second["portfolio"]["crypto"]) == 1

    @pytest.mark.asyncio
    async def test_recapture_after_removing_holding(self, service, holdings_document):
        """Should not leave removed positions behind in the replaced snapshot."""
        service.replace_holdings(USER, holdings_document)
        await service.capture(USER, DAY)

        holdings_document["stocks"] = holdings_document["stocks"][:1]
        holdings_document["crypto"] = []
        service.replace_holdings(USER, holdings_document)
        _, document = await service.capture(USER, DAY)

        stored = service.get_snapshot(USER, DAY)
        assert stored == document
        assert len(stored["portfolio"]["stocks"]) == 1
        assert stored["portfolio"]["crypto"] == []

    @pytest.mark.asyncio
    async def test_snapshots_listed_by_date(self, service, holdings_document):
        """Should list snapshots oldest first."""
        service.replace_holdings(USER, holdings_document)

        await service.capture(USER, date(2024, 6, 5))
        await service.capture(USER, date(2024, 6, 1))

        assert [s["date"] for s in service.list_snapshots(USER)] == ["2024-06-01", "2024-06-05"]

    @pytest.mark.asyncio
    async def test_capture_refreshes_stored_valuations(self, service, holdings_document, document_store):
        """Should merge fresh valuations into the holdings document."""
        service.replace_holdings(USER, holdings_document)

        await service.capture(USER, DAY)

        portfolio = document_store.get(portfolio_key(USER))
        assert portfolio["stocks"][0]["portoIDR"] == 1100000
        assert portfolio["crypto"][0]["portoIDR"] == 400000000

    @pytest.mark.asyncio
    async def test_capture_without_prices_uses_stored_valuations(
            self, service, holdings_document, resolver
    ):
        """Should value from the previous capture when fetching is skipped."""
        service.replace_holdings(USER, holdings_document)
        live, _ = await service.capture(USER, DAY)
        calls_after_live = len(resolver.calls)

        offline, document = await service.capture(USER, date(2024, 6, 4), fetch_prices=False)

        assert len(resolver.calls) == calls_after_live
        assert document["usedStoredValuations"] is True
        assert offline.positions[0].from_stored is True
        assert offline.positions[0].valuation.value_idr == live.positions[0].valuation.value_idr

    @pytest.mark.asyncio
    async def test_rate_limited_capture_raises(self, document_store, resolver, holdings_document, manual_clock):
        """Should raise and write nothing when the caller is over its allowance."""
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=manual_clock)
        service = SnapshotService(
            document_store,
            BatchPriceService(resolver, limiter),
            StaticExchangeRateService(),
            clock=fixed_utc_now,
        )
        service.replace_holdings(USER, holdings_document)
        await service.capture(USER, date(2024, 6, 1))

        with pytest.raises(RateLimitExceededError) as exc_info:
            await service.capture(USER, DAY)

        assert exc_info.value.identity == f"user:{USER}"
        assert document_store.get(history_key(USER, DAY)) is None

    @pytest.mark.asyncio
    async def test_get_missing_snapshot(self, service):
        """Should raise SnapshotNotFoundError for a date never captured."""
        with pytest.raises(SnapshotNotFoundError):
            service.get_snapshot(USER, DAY)

    @pytest.mark.asyncio
    async def test_slow_store_does_not_stall_event_loop(self, document_store, resolver, holdings_document):
        """Should keep other coroutines running while the store blocks."""
        service = SnapshotService(
            SlowStore(document_store),
            BatchPriceService(resolver, RateLimiter(max_requests=30, window_seconds=60)),
            StaticExchangeRateService("16000"),
            clock=fixed_utc_now,
        )
        document_store.set(portfolio_key(USER), holdings_document)
        loop = asyncio.get_running_loop()
        done = asyncio.Event()
        gaps: list[float] = []

        async def ticker():
            last = loop.time()
            while not done.is_set():
                await asyncio.sleep(0.01)
                now = loop.time()
                gaps.append(now - last)
                last = now

        task = asyncio.create_task(ticker())
        await service.capture(USER, DAY, fetch_prices=False)
        done.set()
        await task

        assert document_store.get(history_key(USER, DAY)) is not None
        assert max(gaps) < 0.1


class TestValue:
    """Tests for value() without persistence."""

    @pytest.mark.asyncio
    async def test_supplied_prices_skip_fetching(self, service, resolver, holdings_document):
        """Should not call the batch service when prices are supplied."""
        service.replace_holdings(USER, holdings_document)

        snapshot = await service.value(
            service.get_holdings(USER),
            "user:x",
            supplied_prices={"BBCA": (Decimal("6000"), None)},
        )

        assert resolver.calls == []
        assert snapshot.positions[0].valuation.value_idr == Decimal("1200000")

    @pytest.mark.asyncio
    async def test_cash_only_makes_no_price_call(self, service, resolver):
        """Should not consult the rate limiter for cash-only holdings."""
        service.replace_holdings(USER, {"cash": [{"bank": "BCA", "amount": 1000000}]})

        snapshot = await service.value(service.get_holdings(USER), "user:x")

        assert resolver.calls == []
        assert snapshot.total_value_idr == Decimal("1000000")

    @pytest.mark.asyncio
    async def test_explicit_exchange_rate(self, document_store, resolver, rate_limiter):
        """Should use a caller-provided rate instead of the live one."""
        rates = StaticExchangeRateService()
        service = SnapshotService(document_store, BatchPriceService(resolver, rate_limiter), rates)
        service.replace_holdings(USER, {"cash": [{"bank": "BCA", "amount": 1000000}]})

        snapshot = await service.value(service.get_holdings(USER), "user:x", exchange_rate=Decimal("10000"))

        assert rates.calls == 0
        assert snapshot.total_value_usd == Decimal("100.00")
