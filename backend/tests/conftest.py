# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database fixtures (in-memory SQLite) and a document store over them
- Upstream stubs (httpx.MockTransport fetchers, stub resolver, fixed rate)
- A manual clock for the rate limiter
- Sample holdings documents
- A TestClient factory with dependency overrides
"""

import os

# Set required environment variables BEFORE importing portsyncro modules
# This selects in-memory SQLite and a test JWT secret during settings validation
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("APP_NAME", "Test App")

import asyncio
import random
from collections.abc import Callable
from contextlib import ExitStack
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterator

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portsyncro.models import Base, Currency
from portsyncro.services.constants import CHANGE_WINDOW_24H
from portsyncro.services.document_store import SqlDocumentStore
from portsyncro.services.fx_rate_service import ExchangeRate
from portsyncro.services.market_data.fetcher import SourceFetcher
from portsyncro.services.market_data.types import (
    InstrumentId,
    PriceQuality,
    PriceSource,
    ResolvedPrice,
)

FIXED_NOW = datetime(2024, 6, 3, 9, 30, tzinfo=timezone.utc)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def document_store(session_factory) -> SqlDocumentStore:
    return SqlDocumentStore(session_factory)


# =============================================================================
# CLOCKS
# =============================================================================

class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


def fixed_utc_now() -> datetime:
    return FIXED_NOW


# =============================================================================
# UPSTREAM STUBS
# =============================================================================

class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_fetcher(
        handler: Callable[[httpx.Request], Any],
        timeout: float = 5.0,
        sleep: RecordingSleep | None = None,
) -> SourceFetcher:
    """SourceFetcher over an httpx.MockTransport; retries never actually wait."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceFetcher(
        client=client,
        timeout=timeout,
        sleep=sleep or RecordingSleep(),
        rng=random.Random(7),
    )


def make_price(
        price: str | int | float,
        currency: Currency = Currency.IDR,
        change: str = "0",
        source: PriceSource = PriceSource.YAHOO_QUOTE,
        quality: PriceQuality = PriceQuality.COMPLETE,
) -> ResolvedPrice:
    return ResolvedPrice(
        price=Decimal(str(price)),
        currency=currency,
        change_percent=Decimal(change),
        change_window=CHANGE_WINDOW_24H,
        source=source,
        resolved_at=FIXED_NOW,
        quality=quality,
    )


class StubResolver:
    """
    Stand-in for InstrumentPriceResolver.

    Prices are looked up by upper-cased symbol. Symbols listed in ``errors``
    raise; anything unknown resolves to None.
    """

    def __init__(
            self,
            prices: dict[str, ResolvedPrice] | None = None,
            errors: dict[str, Exception] | None = None,
            delay: float = 0.0,
    ) -> None:
        self.prices = {k.upper(): v for k, v in (prices or {}).items()}
        self.errors = {k.upper(): v for k, v in (errors or {}).items()}
        self.delay = delay
        self.calls: list[InstrumentId] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def resolve(self, instrument: InstrumentId) -> ResolvedPrice | None:
        self.calls.append(instrument)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if instrument.symbol in self.errors:
                raise self.errors[instrument.symbol]
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.prices.get(instrument.symbol)
        finally:
            self.in_flight -= 1


class StaticExchangeRateService:
    """Exchange rate provider that always answers with the same rate."""

    def __init__(self, rate: str = "16000", source: str = "Test") -> None:
        self.rate = ExchangeRate(rate=Decimal(rate), source=source, timestamp=FIXED_NOW)
        self.calls = 0

    async def get_rate(self, force_refresh: bool = False) -> ExchangeRate:
        self.calls += 1
        return self.rate


# =============================================================================
# SAMPLE DATA
# =============================================================================

@pytest.fixture
def holdings_document() -> dict[str, Any]:
    """A portfolio with one position of every kind."""
    return {
        "stocks": [
            {"ticker": "BBCA", "lots": 2, "avgPrice": 5000, "market": "IDX"},
            {"ticker": "AAPL", "lots": 10, "avgPrice": 150, "market": "US"},
        ],
        "crypto": [{"symbol": "BTC", "amount": 0.5, "avgPrice": 40000}],
        "gold": [{"name": "Antam", "weight": 10, "avgPrice": 1000000}],
        "cash": [{"bank": "BCA", "amount": 1000000, "currency": "IDR"}],
    }


@pytest.fixture
def live_prices() -> dict[str, ResolvedPrice]:
    """Resolver prices matching ``holdings_document``, keyed by symbol."""
    return {
        "BBCA": make_price(5500, Currency.IDR),
        "AAPL": make_price(200, Currency.USD),
        "BTC": make_price(50000, Currency.USD),
    }


# =============================================================================
# API CLIENT
# =============================================================================

@pytest.fixture
def client_factory() -> Iterator[Callable[[dict], TestClient]]:
    """
    Build TestClients over the real app with dependency overrides.

    The slowapi limiter is reset so per-address limits from earlier tests
    do not leak in, and overrides are removed afterwards.
    """
    from portsyncro.main import app
    from portsyncro.middleware.rate_limit import limiter

    stack = ExitStack()

    def build(overrides: dict) -> TestClient:
        limiter.reset()
        app.dependency_overrides.update(overrides)
        return stack.enter_context(TestClient(app))

    try:
        yield build
    finally:
        stack.close()
        app.dependency_overrides.clear()
        limiter.reset()
