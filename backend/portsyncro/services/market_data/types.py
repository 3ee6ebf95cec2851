# backend/portsyncro/services/market_data/types.py
"""
Types shared by the price resolution chain.

Every upstream returns its own JSON or HTML shape. Each strategy normalizes
what it got into a ResolvedPrice, so the resolver's output is uniform no
matter which source won.

Type Hierarchy:
    InstrumentId        - What to price (immutable, parsed from the request key)
    ResolvedPrice       - One normalized price per instrument per cycle
    PriceSource         - Which strategy produced the price
    PriceQuality        - Whether the change figure is real or defaulted
    PriceStrategy (ABC) - One way of turning an InstrumentId into a price
"""

import enum
import math
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from portsyncro.models import AssetClass, Currency, Market
from portsyncro.services.constants import (
    DOMESTIC_SUFFIXES,
    FOREIGN_EXCHANGE_CODES,
    GOLD_PRICE_KEY,
    PERCENT_QUANTUM,
    ZERO,
)

if TYPE_CHECKING:
    from portsyncro.services.market_data.fetcher import SourceFetcher

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PriceSource(str, enum.Enum):
    IDX_QUOTE_PAGE = "idx_quote_page"
    YAHOO_QUOTE = "yahoo_quote"
    YAHOO_CHART = "yahoo_chart"
    CRYPTOCOMPARE_FULL = "cryptocompare_full"
    CRYPTOCOMPARE_SPOT = "cryptocompare_spot"
    # Price provided by the caller rather than fetched
    SUPPLIED = "supplied"


class PriceQuality(str, enum.Enum):
    COMPLETE = "complete"
    # Price is real, change was not obtainable and defaults to 0
    CHANGE_UNAVAILABLE = "change_unavailable"


# =============================================================================
# INSTRUMENT IDENTIFIERS
# =============================================================================

@dataclass(frozen=True)
class InstrumentId:
    """
    A parsed instrument key.

    Attributes:
        key: The identifier exactly as the caller sent it (used as the result key)
        symbol: Upper-cased ticker without any exchange suffix
        asset_class: STOCK, CRYPTO or GOLD
        market: DOMESTIC or FOREIGN for stocks, None otherwise
    """

    key: str
    symbol: str
    asset_class: AssetClass
    market: Market | None = None

    def __post_init__(self) -> None:
        if not self.symbol:
            raise ValueError("symbol is required")
        if self.asset_class == AssetClass.STOCK and self.market is None:
            raise ValueError("market is required for stocks")

    @classmethod
    def stock(cls, key: str) -> "InstrumentId":
        """
        Parse an equity key.

        ``BBCA``, ``BBCA.JK``, ``BBCA:JK`` and ``BBCA:IDX`` are domestic.
        ``AAPL:US``, ``AAPL.US`` or any other ``SYMBOL:EXCHANGE`` is foreign,
        and so is a dotted share class such as ``BRK.B``. A bare ticker
        defaults to the domestic exchange.
        """
        raw = key.strip()
        upper = raw.upper()
        for suffix in DOMESTIC_SUFFIXES:
            if upper.endswith(suffix):
                return cls(raw, upper[: -len(suffix)], AssetClass.STOCK, Market.DOMESTIC)

        if ":" in upper:
            symbol = upper.split(":", 1)[0]
            return cls(raw, symbol, AssetClass.STOCK, Market.FOREIGN)

        if "." in upper:
            symbol, _, exchange = upper.rpartition(".")
            if exchange in FOREIGN_EXCHANGE_CODES:
                return cls(raw, symbol, AssetClass.STOCK, Market.FOREIGN)
            return cls(raw, upper, AssetClass.STOCK, Market.FOREIGN)

        return cls(raw, upper, AssetClass.STOCK, Market.DOMESTIC)

    @classmethod
    def crypto(cls, key: str) -> "InstrumentId":
        raw = key.strip()
        return cls(raw, raw.upper(), AssetClass.CRYPTO)

    @classmethod
    def gold(cls) -> "InstrumentId":
        return cls(GOLD_PRICE_KEY, GOLD_PRICE_KEY.upper(), AssetClass.GOLD)

    @property
    def dedup_key(self) -> tuple[AssetClass, Market | None, str]:
        """Case-insensitive identity used to collapse duplicate requests."""
        return self.asset_class, self.market, self.symbol

    @property
    def is_domestic_stock(self) -> bool:
        return self.asset_class == AssetClass.STOCK and self.market == Market.DOMESTIC


# =============================================================================
# RESOLVED PRICE
# =============================================================================

@dataclass(frozen=True)
class ResolvedPrice:
    """
    A normalized, immutable price for one instrument.

    Attributes:
        price: Last traded price, always positive
        currency: IDR or USD
        change_percent: Signed percent change over ``change_window``, 2 decimals
        change_window: "24h" or "1d"
        source: Strategy that produced the price
        resolved_at: When the price was produced (UTC)
        quality: CHANGE_UNAVAILABLE when the change figure was defaulted to 0
    """

    price: Decimal
    currency: Currency
    change_percent: Decimal
    change_window: str
    source: PriceSource
    resolved_at: datetime
    quality: PriceQuality = PriceQuality.COMPLETE

    def __post_init__(self) -> None:
        if self.price <= ZERO:
            raise ValueError("price must be positive")
        object.__setattr__(self, "change_percent", round_percent(self.change_percent))


# =============================================================================
# PARSING HELPERS
# =============================================================================

def to_decimal(value: Any) -> Decimal | None:
    """Convert an upstream number to Decimal, returning None for NaN/None/garbage."""
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, str):
            value = value.strip().replace(",", "")
        if math.isnan(float(value)) or math.isinf(float(value)):
            return None
        return Decimal(str(value))
    except (TypeError, ValueError, InvalidOperation):
        return None


def positive_decimal(value: Any) -> Decimal | None:
    number = to_decimal(value)
    if number is None or number <= ZERO:
        return None
    return number


def round_percent(value: Decimal) -> Decimal:
    return Decimal(value).quantize(PERCENT_QUANTUM)


def percent_change(current: Decimal, previous: Decimal | None) -> Decimal | None:
    """(current - previous) / previous * 100, or None when previous is unusable."""
    if previous is None or previous <= ZERO:
        return None
    return round_percent((current - previous) / previous * 100)


def parse_currency(value: Any) -> Currency | None:
    if not isinstance(value, str):
        return None
    try:
        return Currency(value.strip().upper())
    except ValueError:
        return None


# =============================================================================
# STRATEGY INTERFACE
# =============================================================================

class PriceStrategy(ABC):
    """
    One way of obtaining a price from one upstream.

    Implementations raise ``FetchError`` when the upstream call fails and
    ``MalformedPayloadError`` when the payload carries no usable price.
    The resolver treats both the same way: move on to the next strategy.
    """

    def __init__(self, fetcher: "SourceFetcher", clock: Clock = utc_now) -> None:
        self._fetcher = fetcher
        self._clock = clock

    @property
    @abstractmethod
    def source(self) -> PriceSource:
        """Identifier reported on prices produced by this strategy."""
        pass

    @abstractmethod
    def supports(self, instrument: InstrumentId) -> bool:
        pass

    @abstractmethod
    async def fetch_price(self, instrument: InstrumentId) -> ResolvedPrice:
        pass

    def _build(
            self,
            price: Decimal,
            currency: Currency,
            change: Decimal | None,
            change_window: str,
    ) -> ResolvedPrice:
        return ResolvedPrice(
            price=price,
            currency=currency,
            change_percent=change if change is not None else ZERO,
            change_window=change_window,
            source=self.source,
            resolved_at=self._clock(),
            quality=PriceQuality.COMPLETE if change is not None else PriceQuality.CHANGE_UNAVAILABLE,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(source={self.source.value})>"
