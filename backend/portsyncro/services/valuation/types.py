# backend/portsyncro/services/valuation/types.py
"""
Internal data types for valuation.

These dataclasses are NOT Pydantic schemas; API serialization lives in
portsyncro/schemas/valuation.py and portsyncro/schemas/snapshots.py.

Design Principles:
- Immutable value objects (frozen=True)
- Decimal for ALL monetary values
- A Valuation is recomputed from scratch every cycle, never patched
- A Valuation carrying PRICE_UNAVAILABLE has every monetary field at zero

Type Hierarchy:
    Position             - One holding as recorded by the owner
    Holdings             - All positions, grouped by asset class
    Valuation            - Value and gain of one position in IDR and USD
    PositionValuation    - Position paired with its Valuation
    AssetClassBreakdown  - Totals for one asset class
    PortfolioSnapshot    - Daily roll-up of the whole portfolio
"""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from portsyncro.models import AssetClass, Currency, Market
from portsyncro.services.constants import ZERO


class ValuationErrorCode(str, enum.Enum):
    PRICE_UNAVAILABLE = "PRICE_UNAVAILABLE"
    EXCHANGE_RATE_UNAVAILABLE = "EXCHANGE_RATE_UNAVAILABLE"


# =============================================================================
# POSITIONS
# =============================================================================

@dataclass(frozen=True)
class Position:
    """
    One holding.

    Attributes:
        instrument_id: Ticker (stocks), symbol (crypto), label (gold, cash)
        quantity: Lots (domestic stocks), shares (foreign stocks), coin units
            (crypto), grams (gold) or face amount (cash)
        avg_cost: Acquisition price per share, coin or gram in the native
            currency. Ignored for cash.
        asset_class: STOCK, CRYPTO, GOLD or CASH
        market: DOMESTIC or FOREIGN, stocks only
        currency: IDR or USD, cash only (defaults to IDR)
        stored_valuation: Last valuation saved with the holding, used only
            when no live prices are supplied
    """

    instrument_id: str
    quantity: Decimal
    avg_cost: Decimal
    asset_class: AssetClass
    market: Market | None = None
    currency: Currency | None = None
    stored_valuation: Valuation | None = None

    def __post_init__(self) -> None:
        if self.quantity < ZERO:
            raise ValueError(f"quantity must not be negative for {self.instrument_id}")
        if self.avg_cost < ZERO:
            raise ValueError(f"avg_cost must not be negative for {self.instrument_id}")
        if self.asset_class == AssetClass.STOCK and self.market is None:
            raise ValueError(f"market is required for stock {self.instrument_id}")

    @property
    def native_currency(self) -> Currency:
        """Currency the position is priced in before any bridging."""
        if self.asset_class == AssetClass.CASH:
            return self.currency or Currency.IDR
        if self.asset_class == AssetClass.CRYPTO:
            return Currency.USD
        if self.asset_class == AssetClass.STOCK and self.market == Market.FOREIGN:
            return Currency.USD
        return Currency.IDR


@dataclass(frozen=True)
class Holdings:
    stocks: tuple[Position, ...] = ()
    crypto: tuple[Position, ...] = ()
    gold: tuple[Position, ...] = ()
    cash: tuple[Position, ...] = ()

    def __iter__(self) -> Iterator[Position]:
        yield from self.stocks
        yield from self.crypto
        yield from self.gold
        yield from self.cash

    def __len__(self) -> int:
        return len(self.stocks) + len(self.crypto) + len(self.gold) + len(self.cash)

    def by_class(self) -> dict[AssetClass, tuple[Position, ...]]:
        return {
            AssetClass.STOCK: self.stocks,
            AssetClass.CRYPTO: self.crypto,
            AssetClass.GOLD: self.gold,
            AssetClass.CASH: self.cash,
        }


# =============================================================================
# VALUATION RESULTS
# =============================================================================

@dataclass(frozen=True)
class Valuation:
    """
    Value and gain of one position in both currencies.

    IDR amounts are whole rupiah, USD amounts are cents, gain_percent has
    two decimals. ``units`` is the quantity after lot conversion.
    """

    value_idr: Decimal
    value_usd: Decimal
    cost_basis_idr: Decimal
    cost_basis_usd: Decimal
    gain_idr: Decimal
    gain_usd: Decimal
    gain_percent: Decimal
    price_used: Decimal
    native_currency: Currency
    units: Decimal
    error: ValuationErrorCode | None = None
    error_message: str | None = None

    @classmethod
    def unavailable(
            cls,
            native_currency: Currency,
            units: Decimal,
            error: ValuationErrorCode,
            message: str,
    ) -> Valuation:
        """A valuation with every monetary field at zero."""
        return cls(
            value_idr=ZERO,
            value_usd=ZERO,
            cost_basis_idr=ZERO,
            cost_basis_usd=ZERO,
            gain_idr=ZERO,
            gain_usd=ZERO,
            gain_percent=ZERO,
            price_used=ZERO,
            native_currency=native_currency,
            units=units,
            error=error,
            error_message=message,
        )

    @property
    def is_priced(self) -> bool:
        return self.error != ValuationErrorCode.PRICE_UNAVAILABLE


@dataclass(frozen=True)
class PositionValuation:
    position: Position
    valuation: Valuation
    # True when the valuation came from the holding's stored fields
    from_stored: bool = False


@dataclass(frozen=True)
class AssetClassBreakdown:
    """
    Totals for one asset class.

    For cash, cost_basis_idr and gain_idr are always zero: cash is counted
    in value only.
    """

    asset_class: AssetClass
    value_idr: Decimal = ZERO
    value_usd: Decimal = ZERO
    cost_basis_idr: Decimal = ZERO
    gain_idr: Decimal = ZERO
    position_count: int = 0
    unpriced_count: int = 0


@dataclass(frozen=True)
class PortfolioSnapshot:
    """
    One day's valuation of the whole portfolio.

    total_invested_idr, total_gain_idr and gain_percent exclude cash.
    """

    date: date
    total_value_idr: Decimal
    total_value_usd: Decimal
    total_invested_idr: Decimal
    total_gain_idr: Decimal
    total_gain_usd: Decimal
    gain_percent: Decimal
    breakdown: tuple[AssetClassBreakdown, ...]
    positions: tuple[PositionValuation, ...] = field(default=())
    exchange_rate: Decimal | None = None
    exchange_rate_source: str | None = None
    used_stored_valuations: bool = False

    def positions_for(self, asset_class: AssetClass) -> list[PositionValuation]:
        return [pv for pv in self.positions if pv.position.asset_class == asset_class]
