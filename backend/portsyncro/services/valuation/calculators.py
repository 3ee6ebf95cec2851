# backend/portsyncro/services/valuation/calculators.py
"""
Per-position valuation.

Each calculator does one thing:
- UnitCalculator: Converts recorded quantity to priced units (lots -> shares)
- CurrencyBridge: Converts between IDR and USD at one rate
- ValuationEngine: Values one position in both currencies

Rules applied by ValuationEngine.value:
- No price: every monetary field is zero, error PRICE_UNAVAILABLE. Stale
  data is never substituted here.
- Units: domestic stocks are lots × 100; foreign stocks, crypto and gold
  grams are used as-is; cash is its face amount.
- Native currency: domestic stocks and gold IDR; crypto and foreign stocks
  USD; cash its own currency.
- Gain is computed in the native currency first and then bridged.
- Missing or zero rate: opposite-currency fields are zero and the error is
  EXCHANGE_RATE_UNAVAILABLE. No exception is raised.
- Rounding: IDR whole units, USD two decimals, both half-up; gain percent
  two decimals and 0 when the cost basis is 0.

Usage:
    engine = ValuationEngine()
    valuation = engine.value(position, resolved_price, Decimal("16000"))
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from portsyncro.models import AssetClass, Currency, Market
from portsyncro.services.constants import (
    DOMESTIC_LOT_SIZE,
    IDR_QUANTUM,
    PERCENT_QUANTUM,
    USD_QUANTUM,
    ZERO,
)
from portsyncro.services.market_data.types import ResolvedPrice
from portsyncro.services.valuation.types import Position, Valuation, ValuationErrorCode

logger = logging.getLogger(__name__)

ONE = Decimal("1")


def round_idr(amount: Decimal) -> Decimal:
    return amount.quantize(IDR_QUANTUM, rounding=ROUND_HALF_UP)


def round_usd(amount: Decimal) -> Decimal:
    return amount.quantize(USD_QUANTUM, rounding=ROUND_HALF_UP)


def round_money(amount: Decimal, currency: Currency) -> Decimal:
    return round_idr(amount) if currency == Currency.IDR else round_usd(amount)


def gain_percent(gain: Decimal, cost_basis: Decimal) -> Decimal:
    """gain / cost_basis × 100, defined as 0 when cost_basis is not positive."""
    if cost_basis <= ZERO:
        return ZERO.quantize(PERCENT_QUANTUM)
    return (gain / cost_basis * 100).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


# =============================================================================
# UNIT CALCULATOR
# =============================================================================

class UnitCalculator:
    """Converts recorded quantity into the units a price applies to."""

    def __init__(self, lot_size: int = DOMESTIC_LOT_SIZE) -> None:
        self.lot_size = lot_size

    def units(self, position: Position) -> Decimal:
        if position.asset_class == AssetClass.STOCK and position.market == Market.DOMESTIC:
            return position.quantity * self.lot_size
        return position.quantity


# =============================================================================
# CURRENCY BRIDGE
# =============================================================================

class CurrencyBridge:
    """
    IDR/USD conversion at a single rate (IDR per 1 USD).

    A missing, zero or negative rate makes the bridge unavailable; convert()
    then returns None instead of dividing by zero.
    """

    def __init__(self, rate: Decimal | None) -> None:
        self.rate = rate

    @property
    def available(self) -> bool:
        return self.rate is not None and self.rate > ZERO

    def convert(self, amount: Decimal, from_currency: Currency, to_currency: Currency) -> Decimal | None:
        if from_currency == to_currency:
            return amount
        if not self.available:
            return None
        if from_currency == Currency.IDR:
            return amount / self.rate
        return amount * self.rate


# =============================================================================
# VALUATION ENGINE
# =============================================================================

class ValuationEngine:
    """
    Values one position against one price and one exchange rate.

    Stateless; the same inputs always give the same Valuation.
    """

    def __init__(self, unit_calculator: UnitCalculator | None = None) -> None:
        self.unit_calculator = unit_calculator or UnitCalculator()

    def value(
            self,
            position: Position,
            resolved_price: ResolvedPrice | None,
            exchange_rate: Decimal | None,
    ) -> Valuation:
        """
        Compute the valuation of ``position``.

        Args:
            position: The holding
            resolved_price: Current price, or None if unavailable. Ignored for cash.
            exchange_rate: IDR per 1 USD, or None/zero if unavailable

        Returns:
            Valuation (never raises for missing price or rate)
        """
        native = position.native_currency
        units = self.unit_calculator.units(position)
        bridge = CurrencyBridge(exchange_rate)

        if position.asset_class == AssetClass.CASH:
            price = ONE
            cost_per_unit = ONE
        else:
            if resolved_price is None:
                return Valuation.unavailable(
                    native,
                    units,
                    ValuationErrorCode.PRICE_UNAVAILABLE,
                    f"No price available for {position.instrument_id}",
                )
            price = bridge.convert(resolved_price.price, resolved_price.currency, native)
            if price is None:
                return Valuation.unavailable(
                    native,
                    units,
                    ValuationErrorCode.EXCHANGE_RATE_UNAVAILABLE,
                    f"Price for {position.instrument_id} is quoted in "
                    f"{resolved_price.currency.value} and no exchange rate is available",
                )
            cost_per_unit = position.avg_cost

        value_native = units * price
        cost_native = units * cost_per_unit
        gain_native = value_native - cost_native
        percent = gain_percent(gain_native, cost_native)

        opposite = Currency.USD if native == Currency.IDR else Currency.IDR
        error = None
        message = None
        if bridge.available:
            value_opposite = round_money(bridge.convert(value_native, native, opposite), opposite)
            cost_opposite = round_money(bridge.convert(cost_native, native, opposite), opposite)
            gain_opposite = round_money(bridge.convert(gain_native, native, opposite), opposite)
        else:
            value_opposite = cost_opposite = gain_opposite = ZERO
            error = ValuationErrorCode.EXCHANGE_RATE_UNAVAILABLE
            message = f"No exchange rate available; {opposite.value} values are zero"

        value_native = round_money(value_native, native)
        cost_native = round_money(cost_native, native)
        gain_native = round_money(gain_native, native)

        if native == Currency.IDR:
            value_idr, cost_idr, gain_idr = value_native, cost_native, gain_native
            value_usd, cost_usd, gain_usd = value_opposite, cost_opposite, gain_opposite
        else:
            value_usd, cost_usd, gain_usd = value_native, cost_native, gain_native
            value_idr, cost_idr, gain_idr = value_opposite, cost_opposite, gain_opposite

        return Valuation(
            value_idr=value_idr,
            value_usd=value_usd,
            cost_basis_idr=cost_idr,
            cost_basis_usd=cost_usd,
            gain_idr=gain_idr,
            gain_usd=gain_usd,
            gain_percent=percent,
            price_used=price,
            native_currency=native,
            units=units,
            error=error,
            error_message=message,
        )
