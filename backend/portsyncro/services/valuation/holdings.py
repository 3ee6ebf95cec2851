# backend/portsyncro/services/valuation/holdings.py
"""
Conversion between stored portfolio documents and Holdings.

Stored layout (``users/<uid>/portfolio``):

    {
        "stocks": [{"ticker": "BBCA", "lots": 2, "avgPrice": 5000, "market": "IDX"}],
        "crypto": [{"symbol": "BTC", "amount": 0.1, "avgPrice": 40000}],
        "gold":   [{"name": "Antam", "weight": 10, "avgPrice": 1100000}],
        "cash":   [{"bank": "BCA", "amount": 1000000, "currency": "IDR"}]
    }

Valued entries additionally carry ``portoIDR``, ``portoUSD``,
``totalCostIDR`` and friends. Those fields are what the aggregator falls
back to when no live prices are supplied.
"""

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from portsyncro.models import AssetClass, Currency, Market
from portsyncro.services.constants import GOLD_PRICE_KEY, ZERO
from portsyncro.services.exceptions import InvalidHoldingsError
from portsyncro.services.market_data.types import to_decimal
from portsyncro.services.valuation.calculators import gain_percent
from portsyncro.services.valuation.types import (
    Holdings,
    Position,
    Valuation,
    ValuationErrorCode,
)

FOREIGN_MARKET_CODES = {"US", "FOREIGN"}

# Top-level document key -> (asset class, field holding the identifier, field holding the quantity)
_LAYOUT: dict[str, tuple[AssetClass, tuple[str, ...], str]] = {
    "stocks": (AssetClass.STOCK, ("ticker",), "lots"),
    "crypto": (AssetClass.CRYPTO, ("symbol",), "amount"),
    "gold": (AssetClass.GOLD, ("name", "type", "label"), "weight"),
    "cash": (AssetClass.CASH, ("bank", "name", "label"), "amount"),
}


def _number(item: Mapping[str, Any], *names: str, default: Decimal | None = ZERO) -> Decimal | None:
    for name in names:
        if item.get(name) is not None:
            value = to_decimal(item[name])
            if value is None:
                raise InvalidHoldingsError(f"Field {name!r} is not a number: {item[name]!r}", field=name)
            return value
    return default


def _identifier(item: Mapping[str, Any], names: tuple[str, ...], fallback: str) -> str:
    for name in names:
        value = item.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return fallback


def _stored_valuation(item: Mapping[str, Any], position: Position) -> Valuation | None:
    value_idr = _number(item, "portoIDR", default=None)
    if value_idr is None:
        return None
    value_usd = _number(item, "portoUSD", default=ZERO)
    cost_idr = _number(item, "totalCostIDR", default=ZERO)
    cost_usd = _number(item, "totalCostUSD", default=ZERO)
    gain_idr = _number(item, "gainIDR", default=value_idr - cost_idr)
    gain_usd = _number(item, "gainUSD", default=value_usd - cost_usd)

    error = item.get("error")
    try:
        error_code = ValuationErrorCode(error) if error else None
    except ValueError:
        error_code = None

    return Valuation(
        value_idr=value_idr,
        value_usd=value_usd,
        cost_basis_idr=cost_idr,
        cost_basis_usd=cost_usd,
        gain_idr=gain_idr,
        gain_usd=gain_usd,
        gain_percent=gain_percent(gain_idr, cost_idr),
        price_used=_number(item, "currentPrice", default=ZERO),
        native_currency=position.native_currency,
        units=_number(item, "units", default=position.quantity),
        error=error_code,
    )


def parse_position(asset_class: AssetClass, item: Mapping[str, Any]) -> Position:
    """Build a Position from one stored entry."""
    if not isinstance(item, Mapping):
        raise InvalidHoldingsError(f"Holding entries must be objects, got {type(item).__name__}")

    category = next(key for key, layout in _LAYOUT.items() if layout[0] == asset_class)
    _, id_fields, quantity_field = _LAYOUT[category]

    fallback_id = GOLD_PRICE_KEY if asset_class == AssetClass.GOLD else ""
    instrument_id = _identifier(item, id_fields, fallback_id)
    if not instrument_id and asset_class != AssetClass.CASH:
        raise InvalidHoldingsError(f"{category} entry is missing {id_fields[0]!r}", field=id_fields[0])

    market = None
    if asset_class == AssetClass.STOCK:
        market_code = str(item.get("market") or "IDX").upper()
        market = Market.FOREIGN if market_code in FOREIGN_MARKET_CODES else Market.DOMESTIC

    currency = None
    if asset_class == AssetClass.CASH:
        try:
            currency = Currency(str(item.get("currency") or "IDR").upper())
        except ValueError as e:
            raise InvalidHoldingsError(f"Unsupported cash currency {item.get('currency')!r}", field="currency") from e

    try:
        position = Position(
            instrument_id=instrument_id or "cash",
            quantity=_number(item, quantity_field),
            avg_cost=_number(item, "avgPrice", "entryPrice"),
            asset_class=asset_class,
            market=market,
            currency=currency,
        )
    except ValueError as e:
        raise InvalidHoldingsError(str(e)) from e

    stored = _stored_valuation(item, position)
    if stored is None:
        return position
    return Position(
        instrument_id=position.instrument_id,
        quantity=position.quantity,
        avg_cost=position.avg_cost,
        asset_class=position.asset_class,
        market=position.market,
        currency=position.currency,
        stored_valuation=stored,
    )


def parse_holdings(document: Mapping[str, Any] | None) -> Holdings:
    """
    Build Holdings from a stored portfolio document.

    Missing categories are treated as empty.

    Raises:
        InvalidHoldingsError: If an entry has the wrong shape
    """
    if document is None:
        return Holdings()
    if not isinstance(document, Mapping):
        raise InvalidHoldingsError("Portfolio document must be an object")

    grouped: dict[str, tuple[Position, ...]] = {}
    for category, (asset_class, _, _) in _LAYOUT.items():
        entries = document.get(category) or []
        if not isinstance(entries, list):
            raise InvalidHoldingsError(f"{category!r} must be a list", field=category)
        grouped[category] = tuple(parse_position(asset_class, item) for item in entries)

    return Holdings(**grouped)


def position_to_document(position: Position) -> dict[str, Any]:
    """The identifying and quantity fields of a position, in stored layout."""
    if position.asset_class == AssetClass.STOCK:
        return {
            "ticker": position.instrument_id,
            "lots": json_number(position.quantity),
            "avgPrice": json_number(position.avg_cost),
            "market": "US" if position.market == Market.FOREIGN else "IDX",
        }
    if position.asset_class == AssetClass.CRYPTO:
        return {
            "symbol": position.instrument_id,
            "amount": json_number(position.quantity),
            "avgPrice": json_number(position.avg_cost),
        }
    if position.asset_class == AssetClass.GOLD:
        return {
            "name": position.instrument_id,
            "weight": json_number(position.quantity),
            "avgPrice": json_number(position.avg_cost),
        }
    return {
        "bank": position.instrument_id,
        "amount": json_number(position.quantity),
        "currency": position.native_currency.value,
    }


def valuation_to_document(valuation: Valuation) -> dict[str, Any]:
    return {
        "portoIDR": json_number(valuation.value_idr),
        "portoUSD": json_number(valuation.value_usd),
        "totalCostIDR": json_number(valuation.cost_basis_idr),
        "totalCostUSD": json_number(valuation.cost_basis_usd),
        "gainIDR": json_number(valuation.gain_idr),
        "gainUSD": json_number(valuation.gain_usd),
        "gainPercentage": json_number(valuation.gain_percent),
        "currentPrice": json_number(valuation.price_used),
        "units": json_number(valuation.units),
        "error": valuation.error.value if valuation.error else None,
    }


def valued_position_to_document(position: Position, valuation: Valuation | None) -> dict[str, Any]:
    document = position_to_document(position)
    if valuation is not None:
        document.update(valuation_to_document(valuation))
    return document


def holdings_to_document(holdings: Holdings) -> dict[str, list[dict[str, Any]]]:
    """Stored layout of ``holdings``, keeping any stored valuation fields."""
    return {
        category: [valued_position_to_document(p, p.stored_valuation) for p in positions]
        for category, positions in (
            ("stocks", holdings.stocks),
            ("crypto", holdings.crypto),
            ("gold", holdings.gold),
            ("cash", holdings.cash),
        )
    }


def json_number(value: Decimal) -> int | float:
    """Decimal to a JSON number: integral values as int, others as float."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)
