# backend/portsyncro/services/valuation/__init__.py
"""
Valuation services package.

- types.py: Position, Holdings, Valuation, PortfolioSnapshot
- calculators.py: UnitCalculator, CurrencyBridge, ValuationEngine
- service.py: SnapshotAggregator and price-map key matching
- holdings.py: Conversion to and from the stored holdings layout

Usage:
    from portsyncro.services.valuation import SnapshotAggregator, ValuationEngine

    snapshot = SnapshotAggregator().aggregate(holdings, prices, rate, date.today())
"""

from portsyncro.services.valuation.types import (
    ValuationErrorCode,
    Position,
    Holdings,
    Valuation,
    PositionValuation,
    AssetClassBreakdown,
    PortfolioSnapshot,
)
from portsyncro.services.valuation.calculators import (
    UnitCalculator,
    CurrencyBridge,
    ValuationEngine,
)
from portsyncro.services.valuation.service import SnapshotAggregator
from portsyncro.services.valuation.holdings import parse_holdings, holdings_to_document

__all__ = [
    "ValuationErrorCode",
    "Position",
    "Holdings",
    "Valuation",
    "PositionValuation",
    "AssetClassBreakdown",
    "PortfolioSnapshot",
    "UnitCalculator",
    "CurrencyBridge",
    "ValuationEngine",
    "SnapshotAggregator",
    "parse_holdings",
    "holdings_to_document",
]
