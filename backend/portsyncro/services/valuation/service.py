# backend/portsyncro/services/valuation/service.py
"""
SnapshotAggregator: rolls a whole portfolio into one PortfolioSnapshot.

Responsibilities:
- Look up each position's price in the price map
- Run ValuationEngine per position
- Sum per asset class and overall, keeping cash out of invested and gain

Aggregation rules:
- total_value_idr / total_value_usd include stocks, crypto, gold and cash
- total_invested_idr, total_gain_idr and gain_percent exclude cash
- An empty price map means the caller skipped fetching. Each non-cash
  position then falls back to the valuation stored on the holding, and
  only positions without one are reported as PRICE_UNAVAILABLE.

The aggregator holds no state; identical inputs give identical snapshots.
"""

import logging
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal

from portsyncro.models import AssetClass, Currency, Market
from portsyncro.services.constants import (
    CHANGE_WINDOW_24H,
    DOMESTIC_KEY_SUFFIX,
    FOREIGN_KEY_SUFFIX,
    GOLD_PRICE_KEY,
    ZERO,
)
from portsyncro.services.fx_rate_service import ExchangeRate
from portsyncro.services.market_data.types import PriceQuality, PriceSource, ResolvedPrice
from portsyncro.services.valuation.calculators import ValuationEngine, gain_percent
from portsyncro.services.valuation.types import (
    AssetClassBreakdown,
    Holdings,
    PortfolioSnapshot,
    Position,
    PositionValuation,
)

logger = logging.getLogger(__name__)

ASSET_CLASS_ORDER = (AssetClass.STOCK, AssetClass.CRYPTO, AssetClass.GOLD, AssetClass.CASH)


def price_key_candidates(position: Position) -> list[str]:
    """
    Keys under which a price for ``position`` may appear in a price map.

    Domestic stocks are requested as ``TICKER.JK`` and foreign stocks as
    ``TICKER:US``; older price maps used the bare ticker, so that is
    tried as well.
    """
    ticker = position.instrument_id.strip()
    upper = ticker.upper()

    if position.asset_class == AssetClass.GOLD:
        return [GOLD_PRICE_KEY, ticker]
    if position.asset_class == AssetClass.STOCK:
        if position.market == Market.DOMESTIC:
            base = upper.removesuffix(DOMESTIC_KEY_SUFFIX)
            return [ticker, f"{base}{DOMESTIC_KEY_SUFFIX}", f"{base}:JK", base]
        return [ticker, f"{upper}{FOREIGN_KEY_SUFFIX}", f"{upper}.US", upper]
    return [ticker, upper]


def request_key(position: Position) -> str:
    """The identifier to send to the price API for ``position``."""
    upper = position.instrument_id.strip().upper()
    if position.asset_class == AssetClass.STOCK:
        if position.market == Market.DOMESTIC:
            return upper if upper.endswith(DOMESTIC_KEY_SUFFIX) else f"{upper}{DOMESTIC_KEY_SUFFIX}"
        return f"{upper}{FOREIGN_KEY_SUFFIX}"
    return upper


class SnapshotAggregator:
    """
    Values every position and sums the results.

    Args:
        engine: Per-position valuation (injected for testing)
    """

    def __init__(self, engine: ValuationEngine | None = None) -> None:
        self.engine = engine or ValuationEngine()

    def aggregate(
            self,
            holdings: Holdings,
            price_map: Mapping[str, ResolvedPrice],
            exchange_rate: ExchangeRate | Decimal | None,
            snapshot_date: date,
    ) -> PortfolioSnapshot:
        """
        Build the snapshot for ``snapshot_date``.

        Args:
            holdings: All positions
            price_map: Resolved prices keyed by request identifier
            exchange_rate: ExchangeRate, a bare IDR-per-USD Decimal, or None
            snapshot_date: Date the snapshot represents

        Returns:
            PortfolioSnapshot
        """
        if isinstance(exchange_rate, ExchangeRate):
            rate: Decimal | None = exchange_rate.rate
            rate_source: str | None = exchange_rate.source
        else:
            rate = exchange_rate
            rate_source = None

        use_stored = not price_map
        index = {key.upper(): price for key, price in price_map.items()}

        valued: list[PositionValuation] = []
        for position in holdings:
            valued.append(self._value_position(position, index, rate, use_stored))

        breakdown = tuple(self._breakdown(asset_class, valued) for asset_class in ASSET_CLASS_ORDER)
        invested_classes = [b for b in breakdown if b.asset_class != AssetClass.CASH]

        total_invested = sum((b.cost_basis_idr for b in invested_classes), ZERO)
        total_gain_idr = sum((b.gain_idr for b in invested_classes), ZERO)
        total_gain_usd = sum(
            (pv.valuation.gain_usd for pv in valued if pv.position.asset_class != AssetClass.CASH),
            ZERO,
        )

        snapshot = PortfolioSnapshot(
            date=snapshot_date,
            total_value_idr=sum((b.value_idr for b in breakdown), ZERO),
            total_value_usd=sum((b.value_usd for b in breakdown), ZERO),
            total_invested_idr=total_invested,
            total_gain_idr=total_gain_idr,
            total_gain_usd=total_gain_usd,
            gain_percent=gain_percent(total_gain_idr, total_invested),
            breakdown=breakdown,
            positions=tuple(valued),
            exchange_rate=rate,
            exchange_rate_source=rate_source,
            used_stored_valuations=any(pv.from_stored for pv in valued),
        )

        logger.debug(
            f"Aggregated {len(valued)} positions for {snapshot_date}: "
            f"value={snapshot.total_value_idr} IDR, invested={snapshot.total_invested_idr} IDR"
        )
        return snapshot

    def _value_position(
            self,
            position: Position,
            index: Mapping[str, ResolvedPrice],
            rate: Decimal | None,
            use_stored: bool,
    ) -> PositionValuation:
        if position.asset_class == AssetClass.CASH:
            return PositionValuation(position, self.engine.value(position, None, rate))

        if use_stored and position.stored_valuation is not None:
            return PositionValuation(position, position.stored_valuation, from_stored=True)

        price = None
        for key in price_key_candidates(position):
            price = index.get(key.upper())
            if price is not None:
                break

        return PositionValuation(position, self.engine.value(position, price, rate))

    @staticmethod
    def _breakdown(asset_class: AssetClass, valued: list[PositionValuation]) -> AssetClassBreakdown:
        members = [pv for pv in valued if pv.position.asset_class == asset_class]
        counts_toward_invested = asset_class != AssetClass.CASH

        return AssetClassBreakdown(
            asset_class=asset_class,
            value_idr=sum((pv.valuation.value_idr for pv in members), ZERO),
            value_usd=sum((pv.valuation.value_usd for pv in members), ZERO),
            cost_basis_idr=(
                sum((pv.valuation.cost_basis_idr for pv in members), ZERO)
                if counts_toward_invested else ZERO
            ),
            gain_idr=(
                sum((pv.valuation.gain_idr for pv in members), ZERO)
                if counts_toward_invested else ZERO
            ),
            position_count=len(members),
            unpriced_count=sum(1 for pv in members if not pv.valuation.is_priced),
        )


def supplied_price_map(
        holdings: Holdings,
        supplied: Mapping[str, tuple[Decimal, Currency | None]],
        resolved_at: datetime,
) -> dict[str, ResolvedPrice]:
    """
    Turn caller-supplied prices into a price map.

    ``supplied`` maps an identifier to (price, currency). A missing currency
    means the position's native currency. Non-positive prices are ignored,
    which leaves the position unpriced.
    """
    index = {key.upper(): value for key, value in supplied.items()}
    prices: dict[str, ResolvedPrice] = {}

    for position in holdings:
        if position.asset_class == AssetClass.CASH:
            continue
        for key in price_key_candidates(position):
            entry = index.get(key.upper())
            if entry is None:
                continue
            price, currency = entry
            if price is not None and price > ZERO:
                prices.setdefault(key, ResolvedPrice(
                    price=price,
                    currency=currency or position.native_currency,
                    change_percent=ZERO,
                    change_window=CHANGE_WINDOW_24H,
                    source=PriceSource.SUPPLIED,
                    resolved_at=resolved_at,
                    quality=PriceQuality.CHANGE_UNAVAILABLE,
                ))
            break

    return prices
