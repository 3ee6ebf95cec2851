# backend/portsyncro/services/snapshot_service.py
"""
Holdings storage and daily snapshot capture.

Capture flow:
1. Load ``users/<uid>/portfolio`` and parse it into Holdings
2. Get the exchange rate (never fails; falls back to the offline constant)
3. Optionally resolve live prices through BatchPriceService, under the
   caller's rate limit
4. Aggregate with SnapshotAggregator
5. Write ``users/<uid>/history/<date>`` with ``set`` (full replacement)
6. Merge freshly priced valuations back into the holdings document so the
   next capture without live prices has something to fall back to

Design Principles:
- No HTTP knowledge; raises service exceptions
- Re-capturing a date replaces the stored snapshot entirely
- Store calls made from coroutines run in a worker thread
- Positions that could not be priced keep their previous stored valuation

Usage:
    service = SnapshotService(store, batch_service, exchange_rate_service)
    snapshot, document = await service.capture("uid-1")
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import date
from decimal import Decimal
from typing import Any

from portsyncro.models import AssetClass, Currency
from portsyncro.services.exceptions import RateLimitExceededError, SnapshotNotFoundError
from portsyncro.services.fx_rate_service import ExchangeRate
from portsyncro.services.market_data.types import ResolvedPrice, utc_now
from portsyncro.services.protocols import DocumentStore, ExchangeRateProvider, PriceBatchProvider
from portsyncro.services.valuation.holdings import (
    holdings_to_document,
    json_number,
    parse_holdings,
    valued_position_to_document,
)
from portsyncro.services.valuation.service import (
    SnapshotAggregator,
    request_key,
    supplied_price_map,
)
from portsyncro.services.valuation.types import Holdings, PortfolioSnapshot, PositionValuation

logger = logging.getLogger(__name__)

CATEGORY_BY_CLASS = {
    AssetClass.STOCK: "stocks",
    AssetClass.CRYPTO: "crypto",
    AssetClass.GOLD: "gold",
    AssetClass.CASH: "cash",
}


def portfolio_key(user_id: str) -> str:
    return f"users/{user_id}/portfolio"


def history_prefix(user_id: str) -> str:
    return f"users/{user_id}/history/"


def history_key(user_id: str, snapshot_date: date | str) -> str:
    value = snapshot_date.isoformat() if isinstance(snapshot_date, date) else snapshot_date
    return f"{history_prefix(user_id)}{value}"


def snapshot_to_document(snapshot: PortfolioSnapshot, captured_at: str) -> dict[str, Any]:
    """Stored layout of a snapshot, including every valued position."""
    portfolio: dict[str, list[dict[str, Any]]] = {name: [] for name in CATEGORY_BY_CLASS.values()}
    for pv in snapshot.positions:
        portfolio[CATEGORY_BY_CLASS[pv.position.asset_class]].append(
            valued_position_to_document(pv.position, pv.valuation)
        )

    return {
        "date": snapshot.date.isoformat(),
        "totalValueIDR": json_number(snapshot.total_value_idr),
        "totalValueUSD": json_number(snapshot.total_value_usd),
        "totalInvestedIDR": json_number(snapshot.total_invested_idr),
        "totalGainIDR": json_number(snapshot.total_gain_idr),
        "totalGainUSD": json_number(snapshot.total_gain_usd),
        "gainPercentage": json_number(snapshot.gain_percent),
        "exchangeRate": json_number(snapshot.exchange_rate) if snapshot.exchange_rate is not None else None,
        "exchangeRateSource": snapshot.exchange_rate_source,
        "usedStoredValuations": snapshot.used_stored_valuations,
        "timestamp": captured_at,
        "portfolio": portfolio,
    }


class SnapshotService:
    """
    Stores holdings and captures daily snapshots for one user at a time.

    Args:
        store: Document persistence
        batch_service: Live price resolution (rate limited)
        exchange_rate_service: IDR per USD
        aggregator: Portfolio roll-up
        clock: Returns the current UTC datetime (injected for testing)
    """

    def __init__(
            self,
            store: DocumentStore,
            batch_service: PriceBatchProvider,
            exchange_rate_service: ExchangeRateProvider,
            aggregator: SnapshotAggregator | None = None,
            clock: Callable = utc_now,
    ) -> None:
        self.store = store
        self.batch_service = batch_service
        self.exchange_rate_service = exchange_rate_service
        self.aggregator = aggregator or SnapshotAggregator()
        self._clock = clock

    # =========================================================================
    # HOLDINGS
    # =========================================================================

    def get_holdings(self, user_id: str) -> Holdings:
        return parse_holdings(self.store.get(portfolio_key(user_id)))

    def replace_holdings(self, user_id: str, document: dict[str, Any]) -> Holdings:
        """
        Validate and store a complete holdings document.

        Raises:
            InvalidHoldingsError: If the document is malformed
        """
        holdings = parse_holdings(document)
        self.store.set(portfolio_key(user_id), holdings_to_document(holdings))
        logger.info(f"Stored {len(holdings)} holdings for user {user_id}")
        return holdings

    # =========================================================================
    # VALUATION
    # =========================================================================

    async def value(
            self,
            holdings: Holdings,
            caller_identity: str,
            snapshot_date: date | None = None,
            fetch_prices: bool = True,
            supplied_prices: Mapping[str, tuple[Decimal, Currency | None]] | None = None,
            exchange_rate: Decimal | None = None,
    ) -> PortfolioSnapshot:
        """
        Value ``holdings`` without persisting anything.

        Args:
            holdings: Positions to value
            caller_identity: Rate limit key for live price resolution
            snapshot_date: Date reported on the result, defaults to today (UTC)
            fetch_prices: False skips live prices (stored valuations are used)
            supplied_prices: Caller-provided prices; when given, nothing is fetched
            exchange_rate: Caller-provided IDR per USD; otherwise the live rate

        Raises:
            RateLimitExceededError: The caller is over its price request allowance
        """
        now = self._clock()
        snapshot_date = snapshot_date or now.date()

        rate: ExchangeRate | Decimal
        if exchange_rate is not None:
            rate = exchange_rate
        else:
            rate = await self.exchange_rate_service.get_rate()

        price_map: dict[str, ResolvedPrice] = {}
        if supplied_prices is not None:
            price_map = supplied_price_map(holdings, supplied_prices, now)
        elif fetch_prices and len(holdings) > len(holdings.cash):
            result = await self.batch_service.resolve_prices(
                stocks=[request_key(p) for p in holdings.stocks],
                crypto=[request_key(p) for p in holdings.crypto],
                caller_identity=caller_identity,
                include_gold=bool(holdings.gold),
            )
            if result.rejected:
                raise RateLimitExceededError(caller_identity)
            price_map = result.prices

        return self.aggregator.aggregate(holdings, price_map, rate, snapshot_date)

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    async def capture(
            self,
            user_id: str,
            snapshot_date: date | None = None,
            fetch_prices: bool = True,
            caller_identity: str | None = None,
    ) -> tuple[PortfolioSnapshot, dict[str, Any]]:
        """
        Value the stored holdings and write the snapshot for ``snapshot_date``.

        Args:
            user_id: Owner of the holdings
            snapshot_date: Defaults to today (UTC)
            fetch_prices: False values from stored valuations only
            caller_identity: Rate limit key; defaults to ``user:<user_id>``

        Returns:
            Tuple of (PortfolioSnapshot, stored document)

        Raises:
            RateLimitExceededError: The caller is over its price request allowance
            InvalidHoldingsError: The stored holdings are malformed
        """
        now = self._clock()
        snapshot_date = snapshot_date or now.date()

        holdings = await asyncio.to_thread(self.get_holdings, user_id)
        snapshot = await self.value(
            holdings,
            caller_identity or f"user:{user_id}",
            snapshot_date=snapshot_date,
            fetch_prices=fetch_prices,
        )
        document = snapshot_to_document(snapshot, now.isoformat())
        await asyncio.to_thread(self.store.set, history_key(user_id, snapshot_date), document)

        if any(pv.valuation.is_priced and not pv.from_stored for pv in snapshot.positions
               if pv.position.asset_class != AssetClass.CASH):
            await asyncio.to_thread(self._refresh_stored_valuations, user_id, snapshot.positions)

        logger.info(
            f"Captured snapshot {snapshot_date} for user {user_id}: "
            f"{len(snapshot.positions)} positions, value={snapshot.total_value_idr} IDR",
            extra={"user_id": user_id, "snapshot_date": snapshot_date.isoformat()},
        )
        return snapshot, document

    def list_snapshots(self, user_id: str) -> list[dict[str, Any]]:
        """All stored snapshots for a user, oldest first."""
        documents = [data for _, data in self.store.list(history_prefix(user_id))]
        return sorted(documents, key=lambda d: d.get("date") or "")

    def get_snapshot(self, user_id: str, snapshot_date: date) -> dict[str, Any]:
        document = self.store.get(history_key(user_id, snapshot_date))
        if document is None:
            raise SnapshotNotFoundError(user_id, snapshot_date.isoformat())
        return document

    def _refresh_stored_valuations(self, user_id: str, valued: tuple[PositionValuation, ...]) -> None:
        portfolio: dict[str, list[dict[str, Any]]] = {name: [] for name in CATEGORY_BY_CLASS.values()}
        for pv in valued:
            fresh = pv.valuation.is_priced and not pv.from_stored
            valuation = pv.valuation if fresh else pv.position.stored_valuation
            portfolio[CATEGORY_BY_CLASS[pv.position.asset_class]].append(
                valued_position_to_document(pv.position, valuation)
            )
        self.store.update(portfolio_key(user_id), portfolio)
