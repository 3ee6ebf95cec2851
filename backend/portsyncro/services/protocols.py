# backend/portsyncro/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- Existing classes satisfy protocols without modification
- Test fakes work without explicit inheritance
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from portsyncro.services.fx_rate_service import ExchangeRate
    from portsyncro.services.market_data.batch import BatchPriceResult


class DocumentStore(Protocol):
    """
    Opaque key/document persistence used for holdings and snapshot history.

    ``set`` replaces the whole document; ``update`` merges top-level fields
    into an existing one (creating it if absent).
    """

    def get(self, key: str) -> dict[str, Any] | None:
        ...

    def set(self, key: str, data: dict[str, Any]) -> None:
        ...

    def update(self, key: str, data: dict[str, Any]) -> dict[str, Any]:
        ...

    def list(self, prefix: str) -> list[tuple[str, dict[str, Any]]]:
        ...


class ExchangeRateProvider(Protocol):
    """Interface required by SnapshotService and the gold resolver."""

    async def get_rate(self, force_refresh: bool = False) -> ExchangeRate:
        ...


class PriceBatchProvider(Protocol):
    """Interface required by SnapshotService."""

    async def resolve_prices(
        self,
        stocks: Iterable[str],
        crypto: Iterable[str],
        caller_identity: str,
        include_gold: bool = False,
    ) -> BatchPriceResult:
        ...
