# backend/portsyncro/services/market_data/batch.py
"""
BatchPriceService: admission, deduplication and concurrent fan-out.

One call:
1. Asks the RateLimiter to admit the caller. A rejection returns at once
   with ``rejected=True`` and no upstream traffic.
2. Parses and deduplicates the requested keys. Spellings that name the same
   instrument (``bbca`` and ``BBCA.JK``) are resolved once and the result is
   reported under each spelling the caller sent.
3. Enforces the per-category cap (BatchTooLargeError).
4. Resolves every unique instrument concurrently and waits for all of them.
   A failed or unresolved instrument is simply absent from the result;
   siblings are never cancelled and nothing is retried at this level.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from portsyncro.services.constants import GOLD_PRICE_KEY, MAX_INSTRUMENTS_PER_CATEGORY
from portsyncro.services.exceptions import BatchTooLargeError, InvalidPriceRequestError
from portsyncro.services.market_data.gold import GoldPriceService
from portsyncro.services.market_data.resolver import InstrumentPriceResolver
from portsyncro.services.market_data.types import InstrumentId, ResolvedPrice
from portsyncro.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchPriceResult:
    """
    Outcome of one batch.

    Attributes:
        prices: Resolved prices keyed by the caller's original identifier
        rejected: True when the rate limiter refused the caller
        identity: The caller identity the batch was admitted (or refused) under
        requested: Every distinct spelling that was attempted
    """

    prices: dict[str, ResolvedPrice] = field(default_factory=dict)
    rejected: bool = False
    identity: str | None = None
    requested: tuple[str, ...] = ()

    @property
    def missing(self) -> list[str]:
        return [key for key in self.requested if key not in self.prices]


class BatchPriceService:
    """
    Resolves a set of instruments for one caller.

    Args:
        resolver: Per-instrument strategy chain
        rate_limiter: Sliding-window admission control
        gold_service: Optional gold resolver (IDR per gram)
        max_per_category: Cap on unique instruments per category
    """

    def __init__(
            self,
            resolver: InstrumentPriceResolver,
            rate_limiter: RateLimiter,
            gold_service: GoldPriceService | None = None,
            max_per_category: int = MAX_INSTRUMENTS_PER_CATEGORY,
    ) -> None:
        self._resolver = resolver
        self._rate_limiter = rate_limiter
        self._gold_service = gold_service
        self.max_per_category = max_per_category

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    async def resolve_prices(
            self,
            stocks: Iterable[str],
            crypto: Iterable[str],
            caller_identity: str,
            include_gold: bool = False,
    ) -> BatchPriceResult:
        """
        Resolve prices for the requested stocks, crypto and optionally gold.

        Raises:
            BatchTooLargeError: A category exceeds the unique-instrument cap
            InvalidPriceRequestError: An identifier cannot be parsed
        """
        if not await self._rate_limiter.admit(caller_identity):
            return BatchPriceResult(rejected=True, identity=caller_identity)

        groups = [
            *self._unique(stocks, InstrumentId.stock, "stocks"),
            *self._unique(crypto, InstrumentId.crypto, "crypto"),
        ]

        spellings = [aliases for _, aliases in groups]
        tasks = [self._resolver.resolve(instrument) for instrument, _ in groups]
        if include_gold and self._gold_service is not None:
            spellings.append([GOLD_PRICE_KEY])
            tasks.append(self._gold_service.resolve())
        keys = [key for aliases in spellings for key in aliases]

        if not tasks:
            return BatchPriceResult(identity=caller_identity)

        results = await asyncio.gather(*tasks, return_exceptions=True)

        prices: dict[str, ResolvedPrice] = {}
        for aliases, result in zip(spellings, results):
            if isinstance(result, BaseException):
                logger.warning(f"Price resolution for {aliases[0]} failed: {result!r}")
                continue
            if result is None:
                continue
            for key in aliases:
                if key in prices:
                    # Same spelling requested as both stock and crypto; keep the first
                    logger.debug(f"Duplicate result key {key} ignored")
                    continue
                prices[key] = result

        logger.info(
            f"Resolved {len(prices)}/{len(keys)} instruments",
            extra={"resolved": len(prices), "requested": len(keys)},
        )
        return BatchPriceResult(prices=prices, identity=caller_identity, requested=tuple(keys))

    def _unique(
            self,
            keys: Iterable[str],
            parse: Callable[[str], InstrumentId],
            category: str,
    ) -> list[tuple[InstrumentId, list[str]]]:
        """Unique instruments, each with the distinct spellings that named it."""
        seen: dict[tuple, tuple[InstrumentId, list[str]]] = {}
        for key in keys:
            if not key or not key.strip():
                continue
            try:
                instrument = parse(key)
            except ValueError as e:
                raise InvalidPriceRequestError(
                    f"Invalid {category} identifier {key!r}: {e}", field=category
                ) from e
            _, aliases = seen.setdefault(instrument.dedup_key, (instrument, []))
            if instrument.key not in aliases:
                aliases.append(instrument.key)

        if len(seen) > self.max_per_category:
            raise BatchTooLargeError(category, len(seen), self.max_per_category)
        return list(seen.values())
