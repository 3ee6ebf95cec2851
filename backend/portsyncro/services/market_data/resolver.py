# backend/portsyncro/services/market_data/resolver.py
"""
InstrumentPriceResolver: ordered strategy chains with early exit.

Chains by instrument class:
    Domestic equity  quote page scrape -> Yahoo quote -> Yahoo chart
    Foreign equity   Yahoo quote -> Yahoo chart
    Crypto           CryptoCompare full -> Yahoo quote -> Yahoo chart -> CryptoCompare spot
    Gold             Yahoo quote -> Yahoo chart (USD per troy ounce)

Strategies run one after another; the first usable price wins. A strategy
failure of any kind is logged and the next strategy is tried. When every
strategy fails the resolver returns None and the caller treats the
instrument as unavailable.
"""

import logging
from collections.abc import Mapping, Sequence

from portsyncro.models import AssetClass, Market
from portsyncro.services.exceptions import MarketDataError
from portsyncro.services.market_data.cryptocompare import (
    CryptoCompareFullStrategy,
    CryptoCompareSpotStrategy,
)
from portsyncro.services.market_data.fetcher import SourceFetcher
from portsyncro.services.market_data.idx_scraper import IdxQuotePageStrategy
from portsyncro.services.market_data.types import (
    Clock,
    InstrumentId,
    PriceStrategy,
    ResolvedPrice,
    utc_now,
)
from portsyncro.services.market_data.yahoo import YahooChartStrategy, YahooQuoteStrategy

logger = logging.getLogger(__name__)

ChainKey = tuple[AssetClass, Market | None]


def chain_key(instrument: InstrumentId) -> ChainKey:
    market = instrument.market if instrument.asset_class == AssetClass.STOCK else None
    return instrument.asset_class, market


class InstrumentPriceResolver:
    """
    Resolves one instrument to one ResolvedPrice, or None.

    Args:
        chains: Ordered strategies per (asset class, market)
    """

    def __init__(self, chains: Mapping[ChainKey, Sequence[PriceStrategy]]) -> None:
        self._chains = {key: tuple(strategies) for key, strategies in chains.items()}

    @classmethod
    def default(cls, fetcher: SourceFetcher, clock: Clock = utc_now) -> "InstrumentPriceResolver":
        """Build the standard chains over one shared fetcher."""
        idx_page = IdxQuotePageStrategy(fetcher, clock)
        yahoo_quote = YahooQuoteStrategy(fetcher, clock)
        yahoo_chart = YahooChartStrategy(fetcher, clock)
        cc_full = CryptoCompareFullStrategy(fetcher, clock)
        cc_spot = CryptoCompareSpotStrategy(fetcher, clock)

        return cls({
            (AssetClass.STOCK, Market.DOMESTIC): [idx_page, yahoo_quote, yahoo_chart],
            (AssetClass.STOCK, Market.FOREIGN): [yahoo_quote, yahoo_chart],
            (AssetClass.CRYPTO, None): [cc_full, yahoo_quote, yahoo_chart, cc_spot],
            (AssetClass.GOLD, None): [yahoo_quote, yahoo_chart],
        })

    def strategies_for(self, instrument: InstrumentId) -> tuple[PriceStrategy, ...]:
        chain = self._chains.get(chain_key(instrument), ())
        return tuple(s for s in chain if s.supports(instrument))

    async def resolve(self, instrument: InstrumentId) -> ResolvedPrice | None:
        """
        Try each strategy in order until one yields a price.

        Returns:
            The first ResolvedPrice obtained, or None if no strategy succeeded
        """
        strategies = self.strategies_for(instrument)
        if not strategies:
            logger.warning(f"No price strategies configured for {instrument.key}")
            return None

        for strategy in strategies:
            try:
                price = await strategy.fetch_price(instrument)
            except MarketDataError as e:
                logger.info(f"{strategy.source.value} failed for {instrument.key}: {e}")
                continue
            except Exception:
                logger.exception(f"{strategy.source.value} raised unexpectedly for {instrument.key}")
                continue

            logger.debug(
                f"Resolved {instrument.key} via {strategy.source.value}: "
                f"{price.price} {price.currency.value} ({price.change_percent}%)"
            )
            return price

        logger.warning(f"All {len(strategies)} price strategies failed for {instrument.key}")
        return None
