# backend/portsyncro/services/market_data/__init__.py
"""
Market data services package.

This package contains:
- Shared types and the strategy interface (types.py)
- HTTP fetching with timeout and retry (fetcher.py)
- Price strategies: quote page scrape (idx_scraper.py), Yahoo quote and
  chart APIs (yahoo.py), CryptoCompare (cryptocompare.py)
- Per-instrument strategy chains (resolver.py)
- Gold in IDR per gram (gold.py)
- Rate-limited concurrent batches (batch.py)

Usage:
    from portsyncro.services.market_data.fetcher import SourceFetcher
    from portsyncro.services.market_data.resolver import InstrumentPriceResolver
    from portsyncro.services.market_data.batch import BatchPriceService

    resolver = InstrumentPriceResolver.default(SourceFetcher(client))
    service = BatchPriceService(resolver, RateLimiter())
    result = await service.resolve_prices(["BBCA.JK"], ["BTC"], "user:u1")

Architecture:
    BatchPriceService
    ├── RateLimiter (admission)
    └── InstrumentPriceResolver (one call per unique instrument)
        └── PriceStrategy chain, first success wins
            └── SourceFetcher (timeout, retry, User-Agent rotation)

Submodules are imported directly; gold.py depends on the exchange rate
service, which itself depends on fetcher.py.
"""
