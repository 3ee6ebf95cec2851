# backend/portsyncro/dependencies.py
"""
Dependency injection module for FastAPI services.

Provides singleton service instances shared across all requests. Sharing
matters here: the rate limiter window, the exchange rate cache and the
HTTP connection pool must be the same objects for every request.

Services are lazily initialized on first use to avoid import-time side
effects. Tests replace them through ``app.dependency_overrides``.

Usage in routers:
    from portsyncro.dependencies import get_batch_price_service

    @router.post("/prices")
    async def prices(service: BatchPriceService = Depends(get_batch_price_service)):
        ...
"""

import logging
from functools import lru_cache
from typing import Annotated

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from portsyncro.config import settings
from portsyncro.database import SessionLocal
from portsyncro.services.document_store import SqlDocumentStore
from portsyncro.services.exceptions import InvalidTokenError, TokenExpiredError
from portsyncro.services.fx_rate_service import ExchangeRateService
from portsyncro.services.identity import JWTIdentityProvider
from portsyncro.services.market_data.batch import BatchPriceService
from portsyncro.services.market_data.fetcher import SourceFetcher
from portsyncro.services.market_data.gold import GoldPriceService
from portsyncro.services.market_data.resolver import InstrumentPriceResolver
from portsyncro.services.rate_limiter import RateLimiter
from portsyncro.services.snapshot_service import SnapshotService
from portsyncro.services.valuation.service import SnapshotAggregator

logger = logging.getLogger(__name__)

# HTTP Bearer scheme; auto_error=False so anonymous price requests work
_bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# Order matters: define dependencies before dependents
# 1. get_http_client (no deps)
# 2. get_source_fetcher (client)
# 3. get_price_resolver, get_exchange_rate_service (fetcher)
# 4. get_gold_price_service (resolver, exchange rate)
# 5. get_rate_limiter (no deps)
# 6. get_batch_price_service (resolver, rate limiter, gold)
# 7. get_document_store, get_snapshot_aggregator (no deps)
# 8. get_snapshot_service (store, batch, exchange rate, aggregator)


@lru_cache(maxsize=1)
def get_http_client() -> httpx.AsyncClient:
    """Shared upstream client. Closed by the application lifespan."""
    logger.debug("Initializing singleton httpx.AsyncClient")
    return httpx.AsyncClient(
        timeout=settings.price_fetch_timeout_seconds,
        follow_redirects=True,
    )


@lru_cache(maxsize=1)
def get_source_fetcher() -> SourceFetcher:
    logger.debug("Initializing singleton SourceFetcher")
    return SourceFetcher(
        client=get_http_client(),
        timeout=settings.price_fetch_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_price_resolver() -> InstrumentPriceResolver:
    logger.debug("Initializing singleton InstrumentPriceResolver")
    return InstrumentPriceResolver.default(get_source_fetcher())


@lru_cache(maxsize=1)
def get_exchange_rate_service() -> ExchangeRateService:
    """
    Get the singleton ExchangeRateService.

    Shares the rate cache across all requests.
    """
    logger.debug("Initializing singleton ExchangeRateService")
    return ExchangeRateService(
        fetcher=get_source_fetcher(),
        fallback_rate=settings.fallback_exchange_rate,
        cache_ttl_seconds=settings.exchange_rate_cache_ttl_seconds,
    )


@lru_cache(maxsize=1)
def get_gold_price_service() -> GoldPriceService:
    logger.debug("Initializing singleton GoldPriceService")
    return GoldPriceService(
        resolver=get_price_resolver(),
        exchange_rate_service=get_exchange_rate_service(),
    )


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    """
    Get the singleton RateLimiter.

    One instance per process; its sweep task is started and stopped by the
    application lifespan.
    """
    logger.debug("Initializing singleton RateLimiter")
    return RateLimiter(
        max_requests=settings.price_rate_limit_max_requests,
        window_seconds=settings.price_rate_limit_window_seconds,
        sweep_interval_seconds=settings.rate_limiter_sweep_interval_seconds,
        max_identities=settings.rate_limiter_max_identities,
    )


@lru_cache(maxsize=1)
def get_batch_price_service() -> BatchPriceService:
    logger.debug("Initializing singleton BatchPriceService")
    return BatchPriceService(
        resolver=get_price_resolver(),
        rate_limiter=get_rate_limiter(),
        gold_service=get_gold_price_service(),
        max_per_category=settings.max_instruments_per_category,
    )


@lru_cache(maxsize=1)
def get_document_store() -> SqlDocumentStore:
    logger.debug("Initializing singleton SqlDocumentStore")
    return SqlDocumentStore(SessionLocal)


@lru_cache(maxsize=1)
def get_snapshot_aggregator() -> SnapshotAggregator:
    return SnapshotAggregator()


@lru_cache(maxsize=1)
def get_snapshot_service() -> SnapshotService:
    logger.debug("Initializing singleton SnapshotService")
    return SnapshotService(
        store=get_document_store(),
        batch_service=get_batch_price_service(),
        exchange_rate_service=get_exchange_rate_service(),
        aggregator=get_snapshot_aggregator(),
    )


@lru_cache(maxsize=1)
def get_identity_provider() -> JWTIdentityProvider:
    logger.debug("Initializing singleton JWTIdentityProvider")
    return JWTIdentityProvider(settings.jwt_secret_key, settings.jwt_algorithm)


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    identity_provider: Annotated[JWTIdentityProvider, Depends(get_identity_provider)],
) -> str:
    """
    Verified user id from the Bearer token.

    Raises:
        HTTPException 401: If no token is provided or it is invalid/expired
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return identity_provider.verify(credentials.credentials)
    except TokenExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_optional_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    identity_provider: Annotated[JWTIdentityProvider, Depends(get_identity_provider)],
) -> str | None:
    """
    Optional version of get_current_user_id.

    Returns None when no token is sent or the token does not verify; the
    price endpoint then falls back to weaker caller identities.
    """
    if credentials is None:
        return None

    try:
        return identity_provider.verify(credentials.credentials)
    except InvalidTokenError as e:
        logger.debug(f"Ignoring unverifiable bearer token: {e}")
        return None


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

def clear_service_caches() -> None:
    """
    Clear all service caches.

    Useful for testing or when you need to reset state.
    """
    get_http_client.cache_clear()
    get_source_fetcher.cache_clear()
    get_price_resolver.cache_clear()
    get_exchange_rate_service.cache_clear()
    get_gold_price_service.cache_clear()
    get_rate_limiter.cache_clear()
    get_batch_price_service.cache_clear()
    get_document_store.cache_clear()
    get_snapshot_aggregator.cache_clear()
    get_snapshot_service.cache_clear()
    get_identity_provider.cache_clear()
    logger.info("Cleared all service singleton caches")
