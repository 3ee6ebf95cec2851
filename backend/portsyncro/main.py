# backend/portsyncro/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application with a lifespan that owns the rate
  limiter sweep task and the shared upstream HTTP client
- Registers global exception handlers
- Registers all routers
- Defines global endpoints (health checks)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from portsyncro.config import settings
from portsyncro.database import check_database_health, init_db
from portsyncro.dependencies import (
    clear_service_caches,
    get_http_client,
    get_rate_limiter,
)
from portsyncro.middleware import (
    CorrelationIdMiddleware,
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_HEALTH,
)
from portsyncro.routers import (
    prices_router,
    exchange_rate_router,
    valuation_router,
    snapshots_router,
)
from portsyncro.schemas.errors import ErrorDetail, ValidationErrorDetail
from portsyncro.services.exceptions import (
    AuthenticationError,
    MarketDataError,
    NotFoundError,
    RateLimitExceededError,
    ServiceError,
    ValidationError,
)
from portsyncro.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    rate_limiter = get_rate_limiter()
    rate_limiter.start()
    logger.info(f"{settings.app_name} started ({settings.environment})")
    try:
        yield
    finally:
        await rate_limiter.stop()
        await get_http_client().aclose()
        clear_service_caches()
        logger.info(f"{settings.app_name} stopped")


# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Portfolio price resolution and valuation API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# =============================================================================
# MIDDLEWARE (order matters: last added = first executed)
# =============================================================================

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# Service-layer exceptions carry no HTTP knowledge; these handlers map them
# to the shared ErrorDetail shape. The price endpoint builds its own 400,
# 429 and 500 bodies and never reaches them.
# =============================================================================

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle validation errors (400)."""
    logger.warning(f"Validation error: {exc}")
    return JSONResponse(
        status_code=400,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details={"field": exc.field} if exc.field else None,
        ).model_dump(),
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle missing resources (404)."""
    logger.info(f"Not found: {exc.resource_type} {exc.resource_id}")
    return JSONResponse(
        status_code=404,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details={"resource_type": exc.resource_type, "resource_id": exc.resource_id},
        ).model_dump(),
    )


@app.exception_handler(RateLimitExceededError)
async def rate_limit_exceeded_error_handler(
    request: Request, exc: RateLimitExceededError
) -> JSONResponse:
    """Handle per-identity price rate limit rejections outside /api/prices (429)."""
    logger.warning(f"Price rate limit exceeded for {exc.identity}")
    return JSONResponse(
        status_code=429,
        content=ErrorDetail(
            error="RATE_LIMIT_EXCEEDED",
            message=str(exc),
            details={"retry_after": exc.retry_after, "identifier": exc.identity},
        ).model_dump(),
        headers={"Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError) -> JSONResponse:
    """Handle market data errors that escaped the resolution chain (502)."""
    logger.error(f"Market data error: {exc}")
    return JSONResponse(
        status_code=502,
        content=ErrorDetail(
            error="MarketDataError",
            message=str(exc),
            details={"provider": exc.provider} if exc.provider else None,
        ).model_dump(),
    )


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(
    request: Request, exc: AuthenticationError
) -> JSONResponse:
    """Handle authentication errors (401)."""
    logger.warning(f"Authentication error: {exc}")
    return JSONResponse(
        status_code=401,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details=None,
        ).model_dump(),
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle generic service errors (500)."""
    logger.error(f"Service error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorDetail(
            error="ServiceError",
            message=str(exc),
            details=None,
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert FastAPI's {"detail": ...} to the ErrorDetail format."""
    error_types = {
        400: "BadRequestError",
        401: "UnauthorizedError",
        403: "ForbiddenError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        409: "ConflictError",
        422: "ValidationError",
        429: "RateLimitError",
        500: "InternalServerError",
        503: "ServiceUnavailableError",
    }
    error_type = error_types.get(exc.status_code, "HTTPError")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(
            error=error_type,
            message=str(exc.detail) if exc.detail else "An error occurred",
            details=None,
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert the default 422 body to the ValidationErrorDetail format."""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })

    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(
            error="ValidationError",
            message="Request validation failed",
            details=errors,
        ).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(prices_router)  # /api/prices
app.include_router(exchange_rate_router)  # /api/exchange-rate
app.include_router(valuation_router)  # /api/valuation
app.include_router(snapshots_router)  # /users/me/*


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def root(request: Request):
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
    }


@app.get("/health", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def health_check(request: Request):
    """
    Health of all dependencies.

    - 503 when the database (critical) is unhealthy
    - 200 with rate limiter statistics otherwise
    """
    checks = {}
    critical_healthy = True

    database = check_database_health()
    checks["database"] = {**database, "critical": True}
    if database["status"] != "healthy":
        critical_healthy = False

    rate_limiter = get_rate_limiter()
    stats = rate_limiter.stats
    checks["price_rate_limiter"] = {
        "status": "healthy" if rate_limiter.is_running else "degraded",
        "critical": False,
        "sweep_running": rate_limiter.is_running,
        "tracked_identities": stats.tracked_identities,
        "admitted": stats.admitted,
        "rejected": stats.rejected,
        "evicted": stats.evicted,
    }

    if not critical_healthy:
        overall_status = "unhealthy"
    elif any(check["status"] != "healthy" for check in checks.values()):
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    response_data = {"status": overall_status, "checks": checks}
    if not critical_healthy:
        return JSONResponse(status_code=503, content=response_data)
    return response_data


@app.get("/health/live", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """Liveness probe: 200 whenever the process is running."""
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def readiness_check(request: Request):
    """Readiness probe: 503 while the database is unavailable."""
    if check_database_health()["status"] == "healthy":
        return {"status": "ready"}
    return JSONResponse(
        status_code=503,
        content={"status": "not_ready", "error": "Database unavailable"},
    )
