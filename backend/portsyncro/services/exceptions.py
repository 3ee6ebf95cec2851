# backend/portsyncro/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
The router layer is responsible for mapping these to appropriate HTTP responses.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   ├── InvalidPriceRequestError
    │   ├── BatchTooLargeError
    │   └── InvalidHoldingsError
    ├── NotFoundError
    │   └── SnapshotNotFoundError
    ├── MarketDataError
    │   ├── FetchError
    │   │   ├── FetchTimeoutError
    │   │   ├── UpstreamRateLimitError
    │   │   └── UpstreamHTTPError
    │   └── MalformedPayloadError
    ├── FXRateError
    ├── RateLimitExceededError
    └── AuthenticationError
        └── InvalidTokenError
            └── TokenExpiredError

FetchError and MalformedPayloadError are always absorbed by the price
resolution chain; they never reach a caller of the price API.
"""


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when input validation fails.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidPriceRequestError(ValidationError):
    """Raised when a price request body has the wrong shape."""


class BatchTooLargeError(ValidationError):
    """
    Raised when a price batch exceeds the per-category instrument cap.

    Attributes:
        category: "stocks" or "crypto"
        count: Number of unique instruments requested
        limit: Maximum allowed
    """

    def __init__(self, category: str, count: int, limit: int) -> None:
        self.category = category
        self.count = count
        self.limit = limit
        super().__init__(
            f"Too many {category}: {count} requested, maximum is {limit}",
            field=category,
        )


class InvalidHoldingsError(ValidationError):
    """Raised when a stored or submitted holdings document cannot be read."""


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "Snapshot")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class SnapshotNotFoundError(NotFoundError):
    """Raised when no snapshot exists for the requested date."""

    def __init__(self, user_id: str, snapshot_date: str) -> None:
        self.user_id = user_id
        self.snapshot_date = snapshot_date
        super().__init__(
            f"No snapshot recorded for {snapshot_date}",
            resource_type="Snapshot",
            resource_id=snapshot_date,
        )


# =============================================================================
# MARKET DATA ERRORS
# =============================================================================


class MarketDataError(ServiceError):
    """
    Base exception for upstream market data failures.

    Attributes:
        provider: Name of the source that failed
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class FetchError(MarketDataError):
    """
    Raised by SourceFetcher once its retry budget is spent.

    Attributes:
        url: The URL that was requested
        attempts: Number of attempts made
    """

    def __init__(
            self,
            message: str,
            url: str,
            attempts: int = 1,
            provider: str | None = None,
    ) -> None:
        self.url = url
        self.attempts = attempts
        super().__init__(message, provider=provider)


class FetchTimeoutError(FetchError):
    """Raised when an upstream call exceeds its hard timeout. Never retried."""

    def __init__(self, url: str, timeout: float, attempts: int = 1) -> None:
        self.timeout = timeout
        super().__init__(f"Request to {url} timed out after {timeout}s", url=url, attempts=attempts)


class UpstreamRateLimitError(FetchError):
    """Raised when an upstream keeps answering HTTP 429."""

    def __init__(self, url: str, attempts: int = 1) -> None:
        self.status_code = 429
        super().__init__(f"Upstream rate limited request to {url}", url=url, attempts=attempts)


class UpstreamHTTPError(FetchError):
    """
    Raised on a non-2xx answer or a transport failure.

    Attributes:
        status_code: HTTP status, or None for transport errors
    """

    def __init__(
            self,
            url: str,
            status_code: int | None = None,
            reason: str | None = None,
            attempts: int = 1,
    ) -> None:
        self.status_code = status_code
        self.reason = reason
        detail = f"HTTP {status_code}" if status_code is not None else (reason or "transport error")
        super().__init__(f"Request to {url} failed: {detail}", url=url, attempts=attempts)


class MalformedPayloadError(MarketDataError):
    """Raised when an upstream answered but the payload has no usable price."""


# =============================================================================
# EXCHANGE RATE ERRORS
# =============================================================================


class FXRateError(ServiceError):
    """
    Raised when a live exchange rate source fails or returns nonsense.

    Attributes:
        source: Name of the rate source
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        super().__init__(message)


# =============================================================================
# ADMISSION CONTROL
# =============================================================================


class RateLimitExceededError(ServiceError):
    """
    Raised when a caller identity exceeds its price request allowance.

    Attributes:
        identity: The caller identity key that was rejected
        retry_after: Seconds the caller should wait
    """

    def __init__(self, identity: str, retry_after: int = 60) -> None:
        self.identity = identity
        self.retry_after = retry_after
        super().__init__("Too many requests. Please try again later.")


# =============================================================================
# AUTHENTICATION ERRORS
# =============================================================================


class AuthenticationError(ServiceError):
    """Base exception for identity verification failures."""


class InvalidTokenError(AuthenticationError):
    """Raised when a bearer token is malformed or wrongly signed."""


class TokenExpiredError(InvalidTokenError):
    """Raised when a bearer token was valid but has expired."""
