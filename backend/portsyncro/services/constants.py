# backend/portsyncro/services/constants.py
"""
Centralized constants for the PortSyncro services.

Single source of truth for business constants, upstream endpoints and
API rate limits. Values that operators may need to tune per deployment
(timeouts, window lengths, batch cap) live in ``portsyncro.config`` and
default to the values below.

Usage:
    from portsyncro.services.constants import (
        DOMESTIC_LOT_SIZE,
        FALLBACK_EXCHANGE_RATE,
        YAHOO_CHART_URL,
    )
"""

from decimal import Decimal


# =============================================================================
# MONEY
# =============================================================================

ZERO: Decimal = Decimal("0")

# IDR amounts are whole rupiah, USD amounts are cents
IDR_QUANTUM: Decimal = Decimal("1")
USD_QUANTUM: Decimal = Decimal("0.01")

# Percent figures (price change, gain percent) carry two decimals
PERCENT_QUANTUM: Decimal = Decimal("0.01")

# One lot on the Indonesia Stock Exchange is 100 shares
DOMESTIC_LOT_SIZE: int = 100

# Grams per troy ounce, for converting gold futures quotes to IDR/gram
TROY_OUNCE_GRAMS: Decimal = Decimal("31.1034768")


# =============================================================================
# EXCHANGE RATE
# =============================================================================

# IDR per 1 USD when no live rate can be obtained (degraded mode, not an error)
FALLBACK_EXCHANGE_RATE: Decimal = Decimal("16000")
FALLBACK_RATE_SOURCE: str = "Fallback (Offline)"

# Live rates outside this band are logged as suspicious but still used
EXCHANGE_RATE_SANE_MIN: Decimal = Decimal("5000")
EXCHANGE_RATE_SANE_MAX: Decimal = Decimal("25000")

EXCHANGE_RATE_API_URL: str = "https://api.exchangerate-api.com/v4/latest/USD"
FRANKFURTER_API_URL: str = "https://api.frankfurter.app/latest"


# =============================================================================
# PRICE RESOLUTION
# =============================================================================

# Sliding-window admission per caller identity
PRICE_RATE_LIMIT_MAX_REQUESTS: int = 30
PRICE_RATE_LIMIT_WINDOW_SECONDS: float = 60.0
RATE_LIMITER_SWEEP_INTERVAL_SECONDS: float = 60.0

# Retry hint returned with a rejected price request
PRICE_RATE_LIMIT_RETRY_AFTER: int = 60

# Unique instruments per category in one batch
MAX_INSTRUMENTS_PER_CATEGORY: int = 50

# SourceFetcher policy: one extra attempt, 429 backoff grows with attempt number
FETCH_MAX_ATTEMPTS: int = 2
FETCH_RATE_LIMIT_BACKOFF_SECONDS: float = 1.0
FETCH_RETRY_DELAY_SECONDS: float = 0.5
FETCH_TIMEOUT_SECONDS: float = 10.0

# Change window labels
CHANGE_WINDOW_24H: str = "24h"
CHANGE_WINDOW_1D: str = "1d"

# Suffixes marking an equity as listed on the domestic exchange
DOMESTIC_SUFFIXES: tuple[str, ...] = (".JK", ":JK", ":IDX")

# Dotted suffixes stripped from foreign tickers ("AAPL.US" -> "AAPL")
FOREIGN_EXCHANGE_CODES: frozenset[str] = frozenset({"US", "NASDAQ", "NYSE", "NYSEARCA", "AMEX"})

# Suffix used when a foreign holding is turned into a price request key
FOREIGN_KEY_SUFFIX: str = ":US"
DOMESTIC_KEY_SUFFIX: str = ".JK"

# Key under which the gold spot price is returned
GOLD_PRICE_KEY: str = "gold"
GOLD_FUTURES_SYMBOL: str = "GC=F"

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1",
)


# =============================================================================
# UPSTREAM ENDPOINTS
# =============================================================================

# Quote page for domestic equities (HTML, best effort)
IDX_QUOTE_PAGE_URL: str = "https://www.google.com/finance/quote/{symbol}:IDX"

# CSS classes on the quote page. Versioned by the third party; may break silently.
IDX_PRICE_CSS_CLASS: str = "YMlKec fxKbKc"
IDX_STAT_VALUE_CSS_CLASS: str = "P6K39c"
IDX_PREVIOUS_CLOSE_LABEL: str = "Previous close"

YAHOO_QUOTE_URL: str = "https://query1.finance.yahoo.com/v7/finance/quote"
YAHOO_CHART_URL: str = "https://query2.finance.yahoo.com/v8/finance/chart/{symbol}"

CRYPTOCOMPARE_FULL_URL: str = "https://min-api.cryptocompare.com/data/pricemultifull"
CRYPTOCOMPARE_SPOT_URL: str = "https://min-api.cryptocompare.com/data/price"


# =============================================================================
# API RATE LIMITS (slowapi, per client address)
# =============================================================================

# Default for endpoints without an explicit limit
RATE_LIMIT_DEFAULT: str = "100/minute"

# Holdings writes and snapshot captures
RATE_LIMIT_WRITE: str = "30/minute"

# Health checks are polled by load balancers
RATE_LIMIT_HEALTH: str = "300/minute"
