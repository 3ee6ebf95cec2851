# backend/portsyncro/utils/context.py
"""
Request context management.

Request-scoped values stored in contextvars so they follow a request
through every awaited call:
- Correlation ID for request tracing
- Caller identity (the key the price rate limiter used)

Usage:
    from portsyncro.utils.context import get_correlation_id, set_correlation_id

    set_correlation_id("abc-123")
    get_correlation_id()  # "abc-123"
"""

from contextvars import ContextVar

# =============================================================================
# CONTEXT VARIABLES
# =============================================================================

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_caller_identity_var: ContextVar[str | None] = ContextVar("caller_identity", default=None)


# =============================================================================
# CORRELATION ID
# =============================================================================

def get_correlation_id() -> str | None:
    """
    Get the current request's correlation ID.

    Returns:
        The correlation ID for the current request, or None if not set.
    """
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set the correlation ID for the current request.

    Args:
        correlation_id: Unique identifier for this request
    """
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID at the end of a request."""
    _correlation_id_var.set(None)


# =============================================================================
# CALLER IDENTITY
# =============================================================================

def get_caller_identity() -> str | None:
    """Get the caller identity resolved for the current request, if any."""
    return _caller_identity_var.get()


def set_caller_identity(identity: str) -> None:
    """Record the caller identity so log records can carry it."""
    _caller_identity_var.set(identity)


def clear_caller_identity() -> None:
    _caller_identity_var.set(None)
