# backend/portsyncro/utils/__init__.py
"""
Cross-cutting utilities.

- logging: Logging configuration with request context support
- context: Request context (correlation ID, caller identity)

Usage:
    from portsyncro.utils import setup_logging, get_logger
    from portsyncro.utils import get_correlation_id, set_correlation_id
"""

from portsyncro.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
    get_caller_identity,
    set_caller_identity,
    clear_caller_identity,
)
from portsyncro.utils.logging import setup_logging, get_logger

__all__ = [
    "setup_logging",
    "get_logger",
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "get_caller_identity",
    "set_caller_identity",
    "clear_caller_identity",
]
