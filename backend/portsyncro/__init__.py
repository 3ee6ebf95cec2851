# backend/portsyncro/__init__.py
"""PortSyncro: price resolution and portfolio valuation service."""

__version__ = "0.1.0"
