# backend/portsyncro/routers/__init__.py
"""
API routers for PortSyncro.

Each router handles a specific concern:
- prices: Batch price resolution (/api/prices)
- exchange_rate: USD/IDR rate (/api/exchange-rate)
- valuation: On-demand portfolio valuation (/api/valuation)
- snapshots: Holdings and daily snapshot history (/users/me/*)
"""

from portsyncro.routers.prices import router as prices_router
from portsyncro.routers.exchange_rate import router as exchange_rate_router
from portsyncro.routers.valuation import router as valuation_router
from portsyncro.routers.snapshots import router as snapshots_router

__all__ = [
    "prices_router",
    "exchange_rate_router",
    "valuation_router",
    "snapshots_router",
]
