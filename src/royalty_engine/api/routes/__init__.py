"""API routes."""

from royalty_engine.api.routes.allocations import router as allocations_router
from royalty_engine.api.routes.batches import router as batches_router
from royalty_engine.api.routes.health import router as health_router
from royalty_engine.api.routes.payouts import router as payouts_router
from royalty_engine.api.routes.reports import router as reports_router

__all__ = [
    "allocations_router",
    "batches_router",
    "health_router",
    "payouts_router",
    "reports_router",
]
