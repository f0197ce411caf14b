"""API routers for the billing engine."""

from billing_engine.api.bills import router as bills_router
from billing_engine.api.coding import router as coding_router

__all__ = [
    "bills_router",
    "coding_router",
]
