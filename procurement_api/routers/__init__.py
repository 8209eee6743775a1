"""HTTP routers, one per workflow resource."""

from procurement_api.routers import (
    delegations,
    health,
    invoices,
    purchase_orders,
    quotes,
    requisitions,
)

ALL_ROUTERS = (
    health.router,
    requisitions.router,
    quotes.router,
    purchase_orders.router,
    invoices.router,
    delegations.router,
)

__all__ = ["ALL_ROUTERS"]
