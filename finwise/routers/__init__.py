"""Routers package."""

from finwise.routers.admin import router as admin_router
from finwise.routers.auth import router as auth_router
from finwise.routers.billing import router as billing_router
from finwise.routers.categories import router as categories_router
from finwise.routers.currency import router as currency_router
from finwise.routers.dashboard import router as dashboard_router
from finwise.routers.expenses import router as expenses_router
from finwise.routers.health import router as health_router
from finwise.routers.income import router as income_router
from finwise.routers.subscription import router as subscription_router
from finwise.routers.users import router as users_router

__all__ = [
    "admin_router",
    "auth_router",
    "billing_router",
    "categories_router",
    "currency_router",
    "dashboard_router",
    "expenses_router",
    "health_router",
    "income_router",
    "subscription_router",
    "users_router",
]
