"""
API Routes Module
"""
from .analytics import router as analytics_router
from .health import router as health_router
from .orders import router as orders_router
from .products import router as products_router
from .users import router as users_router

__all__ = [
    "analytics_router",
    "health_router",
    "orders_router",
    "products_router",
    "users_router",
]
