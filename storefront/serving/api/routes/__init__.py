"""
API Routes Module
"""
from .admin import router as admin_router
from .cart import router as cart_router
from .checkout import router as checkout_router
from .health import router as health_router
from .orders import router as orders_router
from .payment import router as payment_router
from .products import router as products_router
from .shipping import router as shipping_router

__all__ = [
    "admin_router",
    "cart_router",
    "checkout_router",
    "health_router",
    "orders_router",
    "payment_router",
    "products_router",
    "shipping_router",
]
