"""
FastAPI Application Factory

Creates and configures the storefront API application.
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from storefront.config import Settings, get_settings
from storefront.serving.api.errors import register_exception_handlers
from storefront.serving.api.middleware import (
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from storefront.serving.api.routes import (
    admin_router,
    cart_router,
    checkout_router,
    health_router,
    orders_router,
    payment_router,
    products_router,
    shipping_router,
)

API_PREFIX = "/api/v1"


def create_api_app(settings: Optional[Settings] = None, lifespan=None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Settings to build from (defaults to the process settings)
        lifespan: Startup/shutdown handler; tests build the app without one

    Returns:
        Configured FastAPI app instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Storefront Orders API",
        description="Variant availability, checkout and order management",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.security.rate_limit_requests,
        window_seconds=settings.security.rate_limit_window_seconds,
        exempt_prefixes=(f"{API_PREFIX}/health", f"{API_PREFIX}/payment/notification"),
    )

    register_exception_handlers(app)

    app.include_router(health_router, prefix=API_PREFIX, tags=["Health"])
    app.include_router(products_router, prefix=f"{API_PREFIX}/products", tags=["Products"])
    app.include_router(cart_router, prefix=f"{API_PREFIX}/cart", tags=["Cart"])
    app.include_router(checkout_router, prefix=f"{API_PREFIX}/checkout", tags=["Checkout"])
    app.include_router(orders_router, prefix=f"{API_PREFIX}/orders", tags=["Orders"])
    app.include_router(payment_router, prefix=f"{API_PREFIX}/payment", tags=["Payment"])
    app.include_router(shipping_router, prefix=f"{API_PREFIX}/shipping", tags=["Shipping"])
    app.include_router(admin_router, prefix=f"{API_PREFIX}/admin", tags=["Admin"])

    return app
