"""
FastAPI Production Application

Main entry point for the Storefront Orders API.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from storefront.config import get_settings
from storefront.config.logging import configure_logging
from storefront.database.connection import close_database, init_database
from storefront.serving.api.main import create_api_app
from storefront.serving.cache import close_redis, init_redis
from storefront.services.payment import SnapPaymentGateway

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting Storefront Orders API", environment=settings.app_env)

    await init_database(create_schema=settings.is_development)

    # Redis only backs a read cache; run without it when it is down
    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis init failed, caching disabled", error=str(e))

    app.state.payment_gateway = SnapPaymentGateway(settings.payment)

    yield

    logger.info("Shutting down...")
    await app.state.payment_gateway.close()
    await close_redis()
    await close_database()


app = create_api_app(settings, lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
