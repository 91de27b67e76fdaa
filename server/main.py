"""
FastAPI host for the storefront data-access layer.

Owns the lifecycle of the store and cache clients and exposes thin product,
inventory and cart routes plus operational cache endpoints.
"""

# Performance: Install uvloop if available (Linux/macOS only)
try:
    import uvloop
    uvloop.install()
except ImportError:
    pass  # Windows - uvloop not available, use default asyncio

import logging
from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from core.container import container
from core.exceptions import DomainError, QueryError
from core.logging import configure_logging, get_logger
from middleware.errors import CatchAllExceptionsMiddleware, domain_error_handler, query_error_handler
from routers import cache_admin, products, inventory, cart

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)

logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("watchfiles").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting storefront services")

    await container.database().startup()
    await container.cache().startup()

    logger.info("Services started successfully",
                cache_enabled=container.cache().is_enabled())
    yield

    await container.cache().shutdown()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="Storefront Services",
    version="1.0.0",
    description="Storefront back end with a batched, cache-aside query layer",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)

app.add_exception_handler(DomainError, domain_error_handler)
app.add_exception_handler(QueryError, query_error_handler)
app.add_middleware(CatchAllExceptionsMiddleware)

# CORS must be added after the exception middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cache_admin.router)
app.include_router(products.router)
app.include_router(inventory.router)
app.include_router(cart.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    cache = container.cache()
    return {
        "status": "OK",
        "service": "storefront",
        "version": "1.0.0",
        "environment": "development" if settings.debug else "production",
        "redis_enabled": settings.redis_enabled,
        "cache_connected": await cache.ping(),
        "database": settings.database_url.split(":")[0],
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting storefront services",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers
    )
