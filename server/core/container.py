"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import CacheService
from services.cache_aside import CacheAside
from services.query import UnifiedQueryService
from services.product import ProductService
from services.inventory import InventoryService
from services.cart import CartService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Cache service (Redis when configured, no-op otherwise)
    cache = providers.Singleton(
        CacheService,
        settings=settings
    )

    cache_aside = providers.Singleton(
        CacheAside,
        cache=cache,
        settings=settings
    )

    query_service = providers.Singleton(
        UnifiedQueryService,
        database=database,
        cache=cache,
        cache_aside=cache_aside,
        settings=settings
    )

    # Domain services
    product_service = providers.Factory(
        ProductService,
        query=query_service
    )

    inventory_service = providers.Factory(
        InventoryService,
        query=query_service
    )

    cart_service = providers.Factory(
        CartService,
        query=query_service,
        cache_aside=cache_aside,
        products=product_service,
        inventory=inventory_service
    )


# Global container instance
container = Container()
