"""Shared fixtures: SQLite store, in-memory Redis double and wired services."""

import fnmatch
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from core.cache import CacheService
from core.config import Settings
from core.database import Database
from services.cache_aside import CacheAside
from services.cart import CartService
from services.inventory import InventoryService
from services.product import ProductService
from services.query import UnifiedQueryService


class InMemoryRedis:
    """Async stand-in for ``redis.asyncio.Redis`` with decode_responses=True."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    async def ping(self):
        return True

    async def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    async def mget(self, keys):
        return [self.store.get(key) for key in keys]

    async def setex(self, key: str, ttl: int, value: Any):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                deleted += 1
        return deleted

    async def keys(self, pattern: str = "*"):
        return [key for key in self.store if fnmatch.fnmatchcase(key, pattern)]

    async def flushdb(self):
        self.store.clear()
        self.ttls.clear()
        return True

    async def dbsize(self) -> int:
        return len(self.store)

    async def info(self, section: Optional[str] = None):
        return {"used_memory_human": "1.05M"}

    async def aclose(self):
        return None


def failing_redis_client(error: Exception = None) -> AsyncMock:
    """Redis client that connects but fails on every command afterwards."""
    if error is None:
        error = RedisConnectionError("Redis connection lost")

    client = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    for name in ("get", "mget", "setex", "delete", "keys", "flushdb", "dbsize", "info"):
        setattr(client, name, AsyncMock(side_effect=error))
    client.aclose = AsyncMock()
    return client


PRODUCTS = [
    {"id": "p1", "name": "Linen Shirt", "slug": "linen-shirt", "category_id": "c1",
     "price": 10.0, "status": "ACTIVE"},
    {"id": "p2", "name": "Wool Scarf", "slug": "wool-scarf", "category_id": "c1",
     "price": 20.0, "status": "ACTIVE"},
    {"id": "p4", "name": "Leather Bag", "slug": "leather-bag", "category_id": "c2",
     "price": 60000.0, "status": "ACTIVE"},
    {"id": "p5", "name": "Old Stock Hat", "slug": "old-stock-hat", "category_id": "c2",
     "price": 15.0, "status": "INACTIVE"},
]

INVENTORY = [
    {"product_id": "p1", "quantity": 100, "reserved": 0},
    {"product_id": "p2", "quantity": 5, "reserved": 2},
    {"product_id": "p4", "quantity": 10, "reserved": 0},
]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path}/storefront-test.db",
        redis_enabled=False,
        log_format="console",
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    await db.insert_many("products", PRODUCTS)
    await db.insert_many("inventory", INVENTORY)
    yield db
    await db.shutdown()


@pytest.fixture
def redis_double() -> InMemoryRedis:
    return InMemoryRedis()


@pytest_asyncio.fixture
async def cache(settings, redis_double):
    service = CacheService(settings, client=redis_double)
    await service.startup()
    yield service
    await service.shutdown()


@pytest_asyncio.fixture
async def failing_cache(settings):
    service = CacheService(settings, client=failing_redis_client())
    await service.startup()
    yield service
    await service.shutdown()


@pytest.fixture
def cache_aside(cache, settings) -> CacheAside:
    return CacheAside(cache, settings)


@pytest.fixture
def query_service(database, cache, cache_aside, settings) -> UnifiedQueryService:
    return UnifiedQueryService(database, cache, cache_aside, settings)


@pytest.fixture
def failing_query_service(database, failing_cache, settings) -> UnifiedQueryService:
    return UnifiedQueryService(database, failing_cache, CacheAside(failing_cache, settings), settings)


@pytest.fixture
def product_service(query_service) -> ProductService:
    return ProductService(query_service)


@pytest.fixture
def inventory_service(query_service) -> InventoryService:
    return InventoryService(query_service)


@pytest.fixture
def cart_service(query_service, cache_aside, product_service, inventory_service) -> CartService:
    return CartService(query_service, cache_aside, product_service, inventory_service)
