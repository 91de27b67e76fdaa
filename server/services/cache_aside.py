"""Cache-aside helper plus the storefront's prefix-scoped key families.

Key families:
    campaign:list:{params}     -> campaign listings (SHORT)
    ui_config:{language}       -> UI configuration (LONG)
    stats:{name}               -> dashboard aggregates (MEDIUM)
    language_pack:{language}   -> translations (EXTENDED)
"""

import json
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from core.cache import CacheService
from core.config import Settings
from core.logging import get_logger
from models.cache import TTLTier

logger = get_logger(__name__)

T = TypeVar("T")
Producer = Callable[[], Awaitable[T]]


class CacheAside:
    """Read through the cache, falling back to a producer on miss."""

    def __init__(self, cache: CacheService, settings: Settings):
        self.cache = cache
        self.settings = settings

    def ttl(self, tier: TTLTier) -> int:
        """Resolve a tier to seconds."""
        return {
            TTLTier.SHORT: self.settings.cache_ttl_short,
            TTLTier.MEDIUM: self.settings.cache_ttl_medium,
            TTLTier.LONG: self.settings.cache_ttl_long,
            TTLTier.EXTENDED: self.settings.cache_ttl_extended,
        }[TTLTier(tier)]

    async def with_cache(self, key: str, tier: TTLTier, producer: Producer) -> Any:
        """Return the cached value for ``key`` or produce, store and return it.

        The producer runs at most once per call. Its exceptions propagate and
        nothing is stored; a ``None`` result is returned but not cached.
        """
        outcome = await self.cache.lookup(key)
        if outcome.is_hit:
            logger.debug("Cache hit", key=key)
            return outcome.value

        logger.debug("Cache miss", key=key, status=outcome.status.value)
        value = await producer()
        if value is not None:
            await self.cache.set(key, value, self.ttl(tier))
        return value

    async def invalidate(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``."""
        deleted = await self.cache.delete_pattern(f"{prefix}*")
        logger.info("Cache invalidated", prefix=prefix, deleted=deleted)
        return deleted

    async def flush(self) -> bool:
        return await self.cache.flush()

    # ============================================================================
    # Storefront key families
    # ============================================================================

    async def get_campaigns(self, params: Dict[str, Any], producer: Producer) -> Any:
        key = f"campaign:list:{json.dumps(params, sort_keys=True, default=str)}"
        return await self.with_cache(key, TTLTier.SHORT, producer)

    async def get_ui_config(self, language: str, producer: Producer) -> Any:
        return await self.with_cache(f"ui_config:{language}", TTLTier.LONG, producer)

    async def get_stats(self, name: str, producer: Producer) -> Any:
        return await self.with_cache(f"stats:{name}", TTLTier.MEDIUM, producer)

    async def get_language_pack(self, language: str, producer: Producer) -> Any:
        return await self.with_cache(f"language_pack:{language}", TTLTier.EXTENDED, producer)

    async def invalidate_campaigns(self) -> int:
        return await self.invalidate("campaign:")

    async def invalidate_ui_config(self, language: Optional[str] = None) -> int:
        if language:
            return await self.cache.delete(f"ui_config:{language}")
        return await self.invalidate("ui_config:")
