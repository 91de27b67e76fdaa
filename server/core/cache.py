"""Remote cache client over Redis.

Fails open: when Redis is not configured, unreachable at startup or raises
mid-flight, every operation degrades to a miss or a no-op and the error is
logged. Nothing here ever raises into the query path.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

import redis.asyncio as redis

from core.config import Settings
from core.logging import get_logger, log_cache_operation
from models.cache import CacheOutcome

logger = get_logger(__name__)


class CacheService:
    """Async Redis cache with a no-op mode.

    Backend selection:
    - Injected client: used as-is (tests, shared pools)
    - Redis: when REDIS_ENABLED=true and REDIS_URL is set
    - No-op: otherwise, or after a failed connect
    """

    def __init__(self, settings: Settings, client: Optional[redis.Redis] = None):
        self.settings = settings
        self.redis: Optional[redis.Redis] = None
        self._client = client

    async def startup(self):
        """Initialize cache connection."""
        client = self._client
        if client is None and self.settings.redis_enabled and self.settings.redis_url:
            client = redis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self.settings.redis_socket_timeout,
                socket_connect_timeout=self.settings.redis_socket_timeout,
            )

        if client is None:
            logger.info("Cache disabled, running without Redis",
                        redis_enabled=self.settings.redis_enabled)
            return

        try:
            await client.ping()
            self.redis = client
            logger.info("Redis cache initialized", url=self.settings.redis_url)
        except Exception as e:
            logger.warning("Redis connection failed, cache disabled", error=str(e))
            self.redis = None

    async def shutdown(self):
        """Close cache connections."""
        if self.redis:
            try:
                await self.redis.aclose()
                logger.info("Redis cache connections closed")
            except Exception as e:
                logger.warning("Redis close failed", error=str(e))
            self.redis = None

    def is_enabled(self) -> bool:
        return self.redis is not None

    def _log(self, operation: str, key: str, **kwargs) -> None:
        log_cache_operation(logger, operation, key, prefix=self.settings.cache_key_prefix, **kwargs)

    def _decode(self, key: str, raw: Any) -> CacheOutcome:
        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Cache payload could not be decoded", key=key, error=str(e))
            return CacheOutcome.error(f"decode: {e}")
        self._log("get", key, hit=True)
        return CacheOutcome.hit(value)

    async def lookup(self, key: str) -> CacheOutcome:
        """Look up one key."""
        if not self.redis:
            return CacheOutcome.miss()
        try:
            raw = await self.redis.get(key)
        except Exception as e:
            logger.warning("Cache get failed", key=key, error=str(e))
            return CacheOutcome.error(str(e))

        if raw is None:
            self._log("get", key, hit=False)
            return CacheOutcome.miss()
        return self._decode(key, raw)

    async def lookup_many(self, keys: Sequence[str]) -> Dict[str, CacheOutcome]:
        """Look up many keys with a single MGET."""
        keys = list(keys)
        if not keys:
            return {}
        if not self.redis:
            return {key: CacheOutcome.miss() for key in keys}
        try:
            raws = await self.redis.mget(keys)
        except Exception as e:
            logger.warning("Cache mget failed", keys=len(keys), error=str(e))
            return {key: CacheOutcome.error(str(e)) for key in keys}

        outcomes = {}
        for key, raw in zip(keys, raws):
            if raw is None:
                outcomes[key] = CacheOutcome.miss()
            else:
                outcomes[key] = self._decode(key, raw)
        hits = sum(1 for outcome in outcomes.values() if outcome.is_hit)
        self._log("mget", keys[0], hits=hits, requested=len(keys))
        return outcomes

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        outcome = await self.lookup(key)
        return outcome.value if outcome.is_hit else None

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        """Set value in cache with TTL (seconds). ``None`` is never stored."""
        if not self.redis or value is None:
            return False
        try:
            serialized = json.dumps(value, default=str)
            await self.redis.setex(key, ttl, serialized)
            self._log("set", key, ttl=ttl)
            return True
        except Exception as e:
            logger.warning("Cache set failed", key=key, error=str(e))
            return False

    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns the number removed."""
        if not self.redis or not keys:
            return 0
        try:
            deleted = await self.redis.delete(*keys)
            self._log("delete", keys[0], deleted=deleted, keys=len(keys))
            return int(deleted)
        except Exception as e:
            logger.warning("Cache delete failed", keys=list(keys), error=str(e))
            return 0

    async def delete_pattern(self, pattern: str) -> int:
        """Clear keys matching a glob pattern such as ``campaign:*``."""
        if not self.redis:
            return 0
        try:
            keys: List[str] = await self.redis.keys(pattern)
            if not keys:
                return 0
            deleted = await self.redis.delete(*keys)
            self._log("clear_pattern", pattern, deleted=deleted)
            return int(deleted)
        except Exception as e:
            logger.warning("Cache clear pattern failed", pattern=pattern, error=str(e))
            return 0

    async def flush(self) -> bool:
        """Drop every key in the current Redis database."""
        if not self.redis:
            return False
        try:
            await self.redis.flushdb()
            logger.info("Cache flushed")
            return True
        except Exception as e:
            logger.warning("Cache flush failed", error=str(e))
            return False

    async def count_keys(self) -> int:
        if not self.redis:
            return 0
        try:
            return int(await self.redis.dbsize())
        except Exception as e:
            logger.warning("Cache dbsize failed", error=str(e))
            return 0

    async def memory_usage(self) -> str:
        """Human-readable memory footprint, ``"Unknown"`` when unavailable."""
        if not self.redis:
            return "Unknown"
        try:
            info = await self.redis.info("memory")
            return str(info.get("used_memory_human", "Unknown"))
        except Exception as e:
            logger.warning("Cache info failed", error=str(e))
            return "Unknown"

    async def ping(self) -> bool:
        if not self.redis:
            return False
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.warning("Cache ping failed", error=str(e))
            return False
