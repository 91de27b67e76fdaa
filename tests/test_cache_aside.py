"""Tests for the cache-aside helper and its key families."""

from unittest.mock import AsyncMock

import pytest

from models.cache import TTLTier
from services.cache_aside import CacheAside


class TestWithCache:

    @pytest.mark.asyncio
    async def test_miss_runs_producer_once_and_stores(self, cache_aside, redis_double):
        producer = AsyncMock(return_value={"sections": 3})

        first = await cache_aside.with_cache("stats:home", TTLTier.MEDIUM, producer)
        second = await cache_aside.with_cache("stats:home", TTLTier.MEDIUM, producer)

        assert first == second == {"sections": 3}
        producer.assert_awaited_once()
        assert redis_double.ttls["stats:home"] == 300

    @pytest.mark.asyncio
    async def test_none_result_is_not_cached(self, cache_aside, redis_double):
        producer = AsyncMock(return_value=None)

        assert await cache_aside.with_cache("missing", TTLTier.SHORT, producer) is None
        assert await cache_aside.with_cache("missing", TTLTier.SHORT, producer) is None

        assert producer.await_count == 2
        assert "missing" not in redis_double.store

    @pytest.mark.asyncio
    async def test_producer_error_propagates_and_stores_nothing(self, cache_aside, redis_double):
        producer = AsyncMock(side_effect=RuntimeError("store down"))

        with pytest.raises(RuntimeError, match="store down"):
            await cache_aside.with_cache("stats:orders", TTLTier.MEDIUM, producer)

        producer.assert_awaited_once()
        assert redis_double.store == {}

    @pytest.mark.asyncio
    async def test_failing_backend_falls_through_to_producer(self, failing_cache, settings):
        helper = CacheAside(failing_cache, settings)
        producer = AsyncMock(return_value=[1, 2])

        assert await helper.with_cache("k", TTLTier.SHORT, producer) == [1, 2]
        assert await helper.with_cache("k", TTLTier.SHORT, producer) == [1, 2]
        assert producer.await_count == 2

    def test_ttl_tiers_follow_settings(self, cache_aside):
        assert cache_aside.ttl(TTLTier.SHORT) == 60
        assert cache_aside.ttl(TTLTier.MEDIUM) == 300
        assert cache_aside.ttl(TTLTier.LONG) == 3600
        assert cache_aside.ttl(TTLTier.EXTENDED) == 86400
        assert cache_aside.ttl("long") == 3600


class TestKeyFamilies:

    @pytest.mark.asyncio
    async def test_ui_config_is_long_lived(self, cache_aside, redis_double):
        await cache_aside.get_ui_config("ko", AsyncMock(return_value={"theme": "light"}))
        assert redis_double.ttls["ui_config:ko"] == 3600

    @pytest.mark.asyncio
    async def test_language_pack_is_extended(self, cache_aside, redis_double):
        await cache_aside.get_language_pack("en", AsyncMock(return_value={"cart": "Cart"}))
        assert redis_double.ttls["language_pack:en"] == 86400

    @pytest.mark.asyncio
    async def test_campaign_keys_ignore_param_order(self, cache_aside):
        producer = AsyncMock(return_value=[{"id": "spring"}])

        await cache_aside.get_campaigns({"page": 1, "status": "active"}, producer)
        await cache_aside.get_campaigns({"status": "active", "page": 1}, producer)

        producer.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalidate_prefix(self, cache_aside, redis_double):
        await cache_aside.get_campaigns({"page": 1}, AsyncMock(return_value=[1]))
        await cache_aside.get_campaigns({"page": 2}, AsyncMock(return_value=[2]))
        await cache_aside.get_stats("orders", AsyncMock(return_value={"count": 4}))

        assert await cache_aside.invalidate_campaigns() == 2
        assert list(redis_double.store) == ["stats:orders"]

    @pytest.mark.asyncio
    async def test_invalidate_single_language(self, cache_aside, redis_double):
        await cache_aside.get_ui_config("ko", AsyncMock(return_value={"a": 1}))
        await cache_aside.get_ui_config("en", AsyncMock(return_value={"a": 2}))

        assert await cache_aside.invalidate_ui_config("ko") == 1
        assert list(redis_double.store) == ["ui_config:en"]
