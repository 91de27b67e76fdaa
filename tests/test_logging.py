"""Tests for the storefront log helpers."""

import pytest
import structlog
from structlog.testing import capture_logs

from core.logging import SLOW_QUERY_MS, describe_cache_key, log_cache_operation, log_query


class TestDescribeCacheKey:

    @pytest.mark.parametrize("key, expected", [
        ("query:products:id:p1", {"key_family": "entity", "table": "products"}),
        ("query:inventory:derived:count:0123456789abcdef", {"key_family": "derived", "table": "inventory"}),
        ("query:products:derived:*", {"key_family": "derived", "table": "products"}),
        ("query:carts:*", {"key_family": "table", "table": "carts"}),
        ("query:raw:0123456789abcdef", {"key_family": "raw"}),
        ("cart:session:sess-1", {"key_family": "cart"}),
        ("campaign:list:{}", {"key_family": "campaign"}),
    ])
    def test_families(self, key, expected):
        assert describe_cache_key(key) == expected

    def test_custom_prefix(self):
        assert describe_cache_key("shop:products:id:p1", prefix="shop:") == {
            "key_family": "entity", "table": "products",
        }
        assert describe_cache_key("query:products:id:p1", prefix="shop:") == {"key_family": "query"}


class TestLogHelpers:

    def test_reads_log_at_debug_with_table(self):
        with capture_logs() as logs:
            log_cache_operation(structlog.get_logger("test"), "get", "query:products:id:p1", hit=True)

        assert logs == [{
            "event": "Cache operation",
            "log_level": "debug",
            "operation": "get",
            "cache_key": "query:products:id:p1",
            "key_family": "entity",
            "table": "products",
            "cache_hit": True,
        }]

    def test_invalidations_log_at_info(self):
        with capture_logs() as logs:
            log_cache_operation(structlog.get_logger("test"), "clear_pattern",
                                "query:inventory:derived:*", deleted=3)

        assert logs[0]["event"] == "Cache invalidated"
        assert logs[0]["log_level"] == "info"
        assert logs[0]["table"] == "inventory"
        assert logs[0]["deleted"] == 3

    def test_slow_store_query_warns(self):
        with capture_logs() as logs:
            logger = structlog.get_logger("test")
            log_query(logger, "query_many", "products", 0.0, 0.001, rows=2)
            log_query(logger, "update_many", "inventory", 0.0, SLOW_QUERY_MS / 1000 + 0.1, rows=1)

        assert [(entry["event"], entry["log_level"]) for entry in logs] == [
            ("Store query", "debug"),
            ("Slow store query", "warning"),
        ]
        assert logs[0]["execution_time_ms"] == 1.0
