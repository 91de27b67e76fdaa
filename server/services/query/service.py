"""Unified query service: batched, cache-aside access to every storefront table.

Reads go cache first and fall back to one store round trip for whatever is
missing. Writes are one store mutation each; on success the affected entity
keys and the table's derived-query keys are invalidated.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from sqlmodel import SQLModel

from core.cache import CacheService
from core.config import Settings
from core.database import Database
from core.logging import get_logger
from models.cache import CacheStats, TTLTier
from models.query import OrderBy, Pagination, WhereCondition
from services.cache_aside import CacheAside
from services.query.keys import QueryKeys
from services.query.tables import RowT, TableHandle

logger = get_logger(__name__)

Row = Dict[str, Any]


class UnifiedQueryService:
    """Generic query layer over ``Database`` with a TTL-tiered cache in front."""

    def __init__(self, database: Database, cache: CacheService,
                 cache_aside: CacheAside, settings: Settings):
        self.database = database
        self.cache = cache
        self.cache_aside = cache_aside
        self.settings = settings
        self.keys = QueryKeys(settings.cache_key_prefix)

    def table(self, model: Type[RowT]) -> TableHandle[RowT]:
        """Typed access to one table."""
        return TableHandle(self, model)

    def _tier(self, table: str, ttl_tier: Optional[TTLTier]) -> TTLTier:
        if ttl_tier is not None:
            return TTLTier(ttl_tier)
        return TTLTier(self.settings.table_ttl_tiers.get(table, TTLTier.MEDIUM.value))

    def _pk_name(self, table: str) -> str:
        return self.database.primary_key(self.database.get_table(table)).name

    async def _invalidate(self, table: str, ids: Sequence[Any] = ()) -> None:
        """Drop entity keys for ``ids`` and every derived query on ``table``."""
        if ids:
            await self.cache.delete(*[self.keys.entity(table, id) for id in ids])
        await self.cache.delete_pattern(f"{self.keys.derived_prefix(table)}*")

    # ============================================================================
    # Entity reads
    # ============================================================================

    async def find_by_id(self, table: str, id: Any, use_cache: bool = True,
                         ttl_tier: Optional[TTLTier] = None) -> Optional[Row]:
        """Find one row by primary key."""
        self.database.get_table(table)
        if not use_cache:
            return await self.database.query_single(table, id)

        return await self.cache_aside.with_cache(
            self.keys.entity(table, id),
            self._tier(table, ttl_tier),
            lambda: self.database.query_single(table, id),
        )

    async def find_by_ids(self, table: str, ids: Sequence[Any], use_cache: bool = True,
                          ttl_tier: Optional[TTLTier] = None) -> Dict[Any, Row]:
        """Find many rows by primary key.

        One MGET splits the ids into cached and missing; the missing ones are
        fetched with a single store query and then cached one key per row.
        Ids with no row are left out of the result.
        """
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return {}
        pk_name = self._pk_name(table)

        result: Dict[Any, Row] = {}
        missing = unique_ids
        if use_cache:
            keys = {id: self.keys.entity(table, id) for id in unique_ids}
            outcomes = await self.cache.lookup_many(list(keys.values()))
            missing = []
            for id, key in keys.items():
                outcome = outcomes.get(key)
                if outcome is not None and outcome.is_hit and outcome.value is not None:
                    result[id] = outcome.value
                else:
                    missing.append(id)

        if not missing:
            return result

        rows = await self.database.query_many(table, missing)
        by_str = {str(id): id for id in missing}
        fetched = {}
        for row in rows:
            id = by_str.get(str(row[pk_name]), row[pk_name])
            fetched[id] = row
        result.update(fetched)

        if use_cache and fetched:
            ttl = self.cache_aside.ttl(self._tier(table, ttl_tier))
            await asyncio.gather(*[
                self.cache.set(self.keys.entity(table, id), row, ttl)
                for id, row in fetched.items()
            ])

        logger.debug("Batch lookup", table=table, requested=len(unique_ids),
                     cached=len(unique_ids) - len(missing), fetched=len(fetched))
        return result

    # ============================================================================
    # Derived reads
    # ============================================================================

    async def _derived(self, table: str, kind: str, params: Dict[str, Any],
                       ttl_tier: Optional[TTLTier], use_cache: bool, producer) -> Any:
        if not use_cache:
            return await producer()
        return await self.cache_aside.with_cache(
            self.keys.derived(table, kind, params),
            self._tier(table, ttl_tier),
            producer,
        )

    async def find_by_field(self, table: str, field: str, value: Any,
                            use_cache: bool = True,
                            ttl_tier: Optional[TTLTier] = None) -> Optional[Row]:
        """First row where ``field = value``."""
        conditions = [WhereCondition(field, "=", value)]

        async def fetch():
            rows = await self.database.query_where(table, conditions, pagination=Pagination(limit=1))
            return rows[0] if rows else None

        return await self._derived(table, "field", {"field": field, "value": value},
                                   ttl_tier, use_cache, fetch)

    async def find_all_by_field(self, table: str, field: str, value: Any,
                                order_by: Optional[OrderBy] = None,
                                pagination: Optional[Pagination] = None,
                                use_cache: bool = True,
                                ttl_tier: Optional[TTLTier] = None) -> List[Row]:
        return await self.find_by_conditions(
            table, [WhereCondition(field, "=", value)], order_by=order_by,
            pagination=pagination, use_cache=use_cache, ttl_tier=ttl_tier,
        )

    async def find_by_conditions(self, table: str, conditions: Sequence[WhereCondition],
                                 order_by: Optional[OrderBy] = None,
                                 pagination: Optional[Pagination] = None,
                                 use_cache: bool = True,
                                 ttl_tier: Optional[TTLTier] = None) -> List[Row]:
        params = {
            "conditions": [c.to_dict() for c in conditions],
            "order_by": order_by.to_dict() if order_by else None,
            "pagination": pagination.to_dict() if pagination else None,
        }
        return await self._derived(
            table, "list", params, ttl_tier, use_cache,
            lambda: self.database.query_where(table, conditions, order_by, pagination),
        )

    async def count_all(self, table: str, use_cache: bool = True) -> int:
        return await self.count_by_conditions(table, [], use_cache=use_cache)

    async def count_by_field(self, table: str, field: str, value: Any,
                             use_cache: bool = True) -> int:
        return await self.count_by_conditions(table, [WhereCondition(field, "=", value)],
                                              use_cache=use_cache)

    async def count_by_conditions(self, table: str, conditions: Sequence[WhereCondition],
                                  use_cache: bool = True,
                                  ttl_tier: Optional[TTLTier] = None) -> int:
        params = {"conditions": [c.to_dict() for c in conditions]}
        return await self._derived(
            table, "count", params, ttl_tier, use_cache,
            lambda: self.database.count_where(table, conditions),
        )

    # ============================================================================
    # Writes
    # ============================================================================

    async def batch_insert(self, table: str, rows: Sequence[Row]) -> bool:
        """Insert all rows in one statement. True when every row landed."""
        if not rows:
            return True
        pk_name = self._pk_name(table)
        inserted = await self.database.insert_many(table, rows)
        await self._invalidate(table, [row[pk_name] for row in rows if row.get(pk_name) is not None])
        logger.info("Batch insert", table=table, rows=len(rows), inserted=inserted)
        return inserted == len(rows)

    async def batch_update(self, table: str, updates: Sequence[Dict[str, Any]]) -> int:
        """Apply ``[{"id": ..., "data": {...}}]`` in one statement. Returns rows updated."""
        if not updates:
            return 0
        updated_ids = await self.database.update_many(table, updates)
        await self._invalidate(table, updated_ids)
        logger.info("Batch update", table=table, requested=len(updates), updated=len(updated_ids))
        return len(updated_ids)

    async def batch_increment(self, table: str, column: str, deltas: Dict[Any, int],
                              minimum: int = 0) -> int:
        """Apply ``{id: delta}`` to ``column`` in one guarded statement. Returns rows updated.

        Raises ``BoundViolationError`` without writing when a row would drop
        below ``minimum``.
        """
        if not deltas:
            return 0
        updated_ids = await self.database.increment_many(table, column, deltas, minimum)
        await self._invalidate(table, updated_ids)
        logger.info("Batch increment", table=table, column=column,
                    requested=len(deltas), updated=len(updated_ids))
        return len(updated_ids)

    async def claim(self, table: str, id: Any, column: str, amount: int, limit_column: str,
                    record: Optional[Tuple[str, Row]] = None) -> bool:
        """Atomically add ``amount`` to ``column`` if it stays within ``limit_column``.

        On success ``record`` (``(table, row)``) is inserted in the same
        transaction and both tables' cache entries are dropped.
        """
        claimed = await self.database.claim(table, id, column, amount, limit_column, record)
        if not claimed:
            return False
        await self._invalidate(table, [id])
        if record is not None:
            record_table, row = record
            record_id = row.get(self._pk_name(record_table))
            await self._invalidate(record_table, [record_id] if record_id is not None else [])
        return True

    async def update_by_id(self, table: str, id: Any, updates: Dict[str, Any]) -> bool:
        pk_name = self._pk_name(table)
        updated_ids = await self.database.update_where(table, [WhereCondition(pk_name, "=", id)], updates)
        await self._invalidate(table, updated_ids or [id])
        return bool(updated_ids)

    async def update_by_field(self, table: str, field: str, value: Any,
                              updates: Dict[str, Any]) -> int:
        updated_ids = await self.database.update_where(table, [WhereCondition(field, "=", value)], updates)
        await self._invalidate(table, updated_ids)
        return len(updated_ids)

    async def delete_by_id(self, table: str, id: Any) -> bool:
        pk_name = self._pk_name(table)
        deleted_ids = await self.database.delete_where(table, [WhereCondition(pk_name, "=", id)])
        await self._invalidate(table, deleted_ids or [id])
        return bool(deleted_ids)

    async def delete_by_field(self, table: str, field: str, value: Any) -> int:
        deleted_ids = await self.database.delete_where(table, [WhereCondition(field, "=", value)])
        await self._invalidate(table, deleted_ids)
        return len(deleted_ids)

    async def execute_raw(self, sql: str, params: Optional[Dict[str, Any]] = None,
                          use_cache: bool = False,
                          ttl_tier: TTLTier = TTLTier.SHORT) -> List[Row]:
        """Run hand-written SQL. Cached results are never invalidated by writes."""
        params = params or {}
        if not use_cache:
            return await self.database.execute_raw(sql, params)
        return await self.cache_aside.with_cache(
            self.keys.raw(sql, params),
            ttl_tier,
            lambda: self.database.execute_raw(sql, params),
        )

    # ============================================================================
    # Cache management
    # ============================================================================

    async def invalidate_table_cache(self, table: str) -> int:
        """Drop every cached entry for ``table``."""
        deleted = await self.cache.delete_pattern(f"{self.keys.table_prefix(table)}*")
        logger.info("Table cache invalidated", table=table, deleted=deleted)
        return deleted

    async def get_cache_stats(self) -> CacheStats:
        return CacheStats(
            total_keys=await self.cache.count_keys(),
            memory_usage=await self.cache.memory_usage(),
        )

    def registered_tables(self) -> List[str]:
        return sorted(SQLModel.metadata.tables.keys())
