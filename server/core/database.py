"""Async relational store over SQLAlchemy 2.0 Core and the SQLModel registry.

Every query method is one round trip to the database. Errors are logged
and re-raised unchanged so callers (stock checks, cart writes) see them.
"""

import operator
import time
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlmodel import SQLModel
from sqlalchemy import Table, Column, case, delete, func, insert, literal, select, text, update
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine

from core.config import Settings
from core.exceptions import BoundViolationError, QueryError, UnknownColumnError, UnknownTableError
from core.logging import get_logger, log_query
from models.database import utcnow  # importing registers the storefront tables
from models.query import OrderBy, Pagination, WhereCondition

logger = get_logger(__name__)

Row = Dict[str, Any]

_COMPARISONS = {
    "=": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}


def to_json_row(mapping) -> Row:
    """Convert a result row to JSON-shaped values (ISO datetimes, float decimals)."""
    row = {}
    for key, value in mapping.items():
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        elif isinstance(value, Decimal):
            value = float(value)
        row[key] = value
    return row


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            engine_kwargs = {"echo": self.settings.database_echo, "future": True}
            if not self.settings.is_sqlite:
                engine_kwargs["pool_size"] = self.settings.database_pool_size
                engine_kwargs["max_overflow"] = self.settings.database_max_overflow
                engine_kwargs["pool_pre_ping"] = True

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully",
                        tables=sorted(SQLModel.metadata.tables.keys()))

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            logger.info("Database connections closed")

    def _require_engine(self) -> AsyncEngine:
        if self.engine is None:
            raise RuntimeError("Database not initialized")
        return self.engine

    # ============================================================================
    # Schema registry
    # ============================================================================

    def get_table(self, name: str) -> Table:
        """Resolve a table handle against the SQLModel metadata."""
        table = SQLModel.metadata.tables.get(name)
        if table is None:
            raise UnknownTableError(name)
        return table

    def primary_key(self, table: Table) -> Column:
        columns = list(table.primary_key.columns)
        if len(columns) != 1:
            raise QueryError(f"Table '{table.name}' must have a single-column primary key")
        return columns[0]

    def column(self, table: Table, name: str) -> Column:
        if name not in table.c:
            raise UnknownColumnError(table.name, name)
        return table.c[name]

    def build_where_clause(self, table: Table, conditions: Sequence[WhereCondition]) -> list:
        """Compile conditions to SQLAlchemy clauses (AND-ed by the caller)."""
        clauses = []
        for condition in conditions:
            col = self.column(table, condition.field)
            op = condition.operator

            if op in _COMPARISONS:
                clauses.append(_COMPARISONS[op](col, condition.value))
            elif op == "LIKE":
                clauses.append(col.like(condition.value))
            elif op == "ILIKE":
                clauses.append(col.ilike(condition.value))
            elif op in ("IN", "NOT IN"):
                # An empty list filters nothing rather than everything
                if not condition.values:
                    continue
                clauses.append(col.in_(condition.values) if op == "IN" else col.not_in(condition.values))
            elif op == "IS NULL":
                clauses.append(col.is_(None))
            elif op == "IS NOT NULL":
                clauses.append(col.is_not(None))
        return clauses

    def _stamp_updated_at(self, table: Table, values: Dict[str, Any]) -> Dict[str, Any]:
        if "updated_at" in table.c and "updated_at" not in values:
            values["updated_at"] = utcnow()
        return values

    def _validated_values(self, table: Table, data: Dict[str, Any]) -> Dict[str, Any]:
        for name in data:
            self.column(table, name)
        return dict(data)

    # ============================================================================
    # Reads
    # ============================================================================

    async def query_single(self, table_name: str, id: Any) -> Optional[Row]:
        """Fetch one row by primary key."""
        table = self.get_table(table_name)
        pk = self.primary_key(table)
        stmt = select(table).where(pk == id).limit(1)

        start = time.perf_counter()
        try:
            async with self._require_engine().connect() as conn:
                result = await conn.execute(stmt)
                row = result.mappings().first()
        except Exception as e:
            logger.error("Store query failed", operation="query_single",
                         table=table_name, error=str(e))
            raise
        log_query(logger, "query_single", table_name, start, time.perf_counter(),
                  rows=0 if row is None else 1)
        return to_json_row(row) if row is not None else None

    async def query_many(self, table_name: str, ids: Sequence[Any]) -> List[Row]:
        """Fetch many rows by primary key in one ``WHERE pk IN (...)`` query."""
        if not ids:
            return []
        table = self.get_table(table_name)
        pk = self.primary_key(table)
        stmt = select(table).where(pk.in_(list(ids)))

        start = time.perf_counter()
        try:
            async with self._require_engine().connect() as conn:
                result = await conn.execute(stmt)
                rows = [to_json_row(r) for r in result.mappings().all()]
        except Exception as e:
            logger.error("Store query failed", operation="query_many",
                         table=table_name, ids=len(ids), error=str(e))
            raise
        log_query(logger, "query_many", table_name, start, time.perf_counter(),
                  rows=len(rows), requested=len(ids))
        return rows

    async def query_where(self, table_name: str,
                          conditions: Sequence[WhereCondition] = (),
                          order_by: Optional[OrderBy] = None,
                          pagination: Optional[Pagination] = None) -> List[Row]:
        """Fetch rows matching all conditions."""
        table = self.get_table(table_name)
        stmt = select(table)
        clauses = self.build_where_clause(table, conditions)
        if clauses:
            stmt = stmt.where(*clauses)
        if order_by:
            col = self.column(table, order_by.column)
            stmt = stmt.order_by(col.desc() if order_by.direction == "DESC" else col.asc())
        if pagination:
            if pagination.limit:
                stmt = stmt.limit(pagination.limit)
            if pagination.resolved_offset:
                stmt = stmt.offset(pagination.resolved_offset)

        start = time.perf_counter()
        try:
            async with self._require_engine().connect() as conn:
                result = await conn.execute(stmt)
                rows = [to_json_row(r) for r in result.mappings().all()]
        except Exception as e:
            logger.error("Store query failed", operation="query_where",
                         table=table_name, error=str(e))
            raise
        log_query(logger, "query_where", table_name, start, time.perf_counter(), rows=len(rows))
        return rows

    async def count_where(self, table_name: str,
                          conditions: Sequence[WhereCondition] = ()) -> int:
        table = self.get_table(table_name)
        stmt = select(func.count()).select_from(table)
        clauses = self.build_where_clause(table, conditions)
        if clauses:
            stmt = stmt.where(*clauses)

        start = time.perf_counter()
        try:
            async with self._require_engine().connect() as conn:
                count = (await conn.execute(stmt)).scalar_one()
        except Exception as e:
            logger.error("Store query failed", operation="count_where",
                         table=table_name, error=str(e))
            raise
        log_query(logger, "count_where", table_name, start, time.perf_counter())
        return int(count)

    # ============================================================================
    # Writes (each runs in its own transaction)
    # ============================================================================

    async def insert_many(self, table_name: str, rows: Sequence[Row]) -> int:
        """Insert all rows with one multi-row INSERT. Returns inserted row count."""
        if not rows:
            return 0
        table = self.get_table(table_name)
        columns = set(rows[0])
        for row in rows:
            if set(row) != columns:
                raise QueryError("Rows for a batch insert must share the same columns")
        values = [self._validated_values(table, row) for row in rows]

        start = time.perf_counter()
        try:
            async with self._require_engine().begin() as conn:
                result = await conn.execute(insert(table).values(values))
                inserted = result.rowcount
        except Exception as e:
            logger.error("Store mutation failed", operation="insert_many",
                         table=table_name, rows=len(rows), error=str(e))
            raise
        log_query(logger, "insert_many", table_name, start, time.perf_counter(), rows=inserted)
        return inserted

    async def update_many(self, table_name: str, updates: Sequence[Dict[str, Any]]) -> List[Any]:
        """Apply per-row updates with one ``UPDATE ... SET col = CASE pk WHEN ...``.

        ``updates`` items are ``{"id": <pk>, "data": {...}}``; later items for
        the same id override earlier ones. Returns the updated primary keys.
        """
        if not updates:
            return []
        table = self.get_table(table_name)
        pk = self.primary_key(table)

        merged: Dict[Any, Dict[str, Any]] = {}
        for item in updates:
            merged.setdefault(item["id"], {}).update(item.get("data") or {})

        fields: List[str] = []
        for data in merged.values():
            for name in data:
                self.column(table, name)
                if name not in fields and name != pk.name:
                    fields.append(name)
        if not fields:
            return []

        values = {}
        for name in fields:
            col = table.c[name]
            whens = [
                (pk == row_id, literal(data[name], col.type))
                for row_id, data in merged.items() if name in data
            ]
            values[name] = case(*whens, else_=col)
        self._stamp_updated_at(table, values)

        stmt = update(table).where(pk.in_(list(merged))).values(values).returning(pk)

        start = time.perf_counter()
        try:
            async with self._require_engine().begin() as conn:
                result = await conn.execute(stmt)
                updated_ids = list(result.scalars().all())
        except Exception as e:
            logger.error("Store mutation failed", operation="update_many",
                         table=table_name, rows=len(merged), error=str(e))
            raise
        log_query(logger, "update_many", table_name, start, time.perf_counter(),
                  rows=len(updated_ids))
        return updated_ids

    async def update_where(self, table_name: str, conditions: Sequence[WhereCondition],
                           data: Dict[str, Any]) -> List[Any]:
        """Update every matching row with the same values. Returns updated keys."""
        table = self.get_table(table_name)
        pk = self.primary_key(table)
        values = self._stamp_updated_at(table, self._validated_values(table, data))
        stmt = update(table).values(values).returning(pk)
        clauses = self.build_where_clause(table, conditions)
        if clauses:
            stmt = stmt.where(*clauses)

        start = time.perf_counter()
        try:
            async with self._require_engine().begin() as conn:
                updated_ids = list((await conn.execute(stmt)).scalars().all())
        except Exception as e:
            logger.error("Store mutation failed", operation="update_where",
                         table=table_name, error=str(e))
            raise
        log_query(logger, "update_where", table_name, start, time.perf_counter(),
                  rows=len(updated_ids))
        return updated_ids

    async def increment_many(self, table_name: str, column: str, deltas: Dict[Any, int],
                             minimum: int = 0) -> List[Any]:
        """Add a per-row delta to ``column`` with one ``SET col = col + CASE pk WHEN ...``.

        The bound is checked by the same statement against the committed
        value, so concurrent callers cannot overwrite each other. If any
        existing row would end below ``minimum`` the transaction is rolled
        back and ``BoundViolationError`` names those rows. Ids without a row
        are ignored. Returns the updated primary keys.
        """
        if not deltas:
            return []
        table = self.get_table(table_name)
        pk = self.primary_key(table)
        col = self.column(table, column)
        ids = list(deltas)

        delta = case(*[(pk == row_id, literal(amount, col.type)) for row_id, amount in deltas.items()],
                     else_=0)
        new_value = func.coalesce(col, 0) + delta
        values = self._stamp_updated_at(table, {column: new_value})
        stmt = update(table).where(pk.in_(ids), new_value >= minimum).values(values).returning(pk)

        start = time.perf_counter()
        try:
            async with self._require_engine().begin() as conn:
                updated_ids = list((await conn.execute(stmt)).scalars().all())
                existing = (await conn.execute(select(pk).where(pk.in_(ids)))).scalars().all()
                out_of_bounds = [row_id for row_id in existing if row_id not in updated_ids]
                if out_of_bounds:
                    raise BoundViolationError(table_name, column, out_of_bounds)
        except BoundViolationError:
            raise
        except Exception as e:
            logger.error("Store mutation failed", operation="increment_many",
                         table=table_name, rows=len(ids), error=str(e))
            raise
        log_query(logger, "increment_many", table_name, start, time.perf_counter(),
                  rows=len(updated_ids))
        return updated_ids

    async def claim(self, table_name: str, id: Any, column: str, amount: int,
                    limit_column: str, record: Optional[Tuple[str, Row]] = None) -> bool:
        """Add ``amount`` to ``column`` only while it stays within ``limit_column``.

        ``record`` is an optional ``(table, row)`` inserted in the same
        transaction when the claim succeeds. Returns False (and writes
        nothing) when the row is missing or the limit would be exceeded.
        """
        table = self.get_table(table_name)
        pk = self.primary_key(table)
        col = self.column(table, column)
        limit = self.column(table, limit_column)
        new_value = func.coalesce(col, 0) + amount
        values = self._stamp_updated_at(table, {column: new_value})
        stmt = (
            update(table)
            .where(pk == id, new_value <= func.coalesce(limit, 0))
            .values(values)
            .returning(pk)
        )

        follow_up = None
        if record is not None:
            record_table = self.get_table(record[0])
            follow_up = insert(record_table).values(self._validated_values(record_table, record[1]))

        start = time.perf_counter()
        try:
            async with self._require_engine().begin() as conn:
                claimed = (await conn.execute(stmt)).first() is not None
                if claimed and follow_up is not None:
                    await conn.execute(follow_up)
        except Exception as e:
            logger.error("Store mutation failed", operation="claim",
                         table=table_name, error=str(e))
            raise
        log_query(logger, "claim", table_name, start, time.perf_counter(), rows=int(claimed))
        return claimed

    async def delete_where(self, table_name: str,
                           conditions: Sequence[WhereCondition]) -> List[Any]:
        """Delete matching rows. Returns deleted keys."""
        table = self.get_table(table_name)
        pk = self.primary_key(table)
        # Conditions that compile to nothing (an empty IN list) would match every row
        clauses = self.build_where_clause(table, conditions)
        if not clauses:
            raise QueryError("Refusing to delete without conditions")
        stmt = delete(table).where(*clauses).returning(pk)

        start = time.perf_counter()
        try:
            async with self._require_engine().begin() as conn:
                deleted_ids = list((await conn.execute(stmt)).scalars().all())
        except Exception as e:
            logger.error("Store mutation failed", operation="delete_where",
                         table=table_name, error=str(e))
            raise
        log_query(logger, "delete_where", table_name, start, time.perf_counter(),
                  rows=len(deleted_ids))
        return deleted_ids

    async def execute_raw(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Row]:
        """Run a hand-written statement with named (``:name``) parameters."""
        start = time.perf_counter()
        try:
            async with self._require_engine().begin() as conn:
                result = await conn.execute(text(sql), params or {})
                rows = [to_json_row(r) for r in result.mappings().all()] if result.returns_rows else []
        except Exception as e:
            logger.error("Store raw query failed", error=str(e))
            raise
        log_query(logger, "execute_raw", "raw", start, time.perf_counter(), rows=len(rows))
        return rows
