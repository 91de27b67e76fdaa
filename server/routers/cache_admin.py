"""Operational cache routes: stats, per-table invalidation, flush."""

from fastapi import APIRouter, Depends

from core.container import container
from core.exceptions import UnknownTableError
from core.logging import get_logger
from services.query import UnifiedQueryService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/admin/cache", tags=["cache"])


@router.get("/stats")
async def get_cache_stats(
    query: UnifiedQueryService = Depends(lambda: container.query_service())
):
    """Key count and memory footprint of the cache backend."""
    stats = await query.get_cache_stats()
    return {"success": True, "enabled": query.cache.is_enabled(), **stats.to_dict()}


@router.delete("/{table}")
async def invalidate_table(
    table: str,
    query: UnifiedQueryService = Depends(lambda: container.query_service())
):
    """Drop every cached entry for one table."""
    if table not in query.registered_tables():
        raise UnknownTableError(table)
    deleted = await query.invalidate_table_cache(table)
    return {"success": True, "table": table, "deleted": deleted}


@router.post("/flush")
async def flush_cache(
    query: UnifiedQueryService = Depends(lambda: container.query_service())
):
    flushed = await query.cache_aside.flush()
    logger.warning("Cache flush requested", flushed=flushed)
    return {"success": flushed}
