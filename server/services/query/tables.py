"""Typed table handles over the table-agnostic query service."""

from typing import TYPE_CHECKING, Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar, Union

from sqlmodel import SQLModel

from models.cache import TTLTier

if TYPE_CHECKING:
    from services.query.service import UnifiedQueryService

RowT = TypeVar("RowT", bound=SQLModel)


class TableHandle(Generic[RowT]):
    """Pairs a table name with its SQLModel class.

    Rows come back as model instances; the cache and store still only see
    plain JSON-shaped dicts.
    """

    def __init__(self, service: "UnifiedQueryService", model: Type[RowT]):
        self.service = service
        self.model = model
        self.name: str = model.__tablename__

    def _load(self, row: Dict[str, Any]) -> RowT:
        return self.model.model_validate(row)

    def _dump(self, row: Union[RowT, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(row, dict):
            return row
        data = row.model_dump()
        table = self.model.__table__
        # Unset server-side defaults (created_at) are left to the database
        return {
            name: value for name, value in data.items()
            if not (value is None and table.c[name].server_default is not None)
        }

    async def find_by_id(self, id: Any, use_cache: bool = True,
                         ttl_tier: Optional[TTLTier] = None) -> Optional[RowT]:
        row = await self.service.find_by_id(self.name, id, use_cache=use_cache, ttl_tier=ttl_tier)
        return self._load(row) if row is not None else None

    async def find_by_ids(self, ids: Sequence[Any], use_cache: bool = True,
                          ttl_tier: Optional[TTLTier] = None) -> Dict[Any, RowT]:
        rows = await self.service.find_by_ids(self.name, ids, use_cache=use_cache, ttl_tier=ttl_tier)
        return {id: self._load(row) for id, row in rows.items()}

    async def batch_insert(self, rows: Sequence[Union[RowT, Dict[str, Any]]]) -> bool:
        return await self.service.batch_insert(self.name, [self._dump(row) for row in rows])

    async def batch_update(self, updates: List[Dict[str, Any]]) -> int:
        return await self.service.batch_update(self.name, updates)
