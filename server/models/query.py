"""Query description types shared by the store and the query service."""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Literal, Optional

Operator = Literal[
    "=", "!=", ">", "<", ">=", "<=",
    "LIKE", "ILIKE", "IN", "NOT IN", "IS NULL", "IS NOT NULL",
]

OPERATORS = (
    "=", "!=", ">", "<", ">=", "<=",
    "LIKE", "ILIKE", "IN", "NOT IN", "IS NULL", "IS NOT NULL",
)


@dataclass(frozen=True)
class WhereCondition:
    """One ``field <operator> value`` term; terms are AND-ed together.

    ``IN``/``NOT IN`` read ``values``; the null checks read neither.
    """

    field: str
    operator: Operator = "="
    value: Any = None
    values: Optional[List[Any]] = None

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.operator}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OrderBy:
    column: str
    direction: Literal["ASC", "DESC"] = "ASC"

    def __post_init__(self):
        if self.direction not in ("ASC", "DESC"):
            raise ValueError(f"Unsupported sort direction: {self.direction}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Pagination:
    """Either ``limit``/``offset`` or ``page`` (1-based) with ``limit``."""

    limit: Optional[int] = None
    offset: Optional[int] = None
    page: Optional[int] = None

    @property
    def resolved_offset(self) -> Optional[int]:
        if self.offset is not None:
            return self.offset
        if self.page and self.limit:
            return (self.page - 1) * self.limit
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"limit": self.limit, "offset": self.resolved_offset}

