"""Unified query layer.

Batched, cache-aside access to storefront tables:
- One store round trip per batch lookup
- TTL-tiered Redis cache in front of the store
- Invalidation after every successful write
"""

from .keys import QueryKeys, hash_params
from .tables import TableHandle
from .service import UnifiedQueryService

__all__ = [
    "QueryKeys",
    "hash_params",
    "TableHandle",
    "UnifiedQueryService",
]
