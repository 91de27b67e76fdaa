"""Cache value types: TTL tiers and explicit lookup outcomes."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class TTLTier(str, Enum):
    """Named expiry classes, ordered by expected data volatility."""

    SHORT = "short"          # lists, carts, stock levels
    MEDIUM = "medium"        # product rows
    LONG = "long"            # categories, UI configuration
    EXTENDED = "extended"    # static content such as language packs


class CacheStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    ERROR = "error"


@dataclass(frozen=True)
class CacheOutcome:
    """Result of one cache lookup.

    ``ERROR`` covers an unreachable backend and a payload that failed to
    decode. Callers treat it exactly like ``MISS`` and fall through to the
    store; the distinction exists for logging and tests.
    """

    status: CacheStatus
    value: Any = None
    reason: Optional[str] = None

    @classmethod
    def hit(cls, value: Any) -> "CacheOutcome":
        return cls(CacheStatus.HIT, value=value)

    @classmethod
    def miss(cls) -> "CacheOutcome":
        return cls(CacheStatus.MISS)

    @classmethod
    def error(cls, reason: str) -> "CacheOutcome":
        return cls(CacheStatus.ERROR, reason=reason)

    @property
    def is_hit(self) -> bool:
        return self.status is CacheStatus.HIT


@dataclass(frozen=True)
class CacheStats:
    """Read-only cache introspection for operational tooling."""

    total_keys: int
    memory_usage: str

    def to_dict(self) -> dict:
        return {"total_keys": self.total_keys, "memory_usage": self.memory_usage}
