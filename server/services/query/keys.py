"""Deterministic cache key derivation for the query layer.

Key schema (prefix defaults to ``query:``):
    {prefix}{table}:id:{id}                      -> one row
    {prefix}{table}:derived:{kind}:{digest}      -> field lookups, lists, counts
    {prefix}raw:{digest}                         -> raw SQL results
"""

import hashlib
import json
from typing import Any, Dict


def hash_params(params: Dict[str, Any]) -> str:
    """SHA256 of canonical JSON, truncated to 16 hex chars."""
    canonical = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]


class QueryKeys:
    """Builds keys under one configurable prefix."""

    def __init__(self, prefix: str = "query:"):
        self.prefix = prefix

    def entity(self, table: str, id: Any) -> str:
        return f"{self.prefix}{table}:id:{id}"

    def derived(self, table: str, kind: str, params: Dict[str, Any]) -> str:
        return f"{self.prefix}{table}:derived:{kind}:{hash_params(params)}"

    def derived_prefix(self, table: str) -> str:
        return f"{self.prefix}{table}:derived:"

    def table_prefix(self, table: str) -> str:
        return f"{self.prefix}{table}:"

    def raw(self, sql: str, params: Dict[str, Any]) -> str:
        return f"{self.prefix}raw:{hash_params({'sql': sql, 'params': params})}"
