"""Durable key-value storage adapters."""

from .kv_store import InMemoryPersistence, SQLitePersistence
from .schema import SchemaError, apply_schema, verify_runtime_pragmas, verify_schema

__all__ = [
    "InMemoryPersistence",
    "SQLitePersistence",
    "SchemaError",
    "apply_schema",
    "verify_runtime_pragmas",
    "verify_schema",
]
