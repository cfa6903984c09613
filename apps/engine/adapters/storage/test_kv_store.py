from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from adapters.storage.kv_store import InMemoryPersistence, SQLitePersistence
from adapters.storage.schema import SchemaError, apply_schema, verify_schema


def test_apply_schema_creates_wal_kv_table(tmp_path: Path) -> None:
    with sqlite3.connect(tmp_path / "session.db") as conn:
        apply_schema(conn)
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        journal_mode = conn.execute("PRAGMA journal_mode").fetchone()[0]

    assert "kv_store" in tables
    assert str(journal_mode).lower() == "wal"


def test_verify_schema_rejects_incompatible_table(tmp_path: Path) -> None:
    with sqlite3.connect(tmp_path / "legacy.db") as conn:
        conn.execute("CREATE TABLE kv_store (key TEXT PRIMARY KEY)")

        with pytest.raises(SchemaError, match="missing columns"):
            verify_schema(conn)


def test_sqlite_persistence_round_trip_and_survives_reopen(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "session.db"
    store = SQLitePersistence(db_path=str(db_path))

    assert store.get("authState") is None
    store.set("authState", '{"platformToken":"tokA"}')
    store.set("authState", '{"platformToken":"tokB"}')
    store.close()

    reopened = SQLitePersistence(db_path=str(db_path))
    assert reopened.get("authState") == '{"platformToken":"tokB"}'
    reopened.remove("authState")
    reopened.remove("authState")
    assert reopened.get("authState") is None
    reopened.close()


def test_in_memory_persistence_get_set_remove() -> None:
    store = InMemoryPersistence({"authState": "{}"})

    assert store.get("authState") == "{}"
    store.set("authState", "x")
    assert store.get("authState") == "x"
    store.remove("authState")
    store.remove("missing")
    assert store.get("authState") is None
