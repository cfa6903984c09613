from __future__ import annotations

import sqlite3


class SchemaError(RuntimeError):
    """Raised when the key-value schema or runtime pragmas do not match expectations."""


KV_STORE_COLUMNS = {"key", "value", "updated_at"}


def apply_schema(conn: sqlite3.Connection) -> None:
    """Switch to WAL and create the key-value table if it is missing."""
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
        )
        """
    )
    conn.commit()


def verify_runtime_pragmas(conn: sqlite3.Connection) -> None:
    journal_mode = str(conn.execute("PRAGMA journal_mode;").fetchone()[0]).lower()
    if journal_mode != "wal":
        raise SchemaError(f"journal_mode mismatch: expected wal, got {journal_mode}")


def verify_schema(conn: sqlite3.Connection) -> None:
    columns = {str(row[1]) for row in conn.execute("PRAGMA table_info(kv_store)")}
    if not columns:
        raise SchemaError("missing required table: kv_store")
    missing = KV_STORE_COLUMNS - columns
    if missing:
        raise SchemaError(f"schema mismatch for kv_store; missing columns: {', '.join(sorted(missing))}")
