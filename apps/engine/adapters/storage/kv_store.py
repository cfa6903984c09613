"""Key-value ``Persistence`` implementations backing the session store."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from .schema import apply_schema, verify_runtime_pragmas, verify_schema

logger = logging.getLogger(__name__)


class InMemoryPersistence:
    """Process-local store; nothing survives a restart."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def close(self) -> None:
        return None


class SQLitePersistence:
    """Durable store in a single WAL-mode SQLite table.

    Each call is one autocommitted statement, so a reader never observes a
    partially written value.
    """

    def __init__(self, *, db_path: str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    def open(self) -> None:
        if self._conn is not None:
            return
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._db_path, isolation_level=None)
        try:
            apply_schema(conn)
            verify_runtime_pragmas(conn)
            verify_schema(conn)
        except Exception:
            conn.close()
            raise
        self._conn = conn
        logger.info("kv_store_opened", extra={"event": "kv_store", "db_path": str(self._db_path)})

    def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None

    def get(self, key: str) -> str | None:
        row = self._connection().execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return None if row is None else str(row[0])

    def set(self, key: str, value: str) -> None:
        self._connection().execute(
            """
            INSERT INTO kv_store(key, value, updated_at)
            VALUES (?, ?, strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value),
        )

    def remove(self, key: str) -> None:
        self._connection().execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        assert self._conn is not None
        return self._conn
