"""
SQLite storage engine built on the standard library ``sqlite3`` module.

Rows are upserted so an overwritten key keeps its original ``rowid`` and
therefore its position in :meth:`SQLiteStorageEngine.read_all` order.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from pathlib import Path
from threading import RLock

from .config import SQLiteStorageConfig


class SQLiteStorageEngine:
    """
    Storage engine persisting payloads in one SQLite table.

    One connection is shared across threads and guarded by a lock, which is
    sufficient because a store serializes its own writes.
    """

    def __init__(self, config: SQLiteStorageConfig | None = None) -> None:
        self.config = config or SQLiteStorageConfig()
        self._table = self.config.table
        path = self.config.path
        if path != ":memory:":
            resolved = Path(path).expanduser().resolve()
            resolved.parent.mkdir(parents=True, exist_ok=True)
            path = str(resolved)
        self._lock = RLock()
        self._connection = sqlite3.connect(
            path,
            timeout=self.config.timeout_seconds,
            check_same_thread=False,
        )
        with self._lock, self._connection:
            self._connection.execute(
                f"CREATE TABLE IF NOT EXISTS {self._table} ("
                "storage_key TEXT PRIMARY KEY, payload BLOB NOT NULL)"
            )

    def write(self, entries: list[tuple[str, bytes]]) -> None:
        if not entries:
            return
        with self._lock, self._connection:
            self._connection.executemany(
                f"INSERT INTO {self._table} (storage_key, payload) VALUES (?, ?) "
                "ON CONFLICT(storage_key) DO UPDATE SET payload = excluded.payload",
                [(str(key), sqlite3.Binary(bytes(payload))) for key, payload in entries],
            )

    def read_all(self) -> list[tuple[str, bytes]]:
        with self._lock:
            rows = self._connection.execute(
                f"SELECT storage_key, payload FROM {self._table} ORDER BY rowid"
            ).fetchall()
        return [(str(key), bytes(payload)) for key, payload in rows]

    def remove(self, keys: Iterable[str]) -> None:
        params = [(str(key),) for key in keys]
        if not params:
            return
        with self._lock, self._connection:
            self._connection.executemany(
                f"DELETE FROM {self._table} WHERE storage_key = ?",
                params,
            )

    def remove_all(self) -> None:
        with self._lock, self._connection:
            self._connection.execute(f"DELETE FROM {self._table}")

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._connection.close()
