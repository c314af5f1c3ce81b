"""SQLite-backed key-value store holding records and pipeline state."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterable, Mapping

import structlog

StoreListener = Callable[[frozenset[str]], None]


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT
            )
            """
        )
        conn.commit()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


class KeyValueStore:
    """JSON values keyed by name; every write is broadcast to subscribers."""

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._lock = Lock()
        self._conn = self.manager.connect(db_path)
        self._listeners: list[StoreListener] = []
        self.logger = structlog.get_logger("affiliation_crawler.store")

    def load(self, keys: Iterable[str]) -> dict[str, Any]:
        """Return stored values for ``keys``; absent keys are omitted."""

        wanted = list(dict.fromkeys(keys))
        if not wanted:
            return {}
        placeholders = ", ".join("?" for _ in wanted)
        with self._lock:
            rows = self._conn.execute(
                f"SELECT key, value FROM kv_store WHERE key IN ({placeholders})",
                wanted,
            ).fetchall()
        return {row["key"]: json.loads(row["value"]) for row in rows}

    def replace(self, patch: Mapping[str, Any]) -> None:
        if not patch:
            return
        with self._lock:
            self._conn.executemany(
                "INSERT OR REPLACE INTO kv_store(key, value, updated_at) "
                "VALUES (?, ?, datetime('now'))",
                [(key, json.dumps(value, ensure_ascii=False)) for key, value in patch.items()],
            )
            self._conn.commit()
        self._broadcast(frozenset(patch))

    def clear(self) -> None:
        with self._lock:
            keys = [row["key"] for row in self._conn.execute("SELECT key FROM kv_store")]
            self._conn.execute("DELETE FROM kv_store")
            self._conn.commit()
        self._broadcast(frozenset(keys))

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _broadcast(self, keys: frozenset[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(keys)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("store_listener_failed", keys=sorted(keys), error=str(exc))


__all__ = ["KeyValueStore", "SQLiteManager", "StoreListener"]
