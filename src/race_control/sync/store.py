"""Device-local key/value persistence.

The buffer store and the device identity depend only on the
``KeyValueStore`` protocol, never on a specific storage technology.
"""

import sqlite3
import threading
from pathlib import Path
from typing import Optional, Protocol


class KeyValueStore(Protocol):
    """Minimal string key/value capability."""

    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class SqliteKeyValueStore:
    """
    SQLite-backed key/value store.

    Survives process restarts. Each call opens its own connection so the
    store can be shared between the CLI thread and the connectivity watcher.
    """

    def __init__(self, db_path: Path) -> None:
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database file (created if missing)
        """
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            ''')
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        conn = sqlite3.connect(self.db_path)
        try:
            row = conn.execute('SELECT value FROM kv WHERE key = ?', (key,)).fetchone()
            if row is None:
                return None
            return str(row[0])
        finally:
            conn.close()

    def put(self, key: str, value: str) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute('INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)', (key, value))
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute('DELETE FROM kv WHERE key = ?', (key,))
            conn.commit()
        finally:
            conn.close()

    def keys(self) -> list[str]:
        conn = sqlite3.connect(self.db_path)
        try:
            return [str(row[0]) for row in conn.execute('SELECT key FROM kv ORDER BY key')]
        finally:
            conn.close()


class MemoryKeyValueStore:
    """Process-local store for tests and dry runs."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)
