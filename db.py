import sqlite3
import datetime
from contextlib import contextmanager
from typing import List, Optional, Tuple

DEFAULT_MAX_VALUE_SIZE = 5_000_000


class StorageError(RuntimeError):
    """Base class for key-value storage failures."""


class StorageQuotaError(StorageError):
    """Raised when a value exceeds the configured storage quota."""

    def __init__(self, key: str, size: int, limit: int) -> None:
        super().__init__(f"value for {key!r} is {size} characters (limit {limit})")
        self.key = key
        self.size = size
        self.limit = limit


def _check_quota(key: str, value: str, limit: Optional[int]) -> None:
    if limit is not None and len(value) > limit:
        raise StorageQuotaError(key, len(value), limit)


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "key_value": (
            """CREATE TABLE key_value (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            ["key", "value", "updated_at"],
        ),
    }

    def __init__(self, db_path: str = "training.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:

                def default_val(col: str) -> str:
                    if col == "updated_at":
                        return "''"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


class KeyValueRepository(BaseRepository):
    """String key-value storage persisted in SQLite."""

    def __init__(
        self,
        db_path: str = "training.db",
        max_value_size: Optional[int] = DEFAULT_MAX_VALUE_SIZE,
    ) -> None:
        super().__init__(db_path)
        self.max_value_size = max_value_size

    def get_item(self, key: str) -> Optional[str]:
        rows = self.fetch_all("SELECT value FROM key_value WHERE key = ?;", (key,))
        return rows[0][0] if rows else None

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("value must be a string")
        _check_quota(key, value, self.max_value_size)
        self.execute(
            "INSERT INTO key_value (key, value, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at;",
            (key, value, datetime.datetime.now().isoformat()),
        )

    def remove_item(self, key: str) -> None:
        self.execute("DELETE FROM key_value WHERE key = ?;", (key,))

    def keys(self) -> List[str]:
        rows = self.fetch_all("SELECT key FROM key_value ORDER BY key;")
        return [r[0] for r in rows]

    def updated_at(self, key: str) -> Optional[str]:
        rows = self.fetch_all("SELECT updated_at FROM key_value WHERE key = ?;", (key,))
        return rows[0][0] if rows else None

    def clear(self) -> None:
        self._delete_all("key_value")


class MemoryKeyValueStore:
    """In-process key-value storage with the same interface as KeyValueRepository."""

    def __init__(self, max_value_size: Optional[int] = DEFAULT_MAX_VALUE_SIZE) -> None:
        self.max_value_size = max_value_size
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("value must be a string")
        _check_quota(key, value, self.max_value_size)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._items)

    def clear(self) -> None:
        self._items.clear()
