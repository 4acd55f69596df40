# src/cache/sqlite_store.py — v3
"""SQLite-based cache store and check-key registry (CACHE_BACKEND=sqlite).

Uses stdlib sqlite3 — no external dependency.
Shares one database file between every process on a host, so leases and
check keys coordinate across worker processes. Cached content is still
disposable: deleting the file only costs recomputation.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from tallycache.cache.base_cache_store import BaseCacheStore
from tallycache.cache.base_check_key_registry import BaseCheckKeyRegistry
from tallycache.cache.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    expires_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_expires_at ON cache_entries(expires_at);
CREATE TABLE IF NOT EXISTS check_keys (
    name TEXT PRIMARY KEY,
    version INTEGER NOT NULL DEFAULT 0
);
"""


def connect(db_path: Path | str) -> sqlite3.Connection:
    """Open a connection in WAL mode with the cache schema applied."""
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=5.0, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.executescript(_SCHEMA)
    return conn


class SqliteCacheStore(BaseCacheStore):
    """SQLite-backed store; expiry is checked on read and on conditional create."""

    backend_name = "sqlite"

    def __init__(
        self,
        db_path: Path | str | None = None,
        conn: sqlite3.Connection | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if conn is None and db_path is None:
            raise ValueError("db_path or conn is required")
        self._conn = conn if conn is not None else connect(db_path)  # type: ignore[arg-type]
        self._clock = clock

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    async def get(self, key: str) -> str | None:
        try:
            cursor = self._conn.execute(
                "SELECT value FROM cache_entries WHERE key = ? AND expires_at > ?",
                (key, self._clock()),
            )
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailableError(self.backend_name, "get", e) from e
        return None if row is None else row[0]

    async def set(self, key: str, value: str, ttl: float) -> None:
        try:
            with self._conn:
                self._conn.execute(
                    """INSERT OR REPLACE INTO cache_entries (key, value, expires_at)
                       VALUES (?, ?, ?)""",
                    (key, value, self._clock() + ttl),
                )
        except sqlite3.Error as e:
            raise StoreUnavailableError(self.backend_name, "set", e) from e

    async def add(self, key: str, value: str, ttl: float) -> bool:
        now = self._clock()
        try:
            with self._conn:
                # Expired rows would otherwise block the INSERT OR IGNORE.
                self._conn.execute(
                    "DELETE FROM cache_entries WHERE key = ? AND expires_at <= ?",
                    (key, now),
                )
                cursor = self._conn.execute(
                    """INSERT OR IGNORE INTO cache_entries (key, value, expires_at)
                       VALUES (?, ?, ?)""",
                    (key, value, now + ttl),
                )
                return cursor.rowcount == 1
        except sqlite3.Error as e:
            raise StoreUnavailableError(self.backend_name, "add", e) from e

    async def delete(self, key: str) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StoreUnavailableError(self.backend_name, "delete", e) from e

    async def delete_if_equals(self, key: str, value: str) -> bool:
        try:
            with self._conn:
                cursor = self._conn.execute(
                    """DELETE FROM cache_entries
                       WHERE key = ? AND value = ? AND expires_at > ?""",
                    (key, value, self._clock()),
                )
                return cursor.rowcount == 1
        except sqlite3.Error as e:
            raise StoreUnavailableError(self.backend_name, "delete_if_equals", e) from e

    def purge_expired(self) -> int:
        """Delete expired rows; returns the number removed."""
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM cache_entries WHERE expires_at <= ?", (self._clock(),)
            )
        logger.debug("Purged %d expired cache rows", cursor.rowcount)
        return cursor.rowcount

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()


class SqliteCheckKeyRegistry(BaseCheckKeyRegistry):
    """Check keys in the ``check_keys`` table; touch is a single upsert."""

    def __init__(
        self,
        db_path: Path | str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        if conn is None and db_path is None:
            raise ValueError("db_path or conn is required")
        self._conn = conn if conn is not None else connect(db_path)  # type: ignore[arg-type]

    async def current_version(self, name: str) -> int:
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT OR IGNORE INTO check_keys (name, version) VALUES (?, 0)",
                    (name,),
                )
                row = self._conn.execute(
                    "SELECT version FROM check_keys WHERE name = ?", (name,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailableError("sqlite", "current_version", e) from e
        return int(row[0])

    async def current_versions(self, names: Iterable[str]) -> dict[str, int]:
        """Read-only batch lookup; names never touched read as 0."""
        ordered = sorted(set(names))
        if not ordered:
            return {}
        placeholders = ", ".join("?" for _ in ordered)
        try:
            rows = self._conn.execute(
                f"SELECT name, version FROM check_keys WHERE name IN ({placeholders})",
                ordered,
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailableError("sqlite", "current_versions", e) from e
        found = {name: int(version) for name, version in rows}
        return {name: found.get(name, 0) for name in ordered}

    async def touch(self, name: str) -> int:
        try:
            with self._conn:
                self._conn.execute(
                    """INSERT INTO check_keys (name, version) VALUES (?, 1)
                       ON CONFLICT(name) DO UPDATE SET version = version + 1""",
                    (name,),
                )
                row = self._conn.execute(
                    "SELECT version FROM check_keys WHERE name = ?", (name,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailableError("sqlite", "touch", e) from e
        return int(row[0])

    def close(self) -> None:
        self._conn.close()
