# src/counts/sqlite_counter.py — v1
"""Data-source contract for per-entity counts, plus a SQLite implementation.

The counter is the only place the underlying log is read. Its latency is
measured by the cache, not here.
"""

from __future__ import annotations

import asyncio
import re
import sqlite3
from pathlib import Path
from typing import Protocol

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class EntityCounter(Protocol):
    """Counts log rows attributed to one entity."""

    async def count(self, entity_id: int) -> int: ...


class SqliteEntityCounter:
    """``SELECT COUNT(*) FROM <table> WHERE <column> = ?`` on a SQLite database.

    The query runs in a worker thread; a full scan must not block the loop.
    """

    def __init__(
        self,
        db_path: Path | str,
        table: str = "revision",
        column: str = "rev_actor",
    ) -> None:
        for name in (table, column):
            if not _IDENTIFIER.match(name):
                raise ValueError(f"Invalid SQL identifier: {name!r}")
        self._db_path = Path(db_path).expanduser()
        self._query = f"SELECT COUNT(*) FROM {table} WHERE {column} = ?"

    async def count(self, entity_id: int) -> int:
        return await asyncio.to_thread(self._count_sync, entity_id)

    def _count_sync(self, entity_id: int) -> int:
        conn = sqlite3.connect(str(self._db_path))
        try:
            row = conn.execute(self._query, (entity_id,)).fetchone()
        finally:
            conn.close()
        return int(row[0]) if row else 0
