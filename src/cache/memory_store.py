# src/cache/memory_store.py — v2
"""In-process cache store and check-key registry (CACHE_BACKEND=memory).

Per-process only: every worker process gets its own keyspace, so stampede
protection and invalidation do not reach across processes. Use the sqlite or
redis backend for that.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable

from tallycache.cache.base_cache_store import BaseCacheStore
from tallycache.cache.base_check_key_registry import BaseCheckKeyRegistry


class MemoryCacheStore(BaseCacheStore):
    """Dict-backed store with lazy expiry."""

    backend_name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    async def get(self, key: str) -> str | None:
        with self._lock:
            return self._live_value(key)

    async def set(self, key: str, value: str, ttl: float) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl)

    async def add(self, key: str, value: str, ttl: float) -> bool:
        with self._lock:
            if self._live_value(key) is not None:
                return False
            self._data[key] = (value, self._clock() + ttl)
            return True

    async def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    async def delete_if_equals(self, key: str, value: str) -> bool:
        with self._lock:
            if self._live_value(key) != value:
                return False
            del self._data[key]
            return True

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for _, expires_at in self._data.values() if expires_at > now)

    def _live_value(self, key: str) -> str | None:
        """Caller must hold the lock."""
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= self._clock():
            del self._data[key]
            return None
        return value


class MemoryCheckKeyRegistry(BaseCheckKeyRegistry):
    """Dict-backed check-key registry."""

    def __init__(self) -> None:
        self._versions: dict[str, int] = {}
        self._lock = threading.Lock()

    async def current_version(self, name: str) -> int:
        with self._lock:
            return self._versions.setdefault(name, 0)

    async def current_versions(self, names: Iterable[str]) -> dict[str, int]:
        with self._lock:
            return {name: self._versions.get(name, 0) for name in sorted(set(names))}

    async def touch(self, name: str) -> int:
        with self._lock:
            version = self._versions.get(name, 0) + 1
            self._versions[name] = version
            return version
