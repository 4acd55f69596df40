# src/cache/base_cache_store.py — v3
"""Abstract entry store interface.

Stores hold opaque string payloads with a per-key physical expiry. They know
nothing about entries, leases or check keys; callers serialize those models.
Backends raise StoreUnavailableError when the backing service fails.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends."""

    backend_name: str = "base"

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the payload stored under key, or None if absent/expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: float) -> None:
        """Store value under key for ttl seconds, replacing any previous value."""

    @abstractmethod
    async def add(self, key: str, value: str, ttl: float) -> bool:
        """Atomically create key if it is absent or expired.

        Returns:
            True if this call created the key, False if a live value exists.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is not an error."""

    @abstractmethod
    async def delete_if_equals(self, key: str, value: str) -> bool:
        """Atomically remove key only while it still holds value.

        Returns:
            True if this call removed the key.
        """

    def close(self) -> None:
        """Release backend resources."""

    async def aclose(self) -> None:
        """Async counterpart of close(), for backends with async clients."""
        self.close()
