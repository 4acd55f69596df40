# src/cache/base_check_key_registry.py — v2
"""Abstract check-key registry interface.

A check key is a named integer version. Touching it advances the version,
which invalidates every entry tagged with the old version without the
registry knowing which entries those are.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from tallycache.cache.models import CheckKey


class BaseCheckKeyRegistry(ABC):
    """Namespace of monotonically versioned invalidation tokens."""

    @abstractmethod
    async def current_version(self, name: str) -> int:
        """Return the current version of name, creating it at 0 if absent."""

    async def current_versions(self, names: Iterable[str]) -> dict[str, int]:
        """Return current versions for several check keys."""
        return {name: await self.current_version(name) for name in sorted(set(names))}

    async def check_key(self, name: str) -> CheckKey:
        """Snapshot of one check key at its current version."""
        return CheckKey(name=name, version=await self.current_version(name))

    @abstractmethod
    async def touch(self, name: str) -> int:
        """Advance the version of name and return the new version."""

    def close(self) -> None:
        """Release backend resources."""

    async def aclose(self) -> None:
        """Async counterpart of close(), for backends with async clients."""
        self.close()
