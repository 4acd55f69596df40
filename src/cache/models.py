# src/cache/models.py — v2
"""Cache domain models: CacheEntry, CheckKey, StampedeLease, compute I/O, lookup results.

Entries and leases cross the store boundary as JSON payloads
(``model_dump_json`` / ``model_validate_json``).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class CacheEntry(BaseModel):
    """Single cached computation result, tagged with check-key versions."""

    model_config = ConfigDict(frozen=True)

    value: Any
    stored_at: float
    ttl: float
    check_key_versions: dict[str, int] = Field(default_factory=dict)

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl

    def is_expired(self, now: float) -> bool:
        """True once the logical TTL has elapsed."""
        return now >= self.expires_at

    def is_current(self, versions: dict[str, int]) -> bool:
        """True if no tagged check key has been touched since the write.

        A tag missing from ``versions`` counts as version 0, which is what
        the registry reports for a check key it has never seen.
        """
        return all(
            versions.get(name, 0) == version
            for name, version in self.check_key_versions.items()
        )

    def is_valid(self, now: float, versions: dict[str, int]) -> bool:
        return not self.is_expired(now) and self.is_current(versions)


class CheckKey(BaseModel):
    """Versioned invalidation token."""

    name: str
    version: int = 0


class StampedeLease(BaseModel):
    """Advisory marker: a recomputation of ``key`` is in flight."""

    key: str
    holder: str
    acquired_at: float
    expires_at: float


class ComputeContext(BaseModel):
    """Input handed to a compute strategy."""

    key: str
    previous_value: Any = None
    ttl_ceiling: float
    check_keys: list[str] = Field(default_factory=list)


class ComputeResult(BaseModel):
    """Optional rich return value of a compute strategy.

    ``ttl`` is a suggestion; it can only shorten the caller's ceiling.
    ``check_keys`` are extra tags discovered during the computation.
    """

    value: Any
    ttl: float | None = None
    check_keys: set[str] = Field(default_factory=set)


class CacheLookupResult(BaseModel):
    """Outcome of a read-through call, with provenance."""

    value: Any = None
    source: Literal["hit", "computed", "stale", "uncached"]
    entry: CacheEntry | None = None

    @property
    def is_authoritative(self) -> bool:
        """Stale fallbacks are served best-effort only."""
        return self.source != "stale"


class CacheStats(BaseModel):
    """Running counters for one orchestrator instance."""

    hits: int = 0
    misses: int = 0
    stale_served: int = 0
    computes: int = 0
    lock_waits: int = 0
    store_errors: int = 0

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total
