# src/cache/orchestrator.py — v2
"""Read-through cache with stampede protection, cost-based TTLs and check keys.

Usage:
    cache = CacheOrchestrator(MemoryCacheStore(), MemoryCheckKeyRegistry())
    key = cache.make_key("editcount", "accurate", user_id)
    count = await cache.get_with_set_callback(
        key, 3600, compute_count, check_keys=[key], lock_timeout=30
    )
    ...
    await cache.touch_check_key(key)   # after a write: next read recomputes

Flow of one call:
  1. Valid entry (TTL not elapsed, no tagged check key touched) → served as is.
  2. Otherwise try to take the key's lease.
     - Taken: compute, size the TTL from the compute duration, write, release.
     - Busy, stale entry present: serve the stale value (non-authoritative).
     - Busy, nothing cached: wait up to lock_timeout for the holder, re-read
       once, then compute anyway.
  3. Store or registry failures at any step degrade to computing uncached.
  4. A value that does not read back from JSON unchanged (tuples, sets,
     non-str dict keys, arbitrary objects) is returned but not cached.

Compute exceptions are never caught: nothing is cached and the lease is
released before they reach the caller.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from tallycache.cache.base_cache_store import BaseCacheStore
from tallycache.cache.base_check_key_registry import BaseCheckKeyRegistry
from tallycache.cache.errors import StoreUnavailableError
from tallycache.cache.keys import DEFAULT_PREFIX, make_key
from tallycache.cache.models import (
    CacheEntry,
    CacheLookupResult,
    CacheStats,
    ComputeContext,
    ComputeResult,
    StampedeLease,
)
from tallycache.cache.stampede import StampedeGuard
from tallycache.cache.ttl_policy import AdaptiveTtlPolicy
from tallycache.logging.context import cache_key_context

logger = logging.getLogger(__name__)

ComputeFn = Callable[[ComputeContext], Any]

DEFAULT_LOCK_TIMEOUT = 30.0
DEFAULT_STALE_GRACE = 300.0
DEFAULT_POLL_INTERVAL = 0.05


class CacheOrchestrator:
    """Ties entry store, check-key registry, stampede guard and TTL policy together."""

    def __init__(
        self,
        store: BaseCacheStore,
        registry: BaseCheckKeyRegistry,
        ttl_policy: AdaptiveTtlPolicy | None = None,
        guard: StampedeGuard | None = None,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        stale_grace_seconds: float = DEFAULT_STALE_GRACE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        key_prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._registry = registry
        self._ttl_policy = ttl_policy or AdaptiveTtlPolicy()
        self._guard = guard or StampedeGuard(store, clock=clock)
        self._lock_timeout = lock_timeout
        self._stale_grace = stale_grace_seconds
        self._poll_interval = poll_interval
        self._key_prefix = key_prefix
        self._clock = clock
        self._sleep = sleep
        self.stats = CacheStats()

    @property
    def store(self) -> BaseCacheStore:
        return self._store

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    @property
    def registry(self) -> BaseCheckKeyRegistry:
        return self._registry

    def make_key(self, namespace: str, operation: str, *components: object) -> str:
        """Compose a key under this cache's prefix."""
        return make_key(namespace, operation, *components, prefix=self._key_prefix)

    async def get_with_set_callback(
        self,
        key: str,
        ttl: float,
        compute: ComputeFn,
        *,
        check_keys: Iterable[str] = (),
        lock_timeout: float | None = None,
        adaptive_ttl: bool = True,
    ) -> Any:
        """Return the cached value for key, computing and caching it if needed.

        Args:
            key: Cache key (see make_key).
            ttl: Ceiling for the entry lifetime, in seconds.
            compute: Sync or async callable taking a ComputeContext and
                returning the value or a ComputeResult.
                The value is cached only if it survives JSON encoding
                unchanged: None, bool, int, float, str, and lists or
                str-keyed dicts of those. Other values are returned uncached.
            check_keys: Check keys the value depends on.
            lock_timeout: Lease lifetime and bound on waiting for another
                caller's computation. Defaults to the instance setting.
            adaptive_ttl: Shorten the TTL for cheap computations.

        Returns:
            The value; possibly stale if another caller is recomputing it.
        """
        result = await self.fetch(
            key, ttl, compute,
            check_keys=check_keys, lock_timeout=lock_timeout, adaptive_ttl=adaptive_ttl,
        )
        return result.value

    async def fetch(
        self,
        key: str,
        ttl: float,
        compute: ComputeFn,
        *,
        check_keys: Iterable[str] = (),
        lock_timeout: float | None = None,
        adaptive_ttl: bool = True,
    ) -> CacheLookupResult:
        """Same as get_with_set_callback, but report where the value came from."""
        deps = sorted(set(check_keys))
        timeout = self._lock_timeout if lock_timeout is None else lock_timeout

        with cache_key_context(key):
            entry: CacheEntry | None = None
            try:
                entry = await self._read_entry(key)
                if entry is not None and await self._is_valid(entry, deps):
                    self.stats.hits += 1
                    return CacheLookupResult(value=entry.value, source="hit", entry=entry)
                lease = await self._guard.try_acquire(key, timeout)
            except StoreUnavailableError as e:
                self.stats.misses += 1
                self._note_store_error(e)
                return await self._compute_uncached(key, ttl, compute, deps, entry)

            if lease is not None:
                self.stats.misses += 1
                try:
                    return await self._recompute(key, ttl, compute, deps, entry, adaptive_ttl)
                finally:
                    await self._release(lease)

            if entry is not None:
                self.stats.misses += 1
                self.stats.stale_served += 1
                logger.debug("Recompute of %s in flight; serving stale value", key)
                return CacheLookupResult(value=entry.value, source="stale", entry=entry)

            return await self._wait_then_compute(key, ttl, compute, deps, timeout, adaptive_ttl)

    async def touch_check_key(self, name: str) -> bool:
        """Invalidate every entry tagged with check key name.

        Best-effort: a registry failure is logged and reported as False.
        """
        try:
            version = await self._registry.touch(name)
        except StoreUnavailableError as e:
            self._note_store_error(e)
            return False
        logger.info("Check key %s touched (version %d)", name, version)
        return True

    async def aclose(self) -> None:
        await self._store.aclose()
        await self._registry.aclose()

    # --- Internals ---

    async def _read_entry(self, key: str) -> CacheEntry | None:
        payload = await self._store.get(key)
        if payload is None:
            return None
        try:
            return CacheEntry.model_validate_json(payload)
        except ValidationError as e:
            logger.warning("Discarding unreadable cache entry %s: %s", key, e)
            return None

    async def _is_valid(self, entry: CacheEntry, deps: list[str]) -> bool:
        # An entry that was never tagged with a requested check key cannot be
        # checked against it.
        if not set(deps) <= entry.check_key_versions.keys():
            return False
        versions = await self._registry.current_versions(entry.check_key_versions)
        return entry.is_valid(self._clock(), versions)

    async def _recompute(
        self,
        key: str,
        ttl: float,
        compute: ComputeFn,
        deps: list[str],
        previous: CacheEntry | None,
        adaptive_ttl: bool,
    ) -> CacheLookupResult:
        # Versions are read before computing: a touch that lands while the
        # computation runs leaves the new entry already invalid.
        try:
            versions = await self._registry.current_versions(deps)
        except StoreUnavailableError as e:
            self._note_store_error(e)
            return await self._compute_uncached(key, ttl, compute, deps, previous)

        result, duration = await self._run_compute(key, ttl, compute, deps, previous)
        entry_ttl = self._ttl_policy.resolve(duration, ttl, result.ttl, adaptive_ttl)

        try:
            extra = result.check_keys - versions.keys()
            if extra:
                versions.update(await self._registry.current_versions(extra))
            entry = CacheEntry(
                value=result.value,
                stored_at=self._clock(),
                ttl=entry_ttl,
                check_key_versions=versions,
            )
            if entry_ttl > 0:
                payload = self._encode(key, entry)
                if payload is None:
                    return CacheLookupResult(value=result.value, source="uncached")
                await self._store.set(key, payload, entry_ttl + self._stale_grace)
        except StoreUnavailableError as e:
            self._note_store_error(e)
            return CacheLookupResult(value=result.value, source="uncached")

        logger.debug("Stored %s for %.0fs (computed in %.3fs)", key, entry_ttl, duration)
        return CacheLookupResult(value=result.value, source="computed", entry=entry)

    async def _wait_then_compute(
        self,
        key: str,
        ttl: float,
        compute: ComputeFn,
        deps: list[str],
        timeout: float,
        adaptive_ttl: bool,
    ) -> CacheLookupResult:
        self.stats.lock_waits += 1
        deadline = self._clock() + timeout
        try:
            while self._clock() < deadline and await self._guard.is_held(key):
                await self._sleep(self._poll_interval)
            entry = await self._read_entry(key)
            if entry is not None and await self._is_valid(entry, deps):
                self.stats.hits += 1
                return CacheLookupResult(value=entry.value, source="hit", entry=entry)
        except StoreUnavailableError as e:
            self.stats.misses += 1
            self._note_store_error(e)
            return await self._compute_uncached(key, ttl, compute, deps, None)

        self.stats.misses += 1
        logger.info("No value for %s after waiting on lease; computing anyway", key)
        return await self._recompute(key, ttl, compute, deps, None, adaptive_ttl)

    async def _compute_uncached(
        self,
        key: str,
        ttl: float,
        compute: ComputeFn,
        deps: list[str],
        previous: CacheEntry | None,
    ) -> CacheLookupResult:
        result, _ = await self._run_compute(key, ttl, compute, deps, previous)
        return CacheLookupResult(value=result.value, source="uncached")

    async def _run_compute(
        self,
        key: str,
        ttl: float,
        compute: ComputeFn,
        deps: list[str],
        previous: CacheEntry | None,
    ) -> tuple[ComputeResult, float]:
        ctx = ComputeContext(
            key=key,
            previous_value=previous.value if previous is not None else None,
            ttl_ceiling=ttl,
            check_keys=deps,
        )
        self.stats.computes += 1
        started = self._clock()
        outcome = compute(ctx)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        duration = self._clock() - started
        if not isinstance(outcome, ComputeResult):
            outcome = ComputeResult(value=outcome)
        return outcome, duration

    def _encode(self, key: str, entry: CacheEntry) -> str | None:
        """Serialize entry, or None if its value would not read back unchanged."""
        try:
            payload = entry.model_dump_json()
            restored = CacheEntry.model_validate_json(payload).value
        except (PydanticSerializationError, ValidationError) as e:
            reason = str(e)
        else:
            if type(restored) is type(entry.value) and restored == entry.value:
                return payload
            reason = f"{type(entry.value).__name__} value does not survive JSON encoding"
        self.stats.store_errors += 1
        logger.warning("Not caching %s: %s", key, reason)
        return None

    async def _release(self, lease: StampedeLease) -> None:
        try:
            await self._guard.release(lease)
        except StoreUnavailableError as e:
            # The lease expires on its own.
            self._note_store_error(e)

    def _note_store_error(self, error: StoreUnavailableError) -> None:
        self.stats.store_errors += 1
        logger.warning(
            "Cache %s unavailable during %s; degrading to direct compute: %s",
            error.backend, error.operation, error.cause,
        )
