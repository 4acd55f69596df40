# src/cache/stampede.py — v2
"""Advisory per-key leases that keep concurrent recomputations to one.

A lease is a self-expiring marker written with a conditional create and
removed with a compare-and-delete, so a caller can only drop its own lease.
It is not a mutex: a caller whose lease expired mid-compute simply races with
the next holder, and the store keeps whichever write lands last.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable

from tallycache.cache.base_cache_store import BaseCacheStore
from tallycache.cache.keys import lease_key
from tallycache.cache.models import StampedeLease

logger = logging.getLogger(__name__)


class StampedeGuard:
    """Lease manager over the entry store's keyspace."""

    def __init__(
        self,
        store: BaseCacheStore,
        holder: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._holder = holder or uuid.uuid4().hex[:12]
        self._clock = clock

    @property
    def holder(self) -> str:
        return self._holder

    async def try_acquire(self, key: str, lease_ttl: float) -> StampedeLease | None:
        """Create the lease for key unless a live one exists.

        Returns:
            The lease this call now holds, or None if another caller holds one.
        """
        now = self._clock()
        lease = StampedeLease(
            key=key, holder=self._holder, acquired_at=now, expires_at=now + lease_ttl
        )
        acquired = await self._store.add(lease_key(key), lease.model_dump_json(), lease_ttl)
        logger.debug(
            "Lease %s for %s (holder=%s)",
            "acquired" if acquired else "busy", key, self._holder,
        )
        return lease if acquired else None

    async def release(self, lease: StampedeLease) -> bool:
        """Drop lease if it is still the one stored under its key.

        A lease that expired and was taken over by another caller is left in
        place. Returns True if this call removed the lease.
        """
        released = await self._store.delete_if_equals(
            lease_key(lease.key), lease.model_dump_json()
        )
        if not released:
            logger.debug(
                "Lease for %s expired before release (holder=%s)", lease.key, lease.holder
            )
        return released

    async def is_held(self, key: str) -> bool:
        return await self._store.get(lease_key(key)) is not None

    async def current_lease(self, key: str) -> StampedeLease | None:
        payload = await self._store.get(lease_key(key))
        if payload is None:
            return None
        return StampedeLease.model_validate_json(payload)
