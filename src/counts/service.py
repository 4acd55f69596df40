# src/counts/service.py — v2
"""Accurate per-entity counts served through the read-through cache.

Usage:
    service = EntityCountService(create_orchestrator(settings), counter)
    n = await service.get_count(42)
    await service.on_write_completed(Actor(entity_id=42))

The count entry is tagged with a check key named like the entry itself, so a
write by the entity invalidates it without deleting anything.
"""

from __future__ import annotations

import logging

from tallycache.cache.keys import DEFAULT_PREFIX, make_key
from tallycache.cache.models import ComputeContext
from tallycache.cache.orchestrator import CacheOrchestrator
from tallycache.counts.models import Actor
from tallycache.counts.sqlite_counter import EntityCounter
from tallycache.logging.context import entity_context

logger = logging.getLogger(__name__)

COUNT_NAMESPACE = "editcount"
COUNT_OPERATION = "accurate"
DEFAULT_TTL_CEILING = 3600.0
DEFAULT_LOCK_TIMEOUT = 30.0


def count_key(entity_id: int, prefix: str = DEFAULT_PREFIX) -> str:
    """Cache key of an entity's count; also the name of its check key."""
    return make_key(COUNT_NAMESPACE, COUNT_OPERATION, entity_id, prefix=prefix)


class EntityCountService:
    """Serve and invalidate cached per-entity counts."""

    def __init__(
        self,
        cache: CacheOrchestrator,
        counter: EntityCounter,
        *,
        ttl_ceiling: float = DEFAULT_TTL_CEILING,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ) -> None:
        self._cache = cache
        self._counter = counter
        self._ttl_ceiling = ttl_ceiling
        self._lock_timeout = lock_timeout

    def key_for(self, entity_id: int) -> str:
        return count_key(entity_id, prefix=self._cache.key_prefix)

    async def get_count(self, entity_id: int) -> int:
        """Count for entity_id, from cache when fresh."""
        key = self.key_for(entity_id)

        async def compute(ctx: ComputeContext) -> int:
            return await self._counter.count(entity_id)

        with entity_context(entity_id):
            value = await self._cache.get_with_set_callback(
                key,
                self._ttl_ceiling,
                compute,
                check_keys=[key],
                lock_timeout=self._lock_timeout,
            )
        return int(value)

    async def format_count(self, entity_id: int) -> str:
        """Count with thousands separators, for display."""
        return f"{await self.get_count(entity_id):,}"

    async def invalidate(self, entity_id: int) -> bool:
        """Mark the entity's cached count stale."""
        with entity_context(entity_id):
            return await self._cache.touch_check_key(self.key_for(entity_id))

    async def on_write_completed(self, actor: Actor | None) -> bool:
        """Write-completed hook. Anonymous writers have no cached count."""
        if actor is None or not actor.is_registered:
            logger.debug("Ignoring write by unregistered actor")
            return False
        return await self.invalidate(actor.entity_id)
