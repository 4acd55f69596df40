# src/cache/redis_store.py — v3
"""Redis-based cache store and check-key registry (CACHE_BACKEND=redis).

Suitable for distributed/multi-instance deployments: leases use
``SET NX PX`` and are released by a compare-and-delete script; check keys
use ``INCR``. Every operation touches a single key atomically.
Check keys are written without expiry so a version cannot silently reset.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from tallycache.cache.base_cache_store import BaseCacheStore
from tallycache.cache.base_check_key_registry import BaseCheckKeyRegistry
from tallycache.cache.errors import StoreUnavailableError
from tallycache.cache.keys import DEFAULT_PREFIX, check_key_storage_key

logger = logging.getLogger(__name__)

_DELETE_IF_EQUALS = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


def _ttl_ms(ttl: float) -> int:
    return max(1, int(ttl * 1000))


def create_client(redis_url: str) -> redis.Redis:
    """Build an asyncio Redis client returning str payloads."""
    return redis.from_url(redis_url, decode_responses=True)


class RedisCacheStore(BaseCacheStore):
    """Redis-backed cache store for distributed deployments."""

    backend_name = "redis"

    def __init__(
        self,
        redis_url: str = "",
        client: redis.Redis | None = None,
        key_prefix: str = DEFAULT_PREFIX,
    ) -> None:
        if client is None and not redis_url:
            raise ValueError("redis_url or client is required")
        self._client = client if client is not None else create_client(redis_url)
        self._prefix = f"{key_prefix}:store:" if key_prefix else "store:"

    @property
    def client(self) -> redis.Redis:
        return self._client

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(self._prefix + key)
        except RedisError as e:
            raise StoreUnavailableError(self.backend_name, "get", e) from e

    async def set(self, key: str, value: str, ttl: float) -> None:
        try:
            await self._client.set(self._prefix + key, value, px=_ttl_ms(ttl))
        except RedisError as e:
            raise StoreUnavailableError(self.backend_name, "set", e) from e

    async def add(self, key: str, value: str, ttl: float) -> bool:
        try:
            created = await self._client.set(
                self._prefix + key, value, px=_ttl_ms(ttl), nx=True
            )
        except RedisError as e:
            raise StoreUnavailableError(self.backend_name, "add", e) from e
        return bool(created)

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(self._prefix + key)
        except RedisError as e:
            raise StoreUnavailableError(self.backend_name, "delete", e) from e

    async def delete_if_equals(self, key: str, value: str) -> bool:
        try:
            removed = await self._client.eval(_DELETE_IF_EQUALS, 1, self._prefix + key, value)
        except RedisError as e:
            raise StoreUnavailableError(self.backend_name, "delete_if_equals", e) from e
        return bool(removed)

    async def aclose(self) -> None:
        """Close the Redis connection pool."""
        await self._client.aclose()


class RedisCheckKeyRegistry(BaseCheckKeyRegistry):
    """Check keys as plain Redis integers."""

    def __init__(
        self,
        redis_url: str = "",
        client: redis.Redis | None = None,
        key_prefix: str = DEFAULT_PREFIX,
    ) -> None:
        if client is None and not redis_url:
            raise ValueError("redis_url or client is required")
        self._client = client if client is not None else create_client(redis_url)
        self._prefix = f"{key_prefix}:" if key_prefix else ""

    def _key(self, name: str) -> str:
        return self._prefix + check_key_storage_key(name)

    async def current_version(self, name: str) -> int:
        key = self._key(name)
        try:
            await self._client.setnx(key, 0)
            value = await self._client.get(key)
        except RedisError as e:
            raise StoreUnavailableError("redis", "current_version", e) from e
        return int(value or 0)

    async def current_versions(self, names) -> dict[str, int]:
        ordered = sorted(set(names))
        if not ordered:
            return {}
        keys = [self._key(n) for n in ordered]
        try:
            values = await self._client.mget(keys)
        except RedisError as e:
            raise StoreUnavailableError("redis", "current_versions", e) from e
        return {name: int(v or 0) for name, v in zip(ordered, values)}

    async def touch(self, name: str) -> int:
        try:
            version = await self._client.incr(self._key(name))
        except RedisError as e:
            raise StoreUnavailableError("redis", "touch", e) from e
        logger.debug("Touched check key %s -> %d", name, version)
        return int(version)

    async def aclose(self) -> None:
        await self._client.aclose()
