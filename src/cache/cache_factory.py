# src/cache/cache_factory.py — v3
"""Factory for cache store, check-key registry and orchestrator instantiation.

Store and registry of one backend share a connection: one SQLite file or one
Redis client.
"""

from __future__ import annotations

from tallycache.cache.base_cache_store import BaseCacheStore
from tallycache.cache.base_check_key_registry import BaseCheckKeyRegistry
from tallycache.cache.orchestrator import CacheOrchestrator
from tallycache.cache.ttl_policy import AdaptiveTtlPolicy
from tallycache.config.settings import Settings


def create_cache_store(settings: Settings | None = None) -> BaseCacheStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to the in-memory backend.

    Returns:
        Configured BaseCacheStore implementation.
    """
    backend = "memory" if settings is None else settings.cache_backend

    if backend == "memory":
        from tallycache.cache.memory_store import MemoryCacheStore
        return MemoryCacheStore()

    if backend == "sqlite":
        from tallycache.cache.sqlite_store import SqliteCacheStore
        return SqliteCacheStore(db_path=settings.sqlite_path)  # type: ignore[union-attr]

    if backend == "redis":
        from tallycache.cache.redis_store import RedisCacheStore
        if settings is None or not settings.cache_redis_url:
            raise ValueError(
                "CACHE_REDIS_URL must be set when CACHE_BACKEND=redis"
            )
        return RedisCacheStore(
            redis_url=settings.cache_redis_url,
            key_prefix=settings.cache_key_prefix,
        )

    raise ValueError(f"Unsupported cache backend: {backend!r}")


def create_check_key_registry(
    settings: Settings | None = None,
    store: BaseCacheStore | None = None,
) -> BaseCheckKeyRegistry:
    """Instantiate the check-key registry matching the cache backend.

    When store is given, the registry reuses its connection.
    """
    backend = "memory" if settings is None else settings.cache_backend

    if backend == "memory":
        from tallycache.cache.memory_store import MemoryCheckKeyRegistry
        return MemoryCheckKeyRegistry()

    if backend == "sqlite":
        from tallycache.cache.sqlite_store import SqliteCacheStore, SqliteCheckKeyRegistry
        if isinstance(store, SqliteCacheStore):
            return SqliteCheckKeyRegistry(conn=store.connection)
        return SqliteCheckKeyRegistry(db_path=settings.sqlite_path)  # type: ignore[union-attr]

    if backend == "redis":
        from tallycache.cache.redis_store import RedisCacheStore, RedisCheckKeyRegistry
        if isinstance(store, RedisCacheStore):
            return RedisCheckKeyRegistry(
                client=store.client,
                key_prefix=settings.cache_key_prefix,  # type: ignore[union-attr]
            )
        if settings is None or not settings.cache_redis_url:
            raise ValueError(
                "CACHE_REDIS_URL must be set when CACHE_BACKEND=redis"
            )
        return RedisCheckKeyRegistry(
            redis_url=settings.cache_redis_url,
            key_prefix=settings.cache_key_prefix,
        )

    raise ValueError(f"Unsupported cache backend: {backend!r}")


def create_orchestrator(settings: Settings | None = None) -> CacheOrchestrator:
    """Build a fully wired CacheOrchestrator from settings."""
    settings = settings or Settings()
    store = create_cache_store(settings)
    registry = create_check_key_registry(settings, store)
    return CacheOrchestrator(
        store,
        registry,
        AdaptiveTtlPolicy(scale_factor=settings.ttl_scale_factor),
        lock_timeout=settings.lock_timeout_seconds,
        stale_grace_seconds=settings.stale_grace_seconds,
        poll_interval=settings.lock_poll_interval_seconds,
        key_prefix=settings.cache_key_prefix,
    )
