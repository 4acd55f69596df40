# tests/unit/cache/test_redis_store.py — v3
"""Tests for cache/redis_store.py — mocked Redis client."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tallycache.cache.errors import StoreUnavailableError
from tallycache.cache.redis_store import (
    _DELETE_IF_EQUALS,
    RedisCacheStore,
    RedisCheckKeyRegistry,
)


def _mock_client():
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    client.setnx = AsyncMock(return_value=True)
    client.mget = AsyncMock(return_value=[])
    client.incr = AsyncMock(return_value=1)
    client.eval = AsyncMock(return_value=1)
    client.aclose = AsyncMock()
    return client


class TestRedisCacheStore:
    def test_requires_url_or_client(self):
        with pytest.raises(ValueError):
            RedisCacheStore()

    @pytest.mark.asyncio
    async def test_get_uses_prefixed_key(self):
        client = _mock_client()
        client.get.return_value = "payload"
        store = RedisCacheStore(client=client, key_prefix="tc")
        assert await store.get("k") == "payload"
        client.get.assert_awaited_once_with("tc:store:k")

    @pytest.mark.asyncio
    async def test_set_uses_millisecond_expiry(self):
        client = _mock_client()
        store = RedisCacheStore(client=client, key_prefix="tc")
        await store.set("k", "v", 1.5)
        client.set.assert_awaited_once_with("tc:store:k", "v", px=1500)

    @pytest.mark.asyncio
    async def test_sub_millisecond_ttl_rounds_up(self):
        client = _mock_client()
        store = RedisCacheStore(client=client, key_prefix="tc")
        await store.set("k", "v", 0.0001)
        client.set.assert_awaited_once_with("tc:store:k", "v", px=1)

    @pytest.mark.asyncio
    async def test_add_is_set_nx(self):
        client = _mock_client()
        store = RedisCacheStore(client=client, key_prefix="tc")
        assert await store.add("lease", "h", 30)
        client.set.assert_awaited_once_with("tc:store:lease", "h", px=30000, nx=True)

    @pytest.mark.asyncio
    async def test_add_returns_false_when_key_exists(self):
        client = _mock_client()
        client.set.return_value = None
        store = RedisCacheStore(client=client)
        assert not await store.add("lease", "h", 30)

    @pytest.mark.asyncio
    async def test_delete(self):
        client = _mock_client()
        store = RedisCacheStore(client=client, key_prefix="tc")
        await store.delete("k")
        client.delete.assert_awaited_once_with("tc:store:k")

    @pytest.mark.asyncio
    async def test_delete_if_equals_is_one_script_call(self):
        client = _mock_client()
        store = RedisCacheStore(client=client, key_prefix="tc")
        assert await store.delete_if_equals("lease", "h")
        client.eval.assert_awaited_once_with(_DELETE_IF_EQUALS, 1, "tc:store:lease", "h")
        client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_if_equals_value_changed(self):
        client = _mock_client()
        client.eval.return_value = 0
        store = RedisCacheStore(client=client)
        assert not await store.delete_if_equals("lease", "h")

    @pytest.mark.asyncio
    async def test_delete_if_equals_error_maps_to_store_unavailable(self):
        client = _mock_client()
        client.eval.side_effect = RedisConnectionError("down")
        store = RedisCacheStore(client=client)
        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.delete_if_equals("lease", "h")
        assert exc_info.value.operation == "delete_if_equals"

    @pytest.mark.asyncio
    async def test_redis_error_maps_to_store_unavailable(self):
        client = _mock_client()
        client.get.side_effect = RedisConnectionError("connection refused")
        store = RedisCacheStore(client=client)
        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.get("k")
        assert exc_info.value.backend == "redis"
        assert exc_info.value.operation == "get"
        assert isinstance(exc_info.value.cause, RedisConnectionError)

    @pytest.mark.asyncio
    async def test_aclose(self):
        client = _mock_client()
        await RedisCacheStore(client=client).aclose()
        client.aclose.assert_awaited_once()


class TestRedisCheckKeyRegistry:
    @pytest.mark.asyncio
    async def test_current_version_initialises_key(self):
        client = _mock_client()
        client.get.return_value = "0"
        registry = RedisCheckKeyRegistry(client=client, key_prefix="tc")
        assert await registry.current_version("ck") == 0
        client.setnx.assert_awaited_once_with("tc:checkkey:ck", 0)

    @pytest.mark.asyncio
    async def test_touch_is_incr(self):
        client = _mock_client()
        client.incr.return_value = 4
        registry = RedisCheckKeyRegistry(client=client, key_prefix="tc")
        assert await registry.touch("ck") == 4
        client.incr.assert_awaited_once_with("tc:checkkey:ck")

    @pytest.mark.asyncio
    async def test_current_versions_single_round_trip(self):
        client = _mock_client()
        client.mget.return_value = ["2", None]
        registry = RedisCheckKeyRegistry(client=client, key_prefix="tc")
        versions = await registry.current_versions(["b", "a"])
        client.mget.assert_awaited_once_with(["tc:checkkey:a", "tc:checkkey:b"])
        assert versions == {"a": 2, "b": 0}

    @pytest.mark.asyncio
    async def test_current_versions_empty(self):
        client = _mock_client()
        registry = RedisCheckKeyRegistry(client=client)
        assert await registry.current_versions([]) == {}
        client.mget.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_touch_error_maps_to_store_unavailable(self):
        client = _mock_client()
        client.incr.side_effect = RedisConnectionError("down")
        registry = RedisCheckKeyRegistry(client=client)
        with pytest.raises(StoreUnavailableError):
            await registry.touch("ck")
