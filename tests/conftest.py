# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides a controllable clock, in-memory backends, backends that always fail,
and a wired orchestrator. No external dependencies — all I/O is in memory.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from tallycache.cache.base_cache_store import BaseCacheStore
from tallycache.cache.base_check_key_registry import BaseCheckKeyRegistry
from tallycache.cache.errors import StoreUnavailableError
from tallycache.cache.memory_store import MemoryCacheStore, MemoryCheckKeyRegistry
from tallycache.cache.orchestrator import CacheOrchestrator
from tallycache.cache.ttl_policy import AdaptiveTtlPolicy


# === Test doubles ===


class FakeClock:
    """Manually advanced clock; sleep() advances it instead of waiting."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


class UnavailableStore(BaseCacheStore):
    """Store whose backend is always down."""

    backend_name = "broken"

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def get(self, key: str) -> str | None:
        self.calls.append("get")
        raise StoreUnavailableError(self.backend_name, "get", ConnectionError("refused"))

    async def set(self, key: str, value: str, ttl: float) -> None:
        self.calls.append("set")
        raise StoreUnavailableError(self.backend_name, "set", ConnectionError("refused"))

    async def add(self, key: str, value: str, ttl: float) -> bool:
        self.calls.append("add")
        raise StoreUnavailableError(self.backend_name, "add", ConnectionError("refused"))

    async def delete(self, key: str) -> None:
        self.calls.append("delete")
        raise StoreUnavailableError(self.backend_name, "delete", ConnectionError("refused"))

    async def delete_if_equals(self, key: str, value: str) -> bool:
        self.calls.append("delete_if_equals")
        raise StoreUnavailableError(
            self.backend_name, "delete_if_equals", ConnectionError("refused")
        )


class UnavailableRegistry(BaseCheckKeyRegistry):
    """Check-key registry whose backend is always down."""

    async def current_version(self, name: str) -> int:
        raise StoreUnavailableError("broken", "current_version")

    async def touch(self, name: str) -> int:
        raise StoreUnavailableError("broken", "touch")


# === FIXTURES ===


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> MemoryCacheStore:
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def memory_registry() -> MemoryCheckKeyRegistry:
    return MemoryCheckKeyRegistry()


@pytest.fixture
def unavailable_store() -> UnavailableStore:
    return UnavailableStore()


@pytest.fixture
def unavailable_registry() -> UnavailableRegistry:
    return UnavailableRegistry()


@pytest.fixture
def orchestrator(
    memory_store: MemoryCacheStore,
    memory_registry: MemoryCheckKeyRegistry,
    clock: FakeClock,
) -> CacheOrchestrator:
    """Orchestrator on in-memory backends driven by the fake clock."""
    return CacheOrchestrator(
        memory_store,
        memory_registry,
        AdaptiveTtlPolicy(scale_factor=60),
        lock_timeout=30.0,
        stale_grace_seconds=300.0,
        poll_interval=0.5,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def tmp_cache_dir(tmp_path: Path) -> Path:
    """Temporary cache directory."""
    cache = tmp_path / "cache"
    cache.mkdir()
    return cache
