# src/logging/context.py — v3
"""Contextual logging support — attach request_id, entity_id, cache_key to log records."""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per request and per cache call.
_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_entity_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "entity_id", default=None
)
_cache_key: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "cache_key", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    request_id: str | None = None
    entity_id: str | None = None
    cache_key: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        request_id=_request_id.get(),
        entity_id=_entity_id.get(),
        cache_key=_cache_key.get(),
    )


def set_request_context(request_id: str, entity_id: object | None = None) -> None:
    """Set request-level context (called once per served request)."""
    _request_id.set(request_id)
    _entity_id.set(None if entity_id is None else str(entity_id))


@contextmanager
def cache_key_context(key: str) -> Iterator[None]:
    """Tag log records with key for the duration of one cache call."""
    token = _cache_key.set(key)
    try:
        yield
    finally:
        _cache_key.reset(token)


@contextmanager
def entity_context(entity_id: object) -> Iterator[None]:
    """Tag log records with the entity being counted or invalidated."""
    token = _entity_id.set(str(entity_id))
    try:
        yield
    finally:
        _entity_id.reset(token)


def clear_context() -> None:
    """Reset all context variables."""
    _request_id.set(None)
    _entity_id.set(None)
    _cache_key.set(None)
