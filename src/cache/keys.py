# src/cache/keys.py — v1
"""Deterministic cache key composition.

Keys look like ``prefix:namespace:operation:component...``. Colons, percent
signs and whitespace inside a component are percent-escaped so that two
different component tuples can never produce the same key.
"""

from __future__ import annotations

import re

DEFAULT_PREFIX = "tallycache"

_UNSAFE = re.compile(r"[%:\s]")


def _escape(component: object) -> str:
    text = str(component)
    return _UNSAFE.sub(lambda m: f"%{ord(m.group(0)):02X}", text)


def make_key(
    namespace: str,
    operation: str,
    *components: object,
    prefix: str = DEFAULT_PREFIX,
) -> str:
    """Compose a cache key from a namespace, an operation and entity components.

    Args:
        namespace: Logical owner of the key (e.g. "editcount").
        operation: Name of the cached computation (e.g. "accurate").
        *components: Entity identifiers; stringified and escaped.
        prefix: Global prefix, normally ``Settings.cache_key_prefix``.

    Raises:
        ValueError: If namespace or operation is empty.
    """
    if not namespace or not operation:
        raise ValueError("namespace and operation must be non-empty")
    parts = [namespace, operation, *components]
    if prefix:
        parts.insert(0, prefix)
    return ":".join(_escape(p) for p in parts)


def lease_key(key: str) -> str:
    """Key under which the stampede lease for ``key`` is stored."""
    return f"{key}:lease"


def check_key_storage_key(name: str) -> str:
    """Key under which a check key's version is stored in a shared keyspace."""
    return f"checkkey:{name}"
