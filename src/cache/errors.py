# src/cache/errors.py — v1
"""Caching-layer exceptions.

Only store failures are modelled here: exceptions raised by a compute
strategy reach the caller untouched.
"""

from __future__ import annotations


class CacheError(Exception):
    """Base class for caching-layer errors."""


class StoreUnavailableError(CacheError):
    """A cache backend could not serve an operation."""

    def __init__(self, backend: str, operation: str, cause: Exception | None = None):
        self.backend = backend
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{backend} store unavailable during {operation}{detail}")
