# src/counts/models.py — v1
"""Count domain models: Actor."""

from __future__ import annotations

from pydantic import BaseModel


class Actor(BaseModel):
    """Author of a write, as reported by the write-completed notification."""

    entity_id: int
    is_registered: bool = True
