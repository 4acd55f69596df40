# src/cache/ttl_policy.py — v1
"""Cost-based TTL: expensive computations are cached longer, up to a ceiling.

The candidate lifetime is ``scale_factor`` times the compute duration in
whole seconds, with a one-second floor. A 2.7 s computation therefore counts
as 2 s. Wall-clock time is the cost proxy, network variance included.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_SCALE_FACTOR = 60.0
MIN_COST_SECONDS = 1.0


@dataclass(frozen=True)
class AdaptiveTtlPolicy:
    """Derive an entry lifetime from how long it took to compute."""

    scale_factor: float = DEFAULT_SCALE_FACTOR

    def __post_init__(self) -> None:
        if self.scale_factor <= 0:
            raise ValueError("scale_factor must be > 0")

    def candidate_ttl(self, compute_duration: float) -> float:
        """TTL suggested by cost alone, before any ceiling is applied."""
        cost = int(max(compute_duration, MIN_COST_SECONDS))
        return self.scale_factor * cost

    def resolve(
        self,
        compute_duration: float,
        ttl_ceiling: float,
        suggested_ttl: float | None = None,
        adaptive: bool = True,
    ) -> float:
        """Final TTL for an entry.

        Args:
            compute_duration: Seconds the compute call took.
            ttl_ceiling: Caller's hard upper bound.
            suggested_ttl: TTL proposed by the compute strategy, if any.
            adaptive: Apply the cost-based candidate (otherwise only the
                ceiling and the suggestion count).

        Returns:
            min(ceiling, suggestion, candidate), never negative.
        """
        ttl = ttl_ceiling
        if suggested_ttl is not None:
            ttl = min(ttl, suggested_ttl)
        if adaptive:
            ttl = min(ttl, self.candidate_ttl(compute_duration))
        ttl = max(ttl, 0.0)
        logger.debug(
            "TTL resolved: duration=%.3fs ceiling=%.0fs suggested=%s -> %.0fs",
            compute_duration, ttl_ceiling, suggested_ttl, ttl,
        )
        return ttl
