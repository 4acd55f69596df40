"""Per-entity count service built on the cache."""
