"""tallycache — read-through cache for expensive per-entity counts."""

from tallycache.version import __version__

__all__ = ["__version__"]
