# src/main.py — v3
"""CLI entry point — inspect, touch, version, invalidate commands.

Usage:
    tallycache inspect <key>
    tallycache touch <check_key>
    tallycache version <check_key>
    tallycache invalidate <entity_id>

Backend and logging come from .env (see config/settings.py).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
import uuid

from tallycache.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="tallycache",
        description=f"tallycache v{__version__} — read-through count cache tools",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    p_inspect = subparsers.add_parser("inspect", help="Show a cached entry")
    p_inspect.add_argument("key", help="Full cache key")
    p_inspect.set_defaults(func=_cmd_inspect)

    p_touch = subparsers.add_parser("touch", help="Advance a check key")
    p_touch.add_argument("check_key", help="Check key name")
    p_touch.set_defaults(func=_cmd_touch)

    p_version = subparsers.add_parser("version", help="Show a check key's version")
    p_version.add_argument("check_key", help="Check key name")
    p_version.set_defaults(func=_cmd_version)

    p_invalidate = subparsers.add_parser(
        "invalidate", help="Invalidate an entity's cached count",
    )
    p_invalidate.add_argument("entity_id", type=int, help="Entity identifier")
    p_invalidate.set_defaults(func=_cmd_invalidate)

    return parser


async def _run(args: argparse.Namespace) -> int:
    """Load settings, configure logging, run the subcommand, close the cache."""
    from tallycache.cache.cache_factory import create_orchestrator
    from tallycache.config.settings import load_settings
    from tallycache.logging.context import set_request_context
    from tallycache.logging.logger import setup_logging

    settings = load_settings()
    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    set_request_context(uuid.uuid4().hex[:12])
    cache = create_orchestrator(settings)
    try:
        return await args.func(args, cache)
    finally:
        await cache.aclose()


async def _cmd_inspect(args: argparse.Namespace, cache) -> int:
    """Print an entry, its expiry and whether it would be served as a hit."""
    from tallycache.cache.models import CacheEntry

    payload = await cache.store.get(args.key)
    if payload is None:
        print(f"{args.key}: not cached")
        return 1

    entry = CacheEntry.model_validate_json(payload)
    versions = await cache.registry.current_versions(entry.check_key_versions)
    now = time.time()
    print(json.dumps(
        {
            "key": args.key,
            "value": entry.value,
            "ttl": entry.ttl,
            "expires_in": round(entry.expires_at - now, 1),
            "check_keys": {
                name: {"tagged": v, "current": versions.get(name, 0)}
                for name, v in entry.check_key_versions.items()
            },
            "valid": entry.is_valid(now, versions),
        },
        indent=2,
        default=str,
    ))
    return 0


async def _cmd_touch(args: argparse.Namespace, cache) -> int:
    version = await cache.registry.touch(args.check_key)
    print(f"{args.check_key}: version {version}")
    return 0


async def _cmd_version(args: argparse.Namespace, cache) -> int:
    check_key = await cache.registry.check_key(args.check_key)
    print(f"{check_key.name}: version {check_key.version}")
    return 0


async def _cmd_invalidate(args: argparse.Namespace, cache) -> int:
    from tallycache.counts.service import count_key

    name = count_key(args.entity_id, prefix=cache.key_prefix)
    version = await cache.registry.touch(name)
    print(f"{name}: version {version}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
