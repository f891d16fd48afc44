"""
Command line for inspecting and maintaining a tiercache directory.

Usage:
    python main.py keys
    python main.py get KEY
    python main.py delete KEY
    python main.py delete-prefix PREFIX
    python main.py compact
    python main.py destroy --yes

Options ``--base``, ``--name`` and ``--config`` select the cache; their
defaults come from ``config/config.yaml`` and ``TIERCACHE_*`` env vars.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from tiercache.config import get_settings
from tiercache.engine import PersistentCache
from tiercache.exceptions import TierCacheException
from tiercache.logging_setup import setup_logging
from tiercache.models import CacheOptions


def _open_cache(args) -> PersistentCache:
    settings = get_settings(yaml_path=args.config, _force_reload=args.config is not None)
    setup_logging(settings.logging)
    options = CacheOptions.from_settings(settings)
    overrides = {"memory": False, "persist": True}
    if args.base:
        overrides["base"] = Path(args.base)
    if args.name:
        overrides["name"] = args.name
    return PersistentCache(options, **overrides)


def cmd_keys(cache: PersistentCache, args) -> int:
    """List stored keys, one per line."""
    for key in sorted(cache.keys(), key=str):
        print(key)
    return 0


def cmd_get(cache: PersistentCache, args) -> int:
    """Print the value stored under a key as JSON."""
    value = cache.get(args.key)
    if value is None:
        print(f"{args.key}: not found or expired", file=sys.stderr)
        return 1
    print(json.dumps(value, indent=2, ensure_ascii=False))
    return 0


def cmd_delete(cache: PersistentCache, args) -> int:
    """Delete a single key."""
    cache.delete(args.key)
    return 0


def cmd_delete_prefix(cache: PersistentCache, args) -> int:
    """Delete every key starting with a prefix."""
    count = cache.delete_with_prefix(args.prefix)
    print(f"Deleted {count} key(s)")
    return 0


def cmd_compact(cache: PersistentCache, args) -> int:
    """Remove expired and unreadable entries."""
    count = cache.compact()
    print(f"Removed {count} entr{'y' if count == 1 else 'ies'}")
    return 0


def cmd_destroy(cache: PersistentCache, args) -> int:
    """Remove the whole cache directory."""
    if not args.yes:
        print(f"Refusing to remove {cache.directory} without --yes", file=sys.stderr)
        return 2
    cache.unlink()
    print(f"Removed {cache.directory}")
    return 0


COMMANDS = {
    "keys": cmd_keys,
    "get": cmd_get,
    "delete": cmd_delete,
    "delete-prefix": cmd_delete_prefix,
    "compact": cmd_compact,
    "destroy": cmd_destroy,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="tiercache - inspect and maintain a persistent cache directory"
    )
    parser.add_argument("--base", default=None, help="Root above the cache/ directory")
    parser.add_argument("--name", default=None, help="Cache directory name")
    parser.add_argument("--config", type=Path, default=None, help="Path to a YAML config file")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("keys", help="List stored keys")

    p_get = subparsers.add_parser("get", help="Print a stored value")
    p_get.add_argument("key")

    p_delete = subparsers.add_parser("delete", help="Delete a key")
    p_delete.add_argument("key")

    p_prefix = subparsers.add_parser("delete-prefix", help="Delete keys by prefix")
    p_prefix.add_argument("prefix")

    subparsers.add_parser("compact", help="Remove expired entries")

    p_destroy = subparsers.add_parser("destroy", help="Remove the cache directory")
    p_destroy.add_argument("--yes", action="store_true", help="Confirm removal")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in COMMANDS:
        parser.print_help()
        return 1

    try:
        cache = _open_cache(args)
        return COMMANDS[args.command](cache, args)
    except TierCacheException as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
