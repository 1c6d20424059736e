# Copyright 2025 CrownOps Engineering
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Cache management commands for the modcache CLI."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import TYPE_CHECKING

from modcache.cache import BUNDLE_KEY_PREFIX, MODULE_KEY_PREFIX, CacheStore
from modcache.cli.helpers import echo, register_argument

if TYPE_CHECKING:
    from collections.abc import Sequence

    from modcache.cli.types import SubparserCollection


def register_cache_command(
    subparsers: SubparserCollection,
    *,
    parents: Sequence[argparse.ArgumentParser] | None = None,
) -> None:
    """Attach the ``modcache cache`` command to the CLI.

    Args:
        subparsers: Top-level argparse subparser collection to register commands on.
        parents: Shared parent parsers carrying global flags.
    """
    cache = subparsers.add_parser(
        "cache",
        help="Inspect, prune or clear a persistent cache directory",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        parents=parents or [],
    )
    cache_sub = cache.add_subparsers(dest="cache_action", required=True)
    for action, help_text in (
        ("info", "Summarise cached entries and scratch regions"),
        ("prune", "Delete scratch regions no entry references"),
        ("clear", "Drop every entry and all scratch bytes"),
    ):
        sub = cache_sub.add_parser(
            action,
            help=help_text,
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        )
        register_argument(
            sub,
            "--cache-dir",
            type=Path,
            required=True,
            help="Cache directory used with `modcache build --cache-dir`.",
        )


def _handle_info(store: CacheStore) -> int:
    keys = store.keys()
    modules = sum(1 for key in keys if key.startswith(MODULE_KEY_PREFIX))
    bundles = sum(1 for key in keys if key.startswith(BUNDLE_KEY_PREFIX))
    echo(f"[modcache] cache at {store.root}")
    echo(f"  entries: {len(keys)} ({modules} module, {bundles} bundle)")
    echo(f"  scratch regions referenced: {len(store.referenced_regions())}")
    echo(f"  settings fingerprint: {store.fingerprint or '-'}")
    return 0


def _handle_prune(store: CacheStore) -> int:
    removed = store.prune_regions()
    echo(f"[modcache] Removed {removed} unreferenced scratch region(s) from {store.root}")
    return 0


def _handle_clear(store: CacheStore) -> int:
    store.clear()
    echo(f"[modcache] Cleared cache at {store.root}")
    return 0


def execute_cache(args: argparse.Namespace) -> int:
    """Execute the cache subcommand.

    Args:
        args: Parsed CLI namespace.

    Returns:
        ``0`` when the requested action completes successfully.

    Raises:
        SystemExit: If the action name is unrecognised.
    """
    cache_dir: Path = args.cache_dir.resolve()
    if not cache_dir.is_dir():
        echo(f"[modcache] cache directory not found at {cache_dir}; nothing to do")
        return 0
    handlers = {"info": _handle_info, "prune": _handle_prune, "clear": _handle_clear}
    handler = handlers.get(args.cache_action)
    if handler is None:
        msg = f"Unknown cache action '{args.cache_action}'"
        raise SystemExit(msg)
    with CacheStore(cache_dir, persist=True, fingerprint=None) as store:
        return handler(store)


__all__ = ["execute_cache", "register_cache_command"]
