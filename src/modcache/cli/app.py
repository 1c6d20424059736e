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

"""CLI entry point and orchestration for modcache commands."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable, Sequence
from typing import Final

from modcache import __version__
from modcache.cli.commands import build as build_command
from modcache.cli.commands import cache as cache_command
from modcache.cli.commands import formatters as formatters_command
from modcache.cli.helpers import echo, register_argument
from modcache.logging import LOG_FORMATS, LOG_LEVELS, configure_logging

logger: logging.Logger = logging.getLogger("modcache.cli")

MODCACHE_VERSION: Final[str] = __version__

CommandHandler = Callable[[argparse.Namespace], int]


def main(argv: Sequence[str] | None = None) -> int:
    """Main CLI entry point for the modcache command-line interface.

    Args:
        argv: Command-line arguments to parse. If None, uses sys.argv.

    Returns:
        int: Exit code from the executed command handler.
    """
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.version:
        echo(f"modcache {MODCACHE_VERSION}")
        return 0
    if args.command is None:
        parser.error("No command provided.")
    _ = configure_logging(getattr(args, "log_format", None), log_level=getattr(args, "log_level", None))
    handler = _command_handlers().get(args.command)
    if handler is None:
        parser.error(f"Unknown command {args.command}")
    return handler(args)


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level parser with global flags and every subcommand."""
    common = argparse.ArgumentParser(add_help=False)
    register_argument(
        common,
        "--log-format",
        choices=LOG_FORMATS,
        default=argparse.SUPPRESS,
        help="Logging output format (default: $MODCACHE_LOG_FORMAT or text).",
    )
    register_argument(
        common,
        "--log-level",
        choices=LOG_LEVELS,
        default=argparse.SUPPRESS,
        help="Logging verbosity (default: $MODCACHE_LOG_LEVEL or info).",
    )
    parser = argparse.ArgumentParser(
        prog="modcache",
        parents=[common],
        description="Incremental build cache for module-to-module source transforms.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    register_argument(
        parser,
        "--version",
        action="store_true",
        help="Print the modcache version and exit.",
    )
    subparsers = parser.add_subparsers(dest="command")

    parents = [common]
    build_command.register_build_command(subparsers, parents=parents)
    formatters_command.register_formatters_command(subparsers, parents=parents)
    cache_command.register_cache_command(subparsers, parents=parents)
    return parser


def _command_handlers() -> dict[str, CommandHandler]:
    return {
        "build": build_command.execute_build,
        "cache": cache_command.execute_cache,
        "formatters": formatters_command.execute_formatters,
    }


__all__ = ["main"]
