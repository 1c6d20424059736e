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

"""``modcache build`` command."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from modcache._internal.exceptions import BuildFailedError, ModcacheError
from modcache._internal.logging_utils import structured_extra
from modcache.build import ModuleCompiler
from modcache.cli.helpers import echo, register_argument
from modcache.config import load_settings
from modcache.core.model_types import LogComponent, MaterializeStrategy, OutputKind

if TYPE_CHECKING:
    from collections.abc import Sequence

    from modcache.cli.types import SubparserCollection

logger: logging.Logger = logging.getLogger("modcache.cli")


def register_build_command(
    subparsers: SubparserCollection,
    *,
    parents: Sequence[argparse.ArgumentParser] | None = None,
) -> None:
    """Attach the ``modcache build`` command to the CLI.

    Args:
        subparsers: Top-level argparse subparser collection to register commands on.
        parents: Shared parent parsers carrying global flags.
    """
    build = subparsers.add_parser(
        "build",
        help="Compile a module tree, reusing cached output for unchanged modules",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        parents=parents or [],
    )
    register_argument(build, "source", type=Path, help="Source directory holding modules.")
    register_argument(build, "dest", type=Path, help="Destination directory.")
    register_argument(
        build,
        "-o",
        "--output",
        default=None,
        help="Output path inside DEST; a name with the module extension builds one bundle file.",
    )
    register_argument(
        build,
        "--kind",
        dest="output_kind",
        choices=[kind.value for kind in OutputKind],
        default=None,
        help="Output shape (default: auto, inferred from --output).",
    )
    register_argument(build, "--formatter", default=None, help="Formatter name (see `modcache formatters`).")
    register_argument(build, "--extension", default=None, help="Module file extension (default: .js).")
    register_argument(
        build,
        "--source-maps",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Emit a source map next to every compiled output.",
    )
    register_argument(
        build,
        "--materialize",
        choices=[strategy.value for strategy in MaterializeStrategy],
        default=None,
        help="Copy cached artifacts or link them into DEST.",
    )
    register_argument(
        build,
        "--cache-dir",
        type=Path,
        default=None,
        help="Persistent cache directory reused across invocations.",
    )
    register_argument(
        build,
        "--config",
        type=Path,
        default=None,
        help="Explicit configuration file (default: discovered from SOURCE).",
    )


def _overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {
        "output": args.output,
        "output_kind": args.output_kind,
        "formatter": args.formatter,
        "extension": args.extension,
        "source_maps": args.source_maps,
        "materialize": args.materialize,
        "cache_dir": args.cache_dir,
    }
    if args.cache_dir is not None:
        overrides["persist"] = True
    return overrides


def execute_build(args: argparse.Namespace) -> int:
    """Run one build and print its summary.

    Returns:
        ``0`` on success, ``1`` when the build or its configuration fails.
    """
    try:
        loaded = load_settings(args.config, start=args.source, overrides=_overrides(args))
        with ModuleCompiler(loaded.settings) as compiler:
            report = compiler.build(args.source, args.dest)
    except BuildFailedError as exc:
        for rel, message in sorted(exc.failures.items()):
            logger.error("%s", message, extra=structured_extra(LogComponent.CLI, path=rel))
        logger.error("%s", exc, extra=structured_extra(LogComponent.CLI))
        return 1
    except ModcacheError as exc:
        logger.error("%s", exc, extra=structured_extra(LogComponent.CLI))
        return 1
    echo(
        f"[modcache] {report.output_kind} build -> {report.output_path}: "
        f"{len(report.compiled)} compiled, {len(report.reused)} reused, "
        f"{len(report.hydrated)} hydrated, {report.passthrough} copied "
        f"({report.duration_ms:.1f} ms)",
    )
    return 0


__all__ = ["execute_build", "register_build_command"]
