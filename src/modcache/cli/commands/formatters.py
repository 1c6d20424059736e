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

"""``modcache formatters`` command."""

from __future__ import annotations

import argparse
import json
from typing import TYPE_CHECKING

from modcache.cli.helpers import echo, register_argument
from modcache.transform.registry import describe_formatters

if TYPE_CHECKING:
    from collections.abc import Sequence

    from modcache.cli.types import SubparserCollection


def register_formatters_command(
    subparsers: SubparserCollection,
    *,
    parents: Sequence[argparse.ArgumentParser] | None = None,
) -> None:
    formatters = subparsers.add_parser(
        "formatters",
        help="List builtin and plugin formatters",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        parents=parents or [],
    )
    register_argument(
        formatters,
        "--json",
        action="store_true",
        help="Print formatter metadata as JSON.",
    )


def execute_formatters(args: argparse.Namespace) -> int:
    descriptors = describe_formatters()
    if args.json:
        payload = [
            {
                "name": str(desc.name),
                "origin": desc.origin,
                "module": desc.module,
                "class": desc.qualified_name,
            }
            for desc in descriptors
        ]
        echo(json.dumps(payload, indent=2))
        return 0
    for desc in descriptors:
        echo(f"{desc.name:<12} {desc.origin:<12} {desc.module}.{desc.qualified_name}")
    return 0


__all__ = ["execute_formatters", "register_formatters_command"]
