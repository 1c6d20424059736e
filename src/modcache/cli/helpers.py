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

"""Argument and output helpers for the modcache CLI."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Any, Protocol

from modcache._internal.utils import consume

if TYPE_CHECKING:
    import argparse


class _TextStream(Protocol):
    def write(self, s: str, /) -> int: ...


class ArgumentRegistrar(Protocol):
    def add_argument(self, *args: Any, **kwargs: Any) -> argparse.Action: ...  # noqa: ANN401


def _select_stream(*, err: bool = False) -> _TextStream:
    return sys.stderr if err else sys.stdout


def echo(message: str, *, newline: bool = True, err: bool = False) -> None:
    """Write a message to stdout or stderr."""
    stream = _select_stream(err=err)
    consume(stream.write(message))
    if newline:
        consume(stream.write("\n"))


def register_argument(
    registrar: ArgumentRegistrar,
    *args: Any,  # noqa: ANN401
    **kwargs: Any,  # noqa: ANN401
) -> None:
    """Register an argument on a parser or group, discarding the action handle.

    Args:
        registrar: Parser or argument group on which to register the option.
        *args: Positional flags and option strings forwarded to ``add_argument``.
        **kwargs: Keyword options forwarded to ``add_argument``.
    """
    consume(registrar.add_argument(*args, **kwargs))


__all__ = ["ArgumentRegistrar", "echo", "register_argument"]
