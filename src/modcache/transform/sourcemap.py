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

"""Line-level source map (revision 3) generation."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Final, TypedDict

if TYPE_CHECKING:
    from .formatters import OutputLine
    from .module import Module

_BASE64: Final[str] = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_VLQ_SHIFT: Final[int] = 5
_VLQ_MASK: Final[int] = (1 << _VLQ_SHIFT) - 1
_VLQ_CONTINUATION: Final[int] = 1 << _VLQ_SHIFT


class SourceMap(TypedDict):
    version: int
    file: str
    sourceRoot: str
    sources: list[str]
    names: list[str]
    mappings: str


def encode_vlq(value: int) -> str:
    """Encode a signed integer as a base64 VLQ string."""
    vlq = ((-value) << 1) | 1 if value < 0 else value << 1
    encoded: list[str] = []
    while True:
        digit = vlq & _VLQ_MASK
        vlq >>= _VLQ_SHIFT
        if vlq:
            digit |= _VLQ_CONTINUATION
        encoded.append(_BASE64[digit])
        if not vlq:
            return "".join(encoded)


def build_source_map(
    *,
    file: str,
    lines: Sequence[OutputLine],
    source_name: Callable[[Module], str],
    source_root: str,
) -> SourceMap:
    """Map each generated line back to the source line it was rendered from.

    Generated lines without an origin (wrappers, prologues) get empty
    segments.

    Args:
        file: Name of the generated file.
        lines: Generated lines in output order.
        source_name: Returns the ``sources`` entry for a module.
        source_root: Value of the map's ``sourceRoot`` field.

    Returns:
        Source map payload ready for JSON serialisation.
    """
    sources: list[str] = []
    source_index: dict[str, int] = {}
    segments: list[str] = []
    previous_source = 0
    previous_line = 0
    for output in lines:
        if output.module is None or output.line is None:
            segments.append("")
            continue
        name = source_name(output.module)
        index = source_index.get(name)
        if index is None:
            index = source_index[name] = len(sources)
            sources.append(name)
        original_line = output.line - 1
        segments.append(
            encode_vlq(0)
            + encode_vlq(index - previous_source)
            + encode_vlq(original_line - previous_line)
            + encode_vlq(0),
        )
        previous_source = index
        previous_line = original_line
    return {
        "version": 3,
        "file": file,
        "sourceRoot": source_root,
        "sources": sources,
        "names": [],
        "mappings": ";".join(segments),
    }


__all__ = ["SourceMap", "build_source_map", "encode_vlq"]
