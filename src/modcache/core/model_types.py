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

"""Model types and enumerations for modcache.

This module defines the closed enumerations shared by the build pipeline:

- Output kinds and materialization strategies for builds
- Built-in formatter names
- Module origin tags (freshly parsed vs hydrated from cache)
- Log formats and components for structured logging
"""

from __future__ import annotations

from enum import StrEnum
from typing import Self


class _ParseableEnum(StrEnum):
    @classmethod
    def from_str(cls, raw: str) -> Self:
        """Create an enum member from a case-insensitive string value.

        Args:
            raw: String representation of the member.

        Returns:
            Matching enum member.

        Raises:
            ValueError: If the string does not match any member value.
        """
        value = raw.strip().lower()
        try:
            return cls(value)
        except ValueError as exc:
            msg = f"Unknown {cls.__name__} '{raw}'"
            raise ValueError(msg) from exc


class OutputKind(_ParseableEnum):
    """Shape of the build output.

    Attributes:
        AUTO: Infer from the configured output path's extension.
        FILE: A single bundle file fused from every module.
        DIRECTORY: One output artifact per module, mirroring the source tree.
    """

    AUTO = "auto"
    FILE = "file"
    DIRECTORY = "directory"


class MaterializeStrategy(_ParseableEnum):
    """How cached artifacts are placed in the destination tree.

    Attributes:
        COPY: Copy bytes, preserving timestamps.
        SYMLINK: Link destination paths to the scratch area.
    """

    COPY = "copy"
    SYMLINK = "symlink"


class FormatterName(_ParseableEnum):
    """Built-in output formatters."""

    COMMONJS = "commonjs"
    BUNDLE = "bundle"


class ModuleOrigin(_ParseableEnum):
    """Where a module's parsed structure came from.

    Attributes:
        PARSED: Read and scanned from source text in this pass.
        HYDRATED: Rebuilt from a validated cache entry without reading the source.
    """

    PARSED = "parsed"
    HYDRATED = "hydrated"


class LogFormat(_ParseableEnum):
    """Enumeration of log output formats.

    Attributes:
        TEXT: Human-readable text format.
        JSON: Machine-readable JSON format.
    """

    TEXT = "text"
    JSON = "json"


class LogComponent(_ParseableEnum):
    """Enumeration of loggable system components."""

    BUILD = "build"
    CACHE = "cache"
    CLI = "cli"
    CONFIG = "config"
    RESOLUTION = "resolution"
    TRANSFORM = "transform"


__all__ = [
    "FormatterName",
    "LogComponent",
    "LogFormat",
    "MaterializeStrategy",
    "ModuleOrigin",
    "OutputKind",
]
