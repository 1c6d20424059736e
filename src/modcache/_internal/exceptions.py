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

"""Common exception hierarchy for modcache."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

__all__ = [
    "BuildFailedError",
    "HashingError",
    "ModcacheError",
    "ModcacheTypeError",
    "ModcacheValidationError",
    "ModuleSyntaxError",
    "ResolutionError",
    "TransformerError",
    "UnknownFormatterError",
]


class ModcacheError(Exception):
    """Base error for all modcache exceptions."""


class ModcacheValidationError(ModcacheError, ValueError):
    """Raised when input data fails validation checks."""


class ModcacheTypeError(ModcacheError, TypeError):
    """Raised when input data has an unexpected type."""


class HashingError(ModcacheError):
    """Raised when a path cannot be fingerprinted (missing or unreadable)."""

    def __init__(self, path: Path, reason: str) -> None:
        """Initialise the error with the offending path.

        Args:
            path: Path that could not be hashed.
            reason: Short description of the failure.
        """
        self.path = path
        self.reason = reason
        super().__init__(f"Unable to hash {path}: {reason}")


class ResolutionError(ModcacheError):
    """Raised when an import cannot be resolved by any resolver."""

    def __init__(self, imported_path: str, importer: Path | None = None, *, reason: str | None = None) -> None:
        """Initialise the error with the import that failed.

        Args:
            imported_path: Import specifier as written in the source.
            importer: Path of the importing module, when known.
            reason: Why a module that was found cannot be used.
        """
        self.imported_path = imported_path
        self.importer = importer
        self.reason = reason
        where = f" (imported from {importer})" if importer is not None else ""
        why = f": {reason}" if reason is not None else ""
        super().__init__(f"Unable to resolve module '{imported_path}'{where}{why}")


class ModuleSyntaxError(ModcacheError):
    """Raised when module source contains a statement the scanner rejects."""

    def __init__(self, path: Path, line: int, message: str) -> None:
        self.path = path
        self.line = line
        super().__init__(f"{path}:{line}: {message}")


class UnknownFormatterError(ModcacheValidationError):
    """Raised when a formatter name matches no built-in or plugin formatter."""

    def __init__(self, name: str, available: tuple[str, ...]) -> None:
        self.name = name
        self.available = available
        super().__init__(f"Unknown formatter '{name}'; available: {', '.join(available)}")


class TransformerError(ModcacheError):
    """Raised when the transformer fails while compiling a pass."""


class BuildFailedError(ModcacheError):
    """Raised after a build in which one or more units failed."""

    def __init__(self, failures: Mapping[str, str]) -> None:
        """Initialise the error with the per-unit failure messages.

        Args:
            failures: Mapping of source-relative paths to failure descriptions.
        """
        self.failures = dict(failures)
        listing = ", ".join(sorted(self.failures))
        super().__init__(f"{len(self.failures)} unit(s) failed to build: {listing}")
