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

"""Build configuration models.

`BuildConfigModel` validates configuration read from TOML or passed on the
command line. `BuildSettings` is the runtime form consumed by the build
orchestrator: enum fields are parsed and the formatter is already resolved to
an instance.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modcache._internal.exceptions import ModcacheValidationError
from modcache.core.model_types import MaterializeStrategy, OutputKind
from modcache.hashing import hash_text
from modcache.transform.registry import DEFAULT_FORMATTER, resolve_formatter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from modcache.core.model_types import FormatterName
    from modcache.core.type_aliases import Digest
    from modcache.transform.container import Resolver
    from modcache.transform.formatters import Formatter


class ConfigValidationError(ModcacheValidationError):
    """Raised when configuration data contains invalid values."""


class ConfigFieldValueError(ConfigValidationError):
    """Raised when a configuration field holds an unusable value."""

    def __init__(self, field_name: str, value: object) -> None:
        """Initialize the exception with the offending field and value.

        Args:
            field_name: Name of the configuration field.
            value: Value that was rejected.
        """
        self.field_name = field_name
        self.value = value
        super().__init__(f"Invalid value for '{field_name}': {value!r}")


class ConfigReadError(ConfigValidationError):
    """Raised when a configuration file cannot be read from disk."""

    def __init__(self, path: Path, error: Exception) -> None:
        """Initialize the exception with file path and underlying error.

        Args:
            path: The path to the configuration file that could not be read.
            error: The underlying exception that caused the read failure.
        """
        self.path = path
        self.error = error
        super().__init__(f"Unable to read {path}: {error}")


class InvalidConfigFileError(ConfigValidationError):
    """Raised when a configuration file fails validation."""

    def __init__(self, path: Path, error: Exception) -> None:
        """Initialize the exception with configuration file path and validation error.

        Args:
            path: The path to the configuration file that failed validation.
            error: The underlying validation exception.
        """
        self.path = path
        self.error = error
        super().__init__(f"Invalid modcache configuration in {path}: {error}")


class BuildConfigModel(BaseModel):
    """Validated build configuration as written in TOML or given as options."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", populate_by_name=True)

    output: str = "."
    output_kind: OutputKind = OutputKind.AUTO
    formatter: str = Field(default=str(DEFAULT_FORMATTER))
    source_root: str = "/"
    base_path: Path | None = None
    extension: str = ".js"
    source_maps: bool = False
    materialize: MaterializeStrategy = MaterializeStrategy.COPY
    cache_dir: Path | None = None
    persist: bool = False

    @field_validator("output", mode="before")
    @classmethod
    def _strip_output(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ConfigFieldValueError("output", value)
            return stripped
        return value

    @field_validator("output_kind", mode="before")
    @classmethod
    def _parse_output_kind(cls, value: object) -> object:
        if isinstance(value, str):
            return OutputKind.from_str(value)
        return value

    @field_validator("materialize", mode="before")
    @classmethod
    def _parse_materialize(cls, value: object) -> object:
        if isinstance(value, str):
            return MaterializeStrategy.from_str(value)
        return value

    @field_validator("formatter", mode="before")
    @classmethod
    def _normalise_formatter(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip().lower()
            if not stripped:
                raise ConfigFieldValueError("formatter", value)
            return stripped
        return value

    @field_validator("extension", mode="before")
    @classmethod
    def _normalise_extension(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        stripped = value.strip()
        if not stripped.startswith("."):
            stripped = f".{stripped}"
        if len(stripped) < 2 or "/" in stripped or "\\" in stripped:  # noqa: PLR2004
            raise ConfigFieldValueError("extension", value)
        return stripped


@dataclass(slots=True)
class BuildSettings:
    """Runtime build settings.

    Attributes:
        output: Output path relative to the destination directory. A file name
            selects bundle output, anything else a directory of modules.
        output_kind: Explicit output shape, or ``auto`` to infer it from
            ``output``'s extension.
        formatter: Formatter instance used for the whole pipeline.
        resolvers: Resolvers consulted after the cache resolver. ``None``
            means a single file resolver rooted at the source directory.
        source_root: ``sourceRoot`` written into source maps.
        base_path: Directory source-map sources are relative to. ``None``
            means the build's source directory.
        extension: Module file extension.
        source_maps: Emit a ``.map`` file with every compiled output.
        materialize: How cached artifacts are placed in the destination.
        cache_dir: Scratch root. ``None`` means an owned temporary directory.
        persist: Keep the cache index on disk between processes.
    """

    output: str = "."
    output_kind: OutputKind = OutputKind.AUTO
    formatter: Formatter = field(default_factory=lambda: resolve_formatter(None))
    resolvers: tuple[Resolver, ...] | None = None
    source_root: str = "/"
    base_path: Path | None = None
    extension: str = ".js"
    source_maps: bool = False
    materialize: MaterializeStrategy = MaterializeStrategy.COPY
    cache_dir: Path | None = None
    persist: bool = False

    @classmethod
    def from_options(
        cls,
        *,
        formatter: str | FormatterName | Formatter | None = None,
        resolvers: Sequence[Resolver] | None = None,
        **options: object,
    ) -> BuildSettings:
        """Validate loose options and build settings from them.

        Args:
            formatter: Formatter name, formatter instance, or ``None``.
            resolvers: Extra resolvers placed after the cache resolver.
            **options: Any other `BuildConfigModel` field.

        Returns:
            Settings with the formatter resolved.

        Raises:
            pydantic.ValidationError: If an option is invalid.
            UnknownFormatterError: If the formatter name is unknown.
        """
        payload = {key: value for key, value in options.items() if value is not None}
        if isinstance(formatter, str):
            payload["formatter"] = formatter
        model = BuildConfigModel.model_validate(payload)
        settings = settings_from_model(model)
        if formatter is not None and not isinstance(formatter, str):
            settings.formatter = resolve_formatter(formatter)
        if resolvers is not None:
            settings.resolvers = tuple(resolvers)
        return settings

    def _artifact_payload(self) -> dict[str, object]:
        return {
            "formatter": self.formatter.name,
            "source_root": self.source_root,
            "base_path": None if self.base_path is None else self.base_path.as_posix(),
            "extension": self.extension,
            "source_maps": self.source_maps,
        }

    def artifact_fingerprint(self) -> Digest:
        """Return a digest of the settings that change a compiled artifact's bytes.

        The output location and shape are left out, so compilers that differ
        only in where they write can share cached artifacts.
        """
        return hash_text(json.dumps(self._artifact_payload(), sort_keys=True))

    def fingerprint(self) -> Digest:
        """Return a digest of every setting that shapes compiled output."""
        payload = {
            **self._artifact_payload(),
            "output": self.output,
            "output_kind": str(self.output_kind),
        }
        return hash_text(json.dumps(payload, sort_keys=True))


def settings_from_model(model: BuildConfigModel) -> BuildSettings:
    return BuildSettings(
        output=model.output,
        output_kind=model.output_kind,
        formatter=resolve_formatter(model.formatter),
        source_root=model.source_root,
        base_path=model.base_path,
        extension=model.extension,
        source_maps=model.source_maps,
        materialize=model.materialize,
        cache_dir=model.cache_dir,
        persist=model.persist,
    )


__all__ = [
    "BuildConfigModel",
    "BuildSettings",
    "ConfigFieldValueError",
    "ConfigReadError",
    "ConfigValidationError",
    "InvalidConfigFileError",
    "settings_from_model",
]
