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

"""Configuration loading for modcache builds.

Settings are read from ``modcache.toml``, ``.modcache.toml`` or the
``[tool.modcache]`` table of ``pyproject.toml``, in that order, within the
detected project root. Relative paths in a file resolve against the file's
directory; explicit overrides (command-line flags) win over file values and
resolve against the working directory.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final, Literal, TypeAlias, cast

from pydantic import ValidationError

from modcache._internal.logging_utils import structured_extra
from modcache.core.model_types import LogComponent

from .models import BuildConfigModel, BuildSettings, ConfigReadError, InvalidConfigFileError, settings_from_model

if TYPE_CHECKING:
    from collections.abc import Mapping

logger: logging.Logger = logging.getLogger("modcache.config")

ConfigFilename: TypeAlias = Literal["modcache.toml", ".modcache.toml", "pyproject.toml"]

CONFIG_FILENAMES: Final[tuple[ConfigFilename, ConfigFilename, ConfigFilename]] = (
    "modcache.toml",
    ".modcache.toml",
    "pyproject.toml",
)
_PATH_FIELDS: Final[tuple[str, ...]] = ("base_path", "cache_dir")


@dataclass(slots=True, frozen=True)
class LoadedSettings:
    """Build settings together with the file they were loaded from.

    Attributes:
        settings: Runtime build settings.
        path: Configuration file used, or ``None`` when only defaults and
            overrides apply.
    """

    settings: BuildSettings
    path: Path | None


def resolve_project_root(start: Path | None = None) -> Path:
    """Walk up from ``start`` to the first directory holding a config file.

    Falls back to ``start`` (or the working directory) when no marker exists.
    """
    base = (start or Path.cwd()).resolve()
    if base.is_file():
        base = base.parent
    for candidate in (base, *base.parents):
        if any((candidate / marker).exists() for marker in CONFIG_FILENAMES):
            return candidate
    logger.debug(
        "No configuration markers found above %s",
        base,
        extra=structured_extra(LogComponent.CONFIG, path=base),
    )
    return base


def load_settings(
    explicit_path: Path | None = None,
    *,
    start: Path | None = None,
    overrides: Mapping[str, object] | None = None,
) -> LoadedSettings:
    """Load build settings from configuration files and overrides.

    Args:
        explicit_path: Configuration file to use. When given, no search is
            performed and the file must contain modcache configuration.
        start: Directory the project-root search starts from.
        overrides: Field values that replace file values. ``None`` values are
            ignored.

    Returns:
        LoadedSettings: Resolved settings and the path they came from.

    Raises:
        ConfigReadError: If a configuration file cannot be read or parsed.
        InvalidConfigFileError: If configuration fails validation.
    """
    override_map = {key: value for key, value in (overrides or {}).items() if value is not None}
    for candidate in _search_order(explicit_path, start):
        payload = _read_payload(candidate, explicit=explicit_path is not None)
        if payload is None:
            continue
        settings = _settings_from_payload(candidate, payload, override_map)
        logger.debug(
            "Loaded configuration from %s",
            candidate,
            extra=structured_extra(LogComponent.CONFIG, path=candidate),
        )
        return LoadedSettings(settings=settings, path=candidate.resolve())
    return LoadedSettings(settings=_settings_from_payload(None, {}, override_map), path=None)


def _search_order(explicit_path: Path | None, start: Path | None) -> list[Path]:
    if explicit_path is not None:
        return [explicit_path if explicit_path.is_absolute() else (Path.cwd() / explicit_path).resolve()]
    root = resolve_project_root(start)
    return [root / name for name in CONFIG_FILENAMES]


def _read_payload(candidate: Path, *, explicit: bool) -> dict[str, object] | None:
    if not candidate.exists():
        if explicit:
            raise ConfigReadError(candidate, FileNotFoundError(str(candidate)))
        return None
    try:
        raw_map: dict[str, object] = tomllib.loads(candidate.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigReadError(candidate, exc) from exc
    payload = _extract_modcache_payload(candidate, raw_map)
    if payload is None and explicit:
        message = f"{candidate.name} does not define a [tool.modcache] table"
        raise InvalidConfigFileError(candidate, ValueError(message))
    return payload


def _extract_modcache_payload(candidate: Path, raw_map: dict[str, object]) -> dict[str, object] | None:
    """Extract the modcache table from a parsed TOML document.

    Returns:
        Mapping to validate, or None when a ``pyproject.toml`` carries no
        modcache configuration.

    Raises:
        InvalidConfigFileError: If ``[tool.modcache]`` exists but is not a table.
    """
    is_pyproject = candidate.name == "pyproject.toml"
    tool_section = raw_map.get("tool")
    if isinstance(tool_section, dict):
        section = cast("dict[str, object]", tool_section).get("modcache")
        if section is not None and not isinstance(section, dict):
            message = "[tool.modcache] must be a TOML table"
            raise InvalidConfigFileError(candidate, ValueError(message))
        if isinstance(section, dict):
            return cast("dict[str, object]", section)
    if is_pyproject:
        return None
    # standalone files may carry unrelated [tool] tables
    return {key: value for key, value in raw_map.items() if key != "tool"}


def _settings_from_payload(
    candidate: Path | None,
    payload: dict[str, object],
    overrides: dict[str, object],
) -> BuildSettings:
    merged = {**payload, **overrides}
    try:
        model = BuildConfigModel.model_validate(merged)
    except ValidationError as exc:
        raise InvalidConfigFileError(candidate or Path("<options>"), exc) from exc
    file_dir = candidate.parent.resolve() if candidate is not None else Path.cwd()
    for field_name in _PATH_FIELDS:
        value = cast("Path | None", getattr(model, field_name))
        if value is None or value.is_absolute():
            continue
        base = Path.cwd() if field_name in overrides else file_dir
        setattr(model, field_name, (base / value).resolve())
    return settings_from_model(model)


__all__ = ["CONFIG_FILENAMES", "LoadedSettings", "load_settings", "resolve_project_root"]
