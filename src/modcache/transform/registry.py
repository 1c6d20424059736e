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

"""Formatter registry for builtin and plugin-provided output formatters.

Builtin formatters form a closed set (`FormatterName`). Third-party
formatters register under the ``modcache.formatters`` entry-point group and
must satisfy the `Formatter` capability interface. Selection by name or by
instance is resolved once, when build settings are created.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from functools import lru_cache
from importlib import metadata
from typing import TYPE_CHECKING, Final, cast

from modcache._internal.exceptions import ModcacheTypeError, UnknownFormatterError
from modcache._internal.logging_utils import structured_extra
from modcache.core.model_types import FormatterName, LogComponent
from modcache.core.type_aliases import FormatterId

from .formatters import BundleFormatter, CommonJSFormatter, Formatter

if TYPE_CHECKING:
    from collections.abc import Callable

logger: logging.Logger = logging.getLogger("modcache.transform.registry")

ENTRY_POINT_GROUP: Final = "modcache.formatters"
DEFAULT_FORMATTER: Final[FormatterName] = FormatterName.COMMONJS


def _is_formatter_like(value: object) -> bool:
    if value is None:
        return False
    name = getattr(value, "name", None)
    return (
        isinstance(name, str)
        and callable(getattr(value, "render_module", None))
        and callable(getattr(value, "render_bundle", None))
    )


@lru_cache
def builtin_formatters() -> dict[FormatterId, Formatter]:
    """Return the builtin formatters keyed by name."""
    formatters: list[Formatter] = [CommonJSFormatter(), BundleFormatter()]
    return {FormatterId(formatter.name): formatter for formatter in formatters}


def _instantiate_formatter(obj: object, *, source: str) -> Formatter:
    candidate = obj
    if inspect.isclass(candidate) or (callable(candidate) and not hasattr(candidate, "render_module")):
        factory = cast("Callable[[], object]", candidate)
        candidate = factory()
    if not _is_formatter_like(candidate):
        message = f"Entry point '{source}' did not provide a valid formatter"
        raise ModcacheTypeError(message)
    return cast("Formatter", candidate)


@lru_cache
def entrypoint_formatters() -> dict[FormatterId, Formatter]:
    """Discover formatters registered under the ``modcache.formatters`` group.

    Entry points that fail to load or do not satisfy the `Formatter`
    interface are logged and skipped.
    """
    formatters: dict[FormatterId, Formatter] = {}
    for entry_point in metadata.entry_points().select(group=ENTRY_POINT_GROUP):
        try:
            formatter = _instantiate_formatter(entry_point.load(), source=entry_point.name)
        except Exception as exc:  # noqa: BLE001  # plugin misconfiguration
            logger.warning(
                "Failed to load formatter entry point '%s': %s",
                entry_point.name,
                exc,
                extra=structured_extra(LogComponent.TRANSFORM, details={"entry_point": entry_point.name}),
            )
            continue
        formatters[FormatterId(formatter.name)] = formatter
    return dict(sorted(formatters.items()))


def formatter_map() -> dict[FormatterId, Formatter]:
    """Builtin formatters overlaid with plugin formatters of the same name."""
    mapping = dict(builtin_formatters())
    mapping.update(entrypoint_formatters())
    return mapping


def resolve_formatter(spec: str | FormatterName | Formatter | None) -> Formatter:
    """Resolve a formatter name or instance to a `Formatter`.

    Args:
        spec: Formatter name, formatter instance, or ``None`` for the default.

    Returns:
        The formatter to use for the whole pipeline.

    Raises:
        UnknownFormatterError: If a name matches no known formatter.
        ModcacheTypeError: If an object does not implement the interface.
    """
    if spec is None:
        spec = DEFAULT_FORMATTER
    if isinstance(spec, str):
        mapping = formatter_map()
        name = FormatterId(spec.strip().lower())
        if name not in mapping:
            raise UnknownFormatterError(spec, tuple(sorted(mapping)))
        return mapping[name]
    if not _is_formatter_like(spec):
        message = f"{type(spec).__name__} does not implement the formatter interface"
        raise ModcacheTypeError(message)
    return spec


@dataclass(slots=True, frozen=True)
class FormatterDescriptor:
    """Metadata for one discovered formatter."""

    name: FormatterId
    module: str
    qualified_name: str
    origin: str


def describe_formatters() -> list[FormatterDescriptor]:
    mapping = formatter_map()
    entrypoints = entrypoint_formatters()
    descriptors = [
        FormatterDescriptor(
            name=name,
            module=formatter.__class__.__module__,
            qualified_name=formatter.__class__.__qualname__,
            origin="entry_point" if name in entrypoints else "builtin",
        )
        for name, formatter in mapping.items()
    ]
    descriptors.sort(key=lambda desc: str(desc.name))
    return descriptors


__all__ = [
    "DEFAULT_FORMATTER",
    "ENTRY_POINT_GROUP",
    "FormatterDescriptor",
    "builtin_formatters",
    "describe_formatters",
    "entrypoint_formatters",
    "formatter_map",
    "resolve_formatter",
]
