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

"""Structured logging for modcache.

Every modcache logger lives under the ``modcache`` namespace and attaches
its context (component, path, cache key, timings, counters) through
`structured_extra`. `configure_logging` renders those records either as
one-line text for terminals or as JSON objects for build tooling.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Final, Literal, NotRequired, TypedDict, Unpack, cast, override

from modcache.core.model_types import LogComponent, LogFormat

ROOT_LOGGER_NAME: Final[str] = "modcache"
LOG_FORMAT_ENV: Final[str] = "MODCACHE_LOG_FORMAT"
LOG_LEVEL_ENV: Final[str] = "MODCACHE_LOG_LEVEL"

_LEVELS: Final[dict[str, int]] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}
_DEFAULT_LEVEL: Final[str] = "info"

LOG_FORMATS: Final[tuple[Literal["text", "json"], ...]] = cast(
    "tuple[Literal['text', 'json'], ...]",
    tuple(member.value for member in LogFormat),
)
LOG_LEVELS: Final[tuple[Literal["debug", "info", "warning", "error"], ...]] = cast(
    "tuple[Literal['debug', 'info', 'warning', 'error'], ...]",
    tuple(_LEVELS),
)
STRUCTURED_FIELDS: Final[tuple[str, ...]] = (
    "component",
    "path",
    "key",
    "cached",
    "duration_ms",
    "counts",
    "details",
)
CHILD_LOGGERS: Final[tuple[str, ...]] = tuple(
    f"{ROOT_LOGGER_NAME}.{component}" for component in LogComponent
) + (f"{ROOT_LOGGER_NAME}.transform.registry",)


@dataclass(slots=True, frozen=True)
class LogConfig:
    """Logging configuration selected by `configure_logging`."""

    format: LogFormat
    level: int
    level_name: str


class JSONLogFormatter(logging.Formatter):
    """One JSON object per record, including any structured fields present."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({name: getattr(record, name) for name in STRUCTURED_FIELDS if hasattr(record, name)})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class TextLogFormatter(logging.Formatter):
    """``[LEVEL] message``, suffixed with the cache key when the record has one."""

    def __init__(self) -> None:
        super().__init__("[%(levelname)s] %(message)s")

    @override
    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        key = getattr(record, "key", None)
        return f"{text} [{key}]" if key else text


def _parse_level(raw: str | int) -> tuple[int, str]:
    if isinstance(raw, int):
        return raw, logging.getLevelName(raw).lower()
    name = raw.strip().lower()
    if name not in _LEVELS:
        name = _DEFAULT_LEVEL
    return _LEVELS[name], name


def _select_format(preferred: LogFormat | str | None) -> LogFormat:
    if isinstance(preferred, LogFormat):
        return preferred
    return LogFormat.from_str(preferred or os.getenv(LOG_FORMAT_ENV) or LogFormat.TEXT.value)


def configure_logging(
    log_format: LogFormat | str | None = None,
    *,
    log_level: str | int | None = None,
) -> LogConfig:
    """Install a single handler on the ``modcache`` logger.

    Args:
        log_format: ``text`` or ``json``. ``None`` reads
            ``MODCACHE_LOG_FORMAT`` and falls back to text.
        log_level: Level name or number. ``None`` reads
            ``MODCACHE_LOG_LEVEL`` and falls back to info. Unknown names
            mean info.

    Returns:
        The format and level that were applied.

    Raises:
        ValueError: If the format name is unknown.
    """
    selected_format = _select_format(log_format)
    level_value, level_name = _parse_level(
        log_level if log_level is not None else os.getenv(LOG_LEVEL_ENV) or _DEFAULT_LEVEL,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(JSONLogFormatter() if selected_format is LogFormat.JSON else TextLogFormatter())
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level_value)
    root_logger.propagate = False
    for name in CHILD_LOGGERS:
        logging.getLogger(name).setLevel(level_value)
    return LogConfig(format=selected_format, level=level_value, level_name=level_name)


class StructuredLogExtra(TypedDict):
    """Fields modcache attaches to log records through ``extra``."""

    component: LogComponent
    path: NotRequired[str]
    key: NotRequired[str]
    cached: NotRequired[bool]
    duration_ms: NotRequired[float]
    counts: NotRequired[dict[str, int]]
    details: NotRequired[dict[str, object]]


class _StructuredLogKwargs(TypedDict, total=False):
    path: str | os.PathLike[str]
    key: str
    cached: bool
    duration_ms: float
    counts: Mapping[str, int]
    details: Mapping[str, object]


def structured_extra(
    component: LogComponent,
    **kwargs: Unpack[_StructuredLogKwargs],
) -> StructuredLogExtra:
    """Build the ``extra`` mapping for a modcache log record.

    Unset and empty fields are left out so JSON output stays compact.
    """
    extra: StructuredLogExtra = {"component": component}
    if (path := kwargs.get("path")) is not None:
        extra["path"] = os.fspath(path)
    if (key := kwargs.get("key")) is not None:
        extra["key"] = str(key)
    if (cached := kwargs.get("cached")) is not None:
        extra["cached"] = bool(cached)
    if (duration := kwargs.get("duration_ms")) is not None:
        extra["duration_ms"] = round(float(duration), 3)
    if counts := kwargs.get("counts"):
        extra["counts"] = {str(name): int(value) for name, value in counts.items()}
    if details := kwargs.get("details"):
        extra["details"] = dict(details)
    return extra


__all__ = [
    "CHILD_LOGGERS",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "ROOT_LOGGER_NAME",
    "JSONLogFormatter",
    "LogConfig",
    "StructuredLogExtra",
    "TextLogFormatter",
    "configure_logging",
    "structured_extra",
]
