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

"""Cache store for compiled module artifacts and parsed module snapshots.

The store maps cache keys to `CacheEntry` records and owns a scratch
directory that holds the bytes of every cached output artifact. Each compile
pass writes into its own numbered scratch region so artifacts from different
passes never collide.
"""

from __future__ import annotations

import copy
import json
import logging
import shutil
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import TYPE_CHECKING, Final, Self, TypedDict, cast

from modcache._internal.logging_utils import structured_extra
from modcache._internal.utils import consume, file_lock
from modcache.core.model_types import LogComponent
from modcache.core.type_aliases import CacheKey, Digest, RelPath

if TYPE_CHECKING:
    from types import TracebackType

logger: logging.Logger = logging.getLogger("modcache.cache")

INDEX_FILENAME: Final[str] = "index.json"
INDEX_VERSION: Final[int] = 1
MODULE_KEY_PREFIX: Final[str] = "module:"
BUNDLE_KEY_PREFIX: Final[str] = "bundle:"
_REGION_PREFIX: Final[str] = "pass-"


def module_key(rel_path: RelPath | str) -> CacheKey:
    """Return the cache key for one module in directory mode."""
    return CacheKey(f"{MODULE_KEY_PREFIX}{PurePosixPath(rel_path).as_posix()}")


def bundle_key(output_name: str) -> CacheKey:
    """Return the cache key for a bundle named ``output_name``."""
    return CacheKey(f"{BUNDLE_KEY_PREFIX}{output_name}")


def _empty_artifacts() -> tuple[RelPath, ...]:
    return ()


def _freeze(value: object) -> object:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list | tuple):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: object) -> object:
    if isinstance(value, Mapping):
        return {str(key): _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple | list):
        return [_thaw(item) for item in value]
    return value


@dataclass(slots=True, frozen=True)
class CacheEntry:
    """Last-known-good compiled state of one cacheable unit.

    Attributes:
        key: Module key (directory mode) or bundle key (bundle mode).
        content_hash: Digest of the exact inputs that produced this entry.
        produced_metadata: Read-only parse snapshot handed back to the
            transformer in place of re-parsing. ``None`` for bundles.
        output_artifacts: Relative output paths owned by this entry, in order.
        scratch_location: Scratch region holding the artifact bytes, or
            ``None`` when the entry carries no artifacts.
        settings_fingerprint: Digest of the settings that produced the
            artifacts. Artifacts are only reused under matching settings.
    """

    key: CacheKey
    content_hash: Digest
    produced_metadata: Mapping[str, object] | None = None
    output_artifacts: tuple[RelPath, ...] = field(default_factory=_empty_artifacts)
    scratch_location: Path | None = None
    settings_fingerprint: Digest | None = None

    def __post_init__(self) -> None:
        if self.produced_metadata is not None and not isinstance(
            self.produced_metadata,
            MappingProxyType,
        ):
            frozen = _freeze(copy.deepcopy(dict(self.produced_metadata)))
            object.__setattr__(self, "produced_metadata", frozen)
        object.__setattr__(self, "output_artifacts", tuple(self.output_artifacts))

    def metadata_dict(self) -> dict[str, object] | None:
        """Return a mutable deep copy of the metadata snapshot."""
        if self.produced_metadata is None:
            return None
        return cast("dict[str, object]", _thaw(self.produced_metadata))


class _EntryJson(TypedDict, total=False):
    content_hash: str
    produced_metadata: dict[str, object] | None
    output_artifacts: list[str]
    scratch_region: str | None
    settings_fingerprint: str | None


class _IndexJson(TypedDict, total=False):
    version: int
    fingerprint: str
    next_region: int
    entries: dict[str, _EntryJson]


class CacheStore:
    """Key to `CacheEntry` mapping plus a private scratch area.

    A store is owned by one build pipeline. It is not safe for concurrent
    mutation by simultaneous builds. When no ``root`` is given the store
    allocates a temporary scratch root and deletes it on `close`; a
    caller-supplied root is kept.

    Args:
        root: Directory for scratch regions and the persisted index.
        persist: Load the index on open and write it on `save`.
        fingerprint: Settings signature recorded in the persisted index. An
            index saved under a different fingerprint is discarded on load.
            ``None`` accepts any index and keeps its recorded fingerprint.
    """

    def __init__(
        self,
        root: Path | None = None,
        *,
        persist: bool = False,
        fingerprint: str | None = "",
    ) -> None:
        super().__init__()
        self._owns_root = root is None
        self.root: Path = (
            Path(tempfile.mkdtemp(prefix="modcache-")) if root is None else Path(root).resolve()
        )
        self.persist = persist and not self._owns_root
        self.fingerprint = fingerprint
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._next_region = 0
        self._dirty = False
        self._closed = False
        self.root.mkdir(parents=True, exist_ok=True)
        if self.persist:
            self._load()

    @property
    def index_path(self) -> Path:
        return self.root / INDEX_FILENAME

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[CacheKey]:
        return sorted(self._entries)

    def lookup(self, key: CacheKey) -> CacheEntry | None:
        """Return the entry stored under ``key`` without validating it."""
        return self._entries.get(key)

    def put(self, entry: CacheEntry) -> None:
        """Insert or overwrite the entry stored under ``entry.key``."""
        self._entries[entry.key] = entry
        self._dirty = True

    def allocate_scratch_region(self) -> Path:
        """Create and return a fresh scratch directory for one compile pass."""
        while True:
            region = self.root / f"{_REGION_PREFIX}{self._next_region}"
            self._next_region += 1
            if not region.exists():
                break
        region.mkdir(parents=True)
        self._dirty = True
        logger.debug(
            "Allocated scratch region %s",
            region.name,
            extra=structured_extra(LogComponent.CACHE, path=region),
        )
        return region

    def artifact_path(self, entry: CacheEntry, artifact: RelPath | str) -> Path:
        if entry.scratch_location is None:
            message = f"Cache entry '{entry.key}' has no scratch location"
            raise ValueError(message)
        return entry.scratch_location / artifact

    def has_artifacts(self, entry: CacheEntry) -> bool:
        """Return whether every artifact recorded on ``entry`` exists on disk."""
        if not entry.output_artifacts or entry.scratch_location is None:
            return False
        return all(self.artifact_path(entry, artifact).is_file() for artifact in entry.output_artifacts)

    def referenced_regions(self) -> set[Path]:
        return {
            entry.scratch_location
            for entry in self._entries.values()
            if entry.scratch_location is not None
        }

    def prune_regions(self) -> int:
        """Delete scratch regions that no entry references.

        Returns:
            Number of regions removed.
        """
        referenced = {path.resolve() for path in self.referenced_regions()}
        removed = 0
        for region in sorted(self.root.glob(f"{_REGION_PREFIX}*")):
            if not region.is_dir() or region.resolve() in referenced:
                continue
            shutil.rmtree(region)
            removed += 1
        if removed:
            logger.debug(
                "Pruned %d unreferenced scratch region(s)",
                removed,
                extra=structured_extra(LogComponent.CACHE, path=self.root, counts={"pruned": removed}),
            )
        return removed

    def clear(self) -> None:
        """Drop every entry and all scratch bytes."""
        self._entries.clear()
        for region in self.root.glob(f"{_REGION_PREFIX}*"):
            if region.is_dir():
                shutil.rmtree(region)
        if self.index_path.exists():
            self.index_path.unlink()
        self._next_region = 0
        self._dirty = True

    def close(self) -> None:
        """Persist the index when enabled and tear down an owned scratch root."""
        if self._closed:
            return
        self._closed = True
        if self.persist:
            self.save()
        if self._owns_root:
            shutil.rmtree(self.root, ignore_errors=True)

    def save(self) -> None:
        if not self.persist or not self._dirty:
            return
        payload: _IndexJson = {
            "version": INDEX_VERSION,
            "fingerprint": self.fingerprint or "",
            "next_region": self._next_region,
            "entries": {
                str(key): self._entry_to_json(entry) for key, entry in sorted(self._entries.items())
            },
        }
        tmp_path = self.index_path.with_suffix(".tmp")
        with file_lock(self.index_path):
            consume(tmp_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8"))
            consume(tmp_path.replace(self.index_path))
        self._dirty = False

    def _entry_to_json(self, entry: CacheEntry) -> _EntryJson:
        region: str | None = None
        if entry.scratch_location is not None:
            try:
                region = entry.scratch_location.resolve().relative_to(self.root).as_posix()
            except ValueError:
                region = entry.scratch_location.as_posix()
        return {
            "content_hash": str(entry.content_hash),
            "produced_metadata": entry.metadata_dict(),
            "output_artifacts": [str(artifact) for artifact in entry.output_artifacts],
            "scratch_region": region,
            "settings_fingerprint": entry.settings_fingerprint,
        }

    def _load(self) -> None:
        if not self.index_path.exists():
            return
        try:
            raw = json.loads(self.index_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Ignoring unreadable cache index %s: %s",
                self.index_path,
                exc,
                extra=structured_extra(LogComponent.CACHE, path=self.index_path),
            )
            return
        if not isinstance(raw, dict):
            return
        payload = cast("_IndexJson", raw)
        stored_fingerprint = str(payload.get("fingerprint", ""))
        if payload.get("version") != INDEX_VERSION or (
            self.fingerprint is not None and stored_fingerprint != self.fingerprint
        ):
            logger.info(
                "Discarding cache index built with different settings",
                extra=structured_extra(LogComponent.CACHE, path=self.index_path),
            )
            return
        if self.fingerprint is None:
            self.fingerprint = stored_fingerprint
        self._next_region = int(payload.get("next_region", 0))
        for key_str, entry_json in (payload.get("entries") or {}).items():
            region = entry_json.get("scratch_region")
            scratch = None if region is None else (self.root / region)
            metadata = entry_json.get("produced_metadata")
            producer = entry_json.get("settings_fingerprint")
            self._entries[CacheKey(key_str)] = CacheEntry(
                key=CacheKey(key_str),
                content_hash=Digest(str(entry_json.get("content_hash", ""))),
                produced_metadata=metadata if isinstance(metadata, dict) else None,
                output_artifacts=tuple(RelPath(str(item)) for item in entry_json.get("output_artifacts", [])),
                scratch_location=scratch,
                settings_fingerprint=None if producer is None else Digest(str(producer)),
            )
        logger.debug(
            "Loaded %d cache entries",
            len(self._entries),
            extra=structured_extra(LogComponent.CACHE, path=self.index_path),
        )


__all__ = [
    "BUNDLE_KEY_PREFIX",
    "MODULE_KEY_PREFIX",
    "CacheEntry",
    "CacheStore",
    "bundle_key",
    "module_key",
]
