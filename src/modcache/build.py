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

"""Incremental build orchestration.

A build walks the source tree once, copies passthrough files, decides which
cacheable units are still valid, runs the transformer at most once over the
units that are not, and assembles the destination from cached and fresh
artifacts.

Two output shapes share one cache store:

- Directory output keeps one entry per module (``module:<path>``) and
  invalidates per file.
- File output keeps one entry per bundle (``bundle:<name>``) keyed by an
  aggregate digest over every module, so any change regenerates the bundle.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Self

from modcache._internal.exceptions import (
    BuildFailedError,
    HashingError,
    ModcacheError,
    ModcacheValidationError,
    TransformerError,
)
from modcache._internal.logging_utils import structured_extra
from modcache.cache import CacheEntry, CacheStore, bundle_key, module_key
from modcache.config.models import BuildSettings
from modcache.core.model_types import LogComponent, ModuleOrigin, OutputKind
from modcache.core.type_aliases import CacheKey, Digest, RelPath
from modcache.hashing import combine, hash_of, hash_text
from modcache.materialize import Materializer
from modcache.resolution import CacheResolver
from modcache.transform.container import Container, FileResolver

if TYPE_CHECKING:
    from types import TracebackType

    from modcache.transform.container import Resolver
    from modcache.transform.module import Module

logger: logging.Logger = logging.getLogger("modcache.build")


@dataclass(slots=True, frozen=True)
class SourceTreeSnapshot:
    """Files found under the source root in one build.

    Attributes:
        modules: Source-relative paths of module files, sorted.
        passthrough: Source-relative paths of every other file, sorted.
        dangling: Source-relative paths of links whose target is missing.
    """

    modules: tuple[RelPath, ...]
    passthrough: tuple[RelPath, ...]
    dangling: tuple[RelPath, ...] = ()


def scan_source_tree(source_dir: Path, extension: str) -> SourceTreeSnapshot:
    """Enumerate ``source_dir`` once and classify its files.

    Only regular files (or links to them) become entries, so a directory named
    like a module is never treated as one. Symlinked directories are descended
    into under their link name; a link that leads back to one of its own
    ancestors is skipped so cycles terminate.
    """
    modules: list[RelPath] = []
    passthrough: list[RelPath] = []
    dangling: list[RelPath] = []
    ancestors: dict[str, frozenset[Path]] = {str(source_dir): frozenset({source_dir.resolve()})}
    for dirpath, dirnames, filenames in os.walk(source_dir, followlinks=True):
        current = Path(dirpath)
        seen = ancestors.pop(dirpath)
        descend: list[str] = []
        for name in sorted(dirnames):
            real = (current / name).resolve()
            if real in seen:
                logger.debug(
                    "Not descending into %s: link cycle",
                    current / name,
                    extra=structured_extra(LogComponent.BUILD, path=current / name),
                )
                continue
            ancestors[os.path.join(dirpath, name)] = seen | {real}
            descend.append(name)
        dirnames[:] = descend
        for name in sorted(filenames):
            path = current / name
            rel = RelPath(path.relative_to(source_dir).as_posix())
            if path.is_file():
                if path.suffix == extension:
                    modules.append(rel)
                else:
                    passthrough.append(rel)
            elif path.is_symlink() and not path.exists():
                dangling.append(rel)
    return SourceTreeSnapshot(
        modules=tuple(sorted(modules)),
        passthrough=tuple(sorted(passthrough)),
        dangling=tuple(sorted(dangling)),
    )


def resolve_output_kind(settings: BuildSettings, output_path: Path) -> OutputKind:
    """Return the output shape for ``output_path``.

    ``auto`` infers a file when the output carries the module extension. An
    inferred file whose path already exists as a directory is reported but
    not overridden.
    """
    if settings.output_kind is not OutputKind.AUTO:
        return settings.output_kind
    kind = OutputKind.FILE if output_path.suffix == settings.extension else OutputKind.DIRECTORY
    if kind is OutputKind.FILE and output_path.is_dir():
        logger.warning(
            "Output %s ends in %s but is an existing directory; building a single file. "
            "Set output_kind explicitly to silence this warning.",
            output_path,
            settings.extension,
            extra=structured_extra(LogComponent.BUILD, path=output_path),
        )
    return kind


@dataclass(slots=True)
class BuildReport:
    """Summary of one build.

    Attributes:
        output_kind: Output shape that was built.
        output_path: Destination file or directory for compiled output.
        compiled: Cache keys produced by the transformer in this build.
        reused: Cache keys served from the cache without compiling.
        hydrated: Modules the transformer visited from cached snapshots.
        passthrough: Number of non-module files copied.
        transformer_invocations: Transformer passes run (zero or one).
        failures: Per-unit failure messages keyed by source-relative path.
        duration_ms: Wall-clock build time.
    """

    output_kind: OutputKind
    output_path: Path
    compiled: list[CacheKey] = field(default_factory=list)
    reused: list[CacheKey] = field(default_factory=list)
    hydrated: list[RelPath] = field(default_factory=list)
    passthrough: int = 0
    transformer_invocations: int = 0
    failures: dict[RelPath, str] = field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(slots=True)
class _CompiledPass:
    region: Path
    modules: tuple[Module, ...]
    module_artifacts: dict[Path, tuple[RelPath, ...]]
    bundle_artifacts: tuple[RelPath, ...]


class ModuleCompiler:
    """Build pipeline owning one cache store across repeated builds.

    Args:
        settings: Build settings. Defaults to `BuildSettings()`.
        store: Cache store to use. When omitted the compiler creates one from
            ``settings.cache_dir`` and ``settings.persist`` and closes it on
            `close`.

    With the ``symlink`` materialize strategy the destination links into the
    scratch area, so the links are only valid while the store's root exists.

    A store may be shared between compilers. Every entry records
    `BuildSettings.artifact_fingerprint`, and artifacts are only reused by a
    compiler whose settings produce the same bytes.
    """

    def __init__(self, settings: BuildSettings | None = None, store: CacheStore | None = None) -> None:
        super().__init__()
        self.settings = settings if settings is not None else BuildSettings()
        self._owns_store = store is None
        self.store = (
            store
            if store is not None
            else CacheStore(
                self.settings.cache_dir,
                persist=self.settings.persist,
                fingerprint=self.settings.fingerprint(),
            )
        )
        self.materializer = Materializer(self.store, self.settings.materialize)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Reclaim stale scratch regions and close an owned store."""
        if not self._owns_store:
            return
        if self.store.persist:
            _ = self.store.prune_regions()
        self.store.close()

    def build(self, source_dir: Path, dest_dir: Path) -> BuildReport:
        """Build ``source_dir`` into ``dest_dir``.

        Returns:
            BuildReport: What was compiled, reused and copied.

        Raises:
            ResolutionError: If an import cannot be resolved.
            HashingError: If a module cannot be hashed in file output.
            TransformerError: If the transformer fails.
            BuildFailedError: If any module failed in directory output, or a
                source link is dangling. Healthy units are still materialized.
        """
        started = time.perf_counter()
        source_dir = Path(source_dir).resolve()
        dest_dir = Path(dest_dir).resolve()
        if not source_dir.is_dir():
            message = f"Source directory {source_dir} does not exist"
            raise ModcacheValidationError(message)

        snapshot = scan_source_tree(source_dir, self.settings.extension)
        output_path = dest_dir / self.settings.output
        kind = resolve_output_kind(self.settings, output_path)
        report = BuildReport(output_kind=kind, output_path=output_path)
        for rel in snapshot.dangling:
            error = HashingError(source_dir / rel, "dangling symbolic link")
            if kind is OutputKind.FILE and error.path.suffix == self.settings.extension:
                raise error
            logger.warning(
                "Skipping %s: %s",
                rel,
                error.reason,
                extra=structured_extra(LogComponent.BUILD, path=rel),
            )
            report.failures[rel] = str(error)

        dest_dir.mkdir(parents=True, exist_ok=True)
        for rel in snapshot.passthrough:
            _ = self.materializer.copy_passthrough(source_dir, dest_dir, rel)
        report.passthrough = len(snapshot.passthrough)

        if kind is OutputKind.FILE:
            self._build_file(source_dir, output_path, snapshot, report)
        else:
            self._build_directory(source_dir, output_path, snapshot, report)

        report.duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Built %s: %d compiled, %d reused, %d passthrough",
            output_path,
            len(report.compiled),
            len(report.reused),
            report.passthrough,
            extra=structured_extra(
                LogComponent.BUILD,
                path=output_path,
                duration_ms=report.duration_ms,
                counts={
                    "compiled": len(report.compiled),
                    "reused": len(report.reused),
                    "hydrated": len(report.hydrated),
                    "passthrough": report.passthrough,
                    "failures": len(report.failures),
                },
            ),
        )
        if report.failures:
            raise BuildFailedError(report.failures)
        return report

    def _build_directory(
        self,
        source_dir: Path,
        output_dir: Path,
        snapshot: SourceTreeSnapshot,
        report: BuildReport,
    ) -> None:
        digests: dict[RelPath, Digest] = {}
        reusable: list[CacheEntry] = []
        queue: list[RelPath] = []
        for rel in snapshot.modules:
            try:
                digest = hash_of(source_dir / rel)
            except HashingError as exc:
                logger.warning(
                    "Skipping %s: %s",
                    rel,
                    exc.reason,
                    extra=structured_extra(LogComponent.BUILD, path=rel),
                )
                report.failures[rel] = str(exc)
                continue
            digests[rel] = digest
            entry = self._valid_entry(module_key(rel), digest)
            if entry is None:
                queue.append(rel)
            else:
                reusable.append(entry)

        placements = {entry.key: entry for entry in reusable}
        compiled = self._compile(source_dir, queue, digests, report)
        if compiled is not None:
            for module in compiled.modules:
                artifacts = compiled.module_artifacts.get(module.path, ())
                entry = self._refresh_module_entry(source_dir, module, digests, compiled.region, artifacts)
                if entry is not None and entry.output_artifacts:
                    placements[entry.key] = entry
            report.compiled = [module_key(rel) for rel in queue]

        report.reused = [entry.key for entry in reusable]
        for entry in placements.values():
            _ = self.materializer.place(entry, output_dir)

    def _build_file(
        self,
        source_dir: Path,
        output_path: Path,
        snapshot: SourceTreeSnapshot,
        report: BuildReport,
    ) -> None:
        if output_path.name in {"", ".", ".."}:
            message = f"File output needs a file name, got '{self.settings.output}'"
            raise ModcacheValidationError(message)
        digests = {rel: hash_of(source_dir / rel) for rel in snapshot.modules}
        aggregate = combine(*(combine(hash_text(rel), digests[rel]) for rel in snapshot.modules))
        key = bundle_key(output_path.name)

        entry = self._valid_entry(key, aggregate)
        if entry is not None:
            report.reused = [key]
        else:
            compiled = self._compile(source_dir, list(snapshot.modules), digests, report, bundle_name=output_path.name)
            if compiled is None:
                return
            for module in compiled.modules:
                _ = self._refresh_module_entry(source_dir, module, digests, compiled.region, ())
            entry = CacheEntry(
                key=key,
                content_hash=aggregate,
                output_artifacts=compiled.bundle_artifacts,
                scratch_location=compiled.region,
                settings_fingerprint=self.settings.artifact_fingerprint(),
            )
            self.store.put(entry)
            report.compiled = [key]
        _ = self.materializer.place(entry, output_path.parent)

    def _valid_entry(self, key: CacheKey, digest: Digest) -> CacheEntry | None:
        entry = self.store.lookup(key)
        if entry is None or entry.content_hash != digest or not entry.output_artifacts:
            return None
        if entry.settings_fingerprint != self.settings.artifact_fingerprint():
            logger.debug(
                "Cache entry %s was built with different settings; recompiling",
                key,
                extra=structured_extra(LogComponent.CACHE, key=key),
            )
            return None
        if not self.store.has_artifacts(entry):
            logger.warning(
                "Cache entry %s is missing scratch artifacts; recompiling",
                key,
                extra=structured_extra(LogComponent.CACHE, key=key, path=entry.scratch_location),
            )
            return None
        logger.debug("Reusing %s", key, extra=structured_extra(LogComponent.BUILD, key=key, cached=True))
        return entry

    def _resolvers(self, source_dir: Path) -> list[Resolver]:
        if self.settings.resolvers is not None:
            return list(self.settings.resolvers)
        return [FileResolver([source_dir])]

    def _compile(
        self,
        source_dir: Path,
        queue: list[RelPath],
        digests: dict[RelPath, Digest],
        report: BuildReport,
        *,
        bundle_name: str | None = None,
    ) -> _CompiledPass | None:
        if not queue:
            return None
        region = self.store.allocate_scratch_region()
        container = Container(
            formatter=self.settings.formatter,
            resolvers=[CacheResolver(self.store, source_dir, known_digests=digests), *self._resolvers(source_dir)],
            source_dir=source_dir,
            base_path=self.settings.base_path if self.settings.base_path is not None else source_dir,
            source_root=self.settings.source_root,
            extension=self.settings.extension,
            source_maps=self.settings.source_maps,
        )
        report.transformer_invocations += 1
        started = time.perf_counter()
        module_artifacts: dict[Path, tuple[RelPath, ...]] = {}
        bundle_artifacts: tuple[RelPath, ...] = ()
        try:
            for rel in queue:
                _ = container.get_module(rel)
            if bundle_name is None:
                module_artifacts = container.write_directory(region)
            else:
                bundle_artifacts = container.write_bundle(region / bundle_name)
        except ModcacheError:
            shutil.rmtree(region, ignore_errors=True)
            raise
        except Exception as exc:  # noqa: BLE001  # transformer is opaque
            shutil.rmtree(region, ignore_errors=True)
            message = f"Transformer failed on pass {region.name}: {exc}"
            raise TransformerError(message) from exc

        report.hydrated = sorted(
            RelPath(container.relative_output(module))
            for module in container.modules
            if module.origin is ModuleOrigin.HYDRATED
        )
        logger.debug(
            "Compiled %d module(s) into %s",
            len(queue),
            region.name,
            extra=structured_extra(
                LogComponent.TRANSFORM,
                path=region,
                duration_ms=(time.perf_counter() - started) * 1000,
                counts={"queued": len(queue), "visited": len(container.modules), "hydrated": len(report.hydrated)},
            ),
        )
        return _CompiledPass(
            region=region,
            modules=container.modules,
            module_artifacts=module_artifacts,
            bundle_artifacts=bundle_artifacts,
        )

    def _refresh_module_entry(
        self,
        source_dir: Path,
        module: Module,
        digests: dict[RelPath, Digest],
        region: Path,
        artifacts: tuple[RelPath, ...],
    ) -> CacheEntry | None:
        try:
            rel = RelPath(module.path.relative_to(source_dir).as_posix())
        except ValueError:
            return None
        digest = digests.get(rel)
        if digest is None:
            try:
                digest = hash_of(module.path)
            except HashingError:
                return None
        producer = self.settings.artifact_fingerprint()
        scratch = region if artifacts else None
        if not artifacts:
            existing = self.store.lookup(module_key(rel))
            if (
                existing is not None
                and existing.content_hash == digest
                and existing.settings_fingerprint == producer
                and self.store.has_artifacts(existing)
            ):
                # Bundle passes emit no per-module files; keep the last ones.
                artifacts, scratch = existing.output_artifacts, existing.scratch_location
        entry = CacheEntry(
            key=module_key(rel),
            content_hash=digest,
            produced_metadata=module.snapshot(),
            output_artifacts=artifacts,
            scratch_location=scratch,
            settings_fingerprint=producer,
        )
        self.store.put(entry)
        return entry


__all__ = [
    "BuildReport",
    "ModuleCompiler",
    "SourceTreeSnapshot",
    "resolve_output_kind",
    "scan_source_tree",
]
