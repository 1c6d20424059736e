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

"""Module container: loads modules through a resolver chain and writes output.

The container owns the in-pass module registry. Every import is resolved by
asking each resolver in order; the first non-``None`` answer wins. Modules
are registered before their own imports are visited, so import cycles
terminate.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Protocol

from modcache._internal.exceptions import ResolutionError
from modcache._internal.logging_utils import structured_extra
from modcache._internal.utils import consume
from modcache.core.model_types import LogComponent
from modcache.core.type_aliases import ModuleId, RelPath

from .module import Module
from .sourcemap import build_source_map

if TYPE_CHECKING:
    from .formatters import Formatter, OutputLine

logger: logging.Logger = logging.getLogger("modcache.transform")


class Resolver(Protocol):
    """Turns an import specifier into a loaded module, or declines with ``None``."""

    def resolve_module(
        self,
        imported_path: str,
        from_module: Module | None,
        container: Container,
    ) -> Module | None: ...


def resolve_import_path(
    imported_path: str,
    from_module: Module | None,
    root: Path,
    extension: str,
) -> Path:
    """Return the canonical source path for an import specifier.

    Relative specifiers (``./``, ``../``) resolve against the importing
    module's directory when one is given; everything else resolves against
    ``root``. ``extension`` is appended when the final suffix differs.
    """
    base = root
    if imported_path.startswith(".") and from_module is not None:
        base = from_module.path.parent
    resolved = Path(os.path.normpath(base / imported_path))
    if resolved.suffix != extension:
        resolved = resolved.with_name(resolved.name + extension)
    return resolved


class FileResolver:
    """Reads and scans module source from one or more root directories."""

    def __init__(self, roots: Sequence[Path]) -> None:
        super().__init__()
        self.roots = [Path(root) for root in roots]

    def resolve_module(
        self,
        imported_path: str,
        from_module: Module | None,
        container: Container,
    ) -> Module | None:
        if imported_path.startswith(".") and from_module is not None:
            candidates = [resolve_import_path(imported_path, from_module, from_module.path.parent, container.extension)]
        else:
            candidates = [resolve_import_path(imported_path, None, root, container.extension) for root in self.roots]
        for candidate in candidates:
            live = container.get_cached_module(candidate)
            if live is not None:
                return live
            if candidate.is_file():
                return self.load(candidate, imported_path)
        return None

    def load(self, path: Path, imported_path: str) -> Module:
        return Module.parse(path, imported_path, path.read_text(encoding="utf-8"))


class Container:
    """In-pass module registry configured with a formatter and resolver chain.

    Args:
        formatter: Output formatter.
        resolvers: Resolvers consulted in order for every import.
        source_dir: Root of the module tree; output paths and module ids are
            computed relative to it.
        base_path: Directory source-map ``sources`` are relative to.
            Defaults to ``source_dir``.
        source_root: ``sourceRoot`` written into source maps.
        extension: Module file extension.
        source_maps: Emit a ``.map`` file next to every output.
    """

    def __init__(
        self,
        *,
        formatter: Formatter,
        resolvers: Sequence[Resolver],
        source_dir: Path,
        base_path: Path | None = None,
        source_root: str = "/",
        extension: str = ".js",
        source_maps: bool = False,
    ) -> None:
        super().__init__()
        self.formatter = formatter
        self.resolvers = list(resolvers)
        self.source_dir = source_dir
        self.base_path = base_path if base_path is not None else source_dir
        self.source_root = source_root
        self.extension = extension
        self.source_maps = source_maps
        self._modules: dict[Path, Module] = {}
        self._edges: dict[Path, dict[str, Path]] = {}

    @property
    def modules(self) -> tuple[Module, ...]:
        """Modules in load order."""
        return tuple(self._modules.values())

    def get_cached_module(self, path: Path) -> Module | None:
        return self._modules.get(path)

    def get_module(self, imported_path: str, from_module: Module | None = None) -> Module:
        """Load ``imported_path`` and, transitively, everything it imports.

        Raises:
            ResolutionError: If no resolver can supply the module or one of
                its imports, or a resolved module lies outside ``source_dir``.
        """
        module: Module | None = None
        for resolver in self.resolvers:
            module = resolver.resolve_module(imported_path, from_module, self)
            if module is not None:
                break
        importer = from_module.path if from_module is not None else None
        if module is None:
            raise ResolutionError(imported_path, importer)
        if not module.path.is_relative_to(self.source_dir):
            raise ResolutionError(imported_path, importer, reason=f"{module.path} is outside {self.source_dir}")
        registered = self._modules.get(module.path)
        if registered is not None:
            return registered
        self._modules[module.path] = module
        logger.debug(
            "Loaded %s (%s)",
            module.path,
            module.origin,
            extra=structured_extra(LogComponent.TRANSFORM, path=module.path),
        )
        edges = self._edges.setdefault(module.path, {})
        for decl in module.imports:
            edges[decl.source] = self.get_module(decl.source, module).path
        return module

    def dependency(self, module: Module, imported_path: str) -> Module:
        return self._modules[self._edges[module.path][imported_path]]

    def dependencies(self, module: Module) -> list[Module]:
        return [self._modules[path] for path in self._edges.get(module.path, {}).values()]

    def ordered_modules(self) -> list[Module]:
        """Return every loaded module with dependencies before dependents."""
        ordered: list[Module] = []
        visited: set[Path] = set()

        def visit(module: Module) -> None:
            if module.path in visited:
                return
            visited.add(module.path)
            for dependency in self.dependencies(module):
                visit(dependency)
            ordered.append(module)

        for module in self._modules.values():
            visit(module)
        return ordered

    def relative_output(self, module: Module) -> RelPath:
        return RelPath(module.path.relative_to(self.source_dir).as_posix())

    def module_id(self, module: Module) -> ModuleId:
        rel = PurePosixPath(self.relative_output(module))
        return ModuleId(rel.with_suffix("").as_posix() if rel.suffix == self.extension else rel.as_posix())

    def relative_specifier(self, module: Module, imported_path: str) -> str:
        """Return a ``./``-relative specifier from ``module`` to the import target."""
        target = self.dependency(module, imported_path).path
        rel = PurePosixPath(os.path.relpath(target, module.path.parent).replace(os.sep, "/"))
        if rel.suffix == self.extension:
            rel = rel.with_suffix("")
        text = rel.as_posix()
        return text if text.startswith("../") else f"./{text}"

    def _source_name(self, module: Module) -> str:
        return Path(os.path.relpath(module.path, self.base_path)).as_posix()

    def _emit(self, target: Path, lines: list[OutputLine]) -> list[Path]:
        target.parent.mkdir(parents=True, exist_ok=True)
        text_lines = [line.text for line in lines]
        written = [target]
        if self.source_maps:
            map_path = target.with_name(f"{target.name}.map")
            source_map = build_source_map(
                file=target.name,
                lines=lines,
                source_name=self._source_name,
                source_root=self.source_root,
            )
            text_lines.append(f"//# sourceMappingURL={map_path.name}")
            consume(map_path.write_text(json.dumps(source_map) + "\n", encoding="utf-8"))
            written.append(map_path)
        consume(target.write_text("\n".join(text_lines) + "\n", encoding="utf-8"))
        return written

    def write_directory(self, out_dir: Path) -> dict[Path, tuple[RelPath, ...]]:
        """Write one output per loaded module under ``out_dir``.

        Returns:
            Artifacts (relative to ``out_dir``) keyed by module source path.
        """
        artifacts: dict[Path, tuple[RelPath, ...]] = {}
        for module in self.modules:
            target = out_dir / self.relative_output(module)
            written = self._emit(target, self.formatter.render_module(module, self))
            artifacts[module.path] = tuple(RelPath(path.relative_to(out_dir).as_posix()) for path in written)
        return artifacts

    def write_bundle(self, out_file: Path) -> tuple[RelPath, ...]:
        """Write every loaded module into the single file ``out_file``.

        Returns:
            Artifact names relative to ``out_file``'s directory.
        """
        lines = self.formatter.render_bundle(self.ordered_modules(), self)
        written = self._emit(out_file, lines)
        return tuple(RelPath(path.name) for path in written)


__all__ = ["Container", "FileResolver", "Resolver", "resolve_import_path"]
