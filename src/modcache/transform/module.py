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

"""Parsed module representation and the import/export scanner.

The scanner understands single-line ES module statements:

- ``import x from "./dep";`` / ``import { a, b as c } from "./dep";``
- ``import * as ns from "./dep";`` / ``import "./dep";``
- ``export default <expression>;``
- ``export function f``, ``export class C``, ``export const|let|var name``
- ``export { a, b as c };``

Everything else is carried through as body text with its original line
number so formatters can emit source maps.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Final

from pydantic import BaseModel, ConfigDict, Field

from modcache._internal.exceptions import ModuleSyntaxError
from modcache.core.model_types import ModuleOrigin

type JSONValue = str | int | float | bool | None | list[JSONValue] | dict[str, JSONValue]

DEFAULT_EXPORT_LOCAL: Final[str] = "_default"

_IDENT: Final[str] = r"[A-Za-z_$][\w$]*"
_SOURCE: Final[str] = r"""(?P<quote>['"])(?P<source>[^'"]+)(?P=quote)"""
_IMPORT_DEFAULT = re.compile(rf"^import\s+(?P<default>{_IDENT})\s+from\s+{_SOURCE}\s*;?\s*$")
_IMPORT_NAMED = re.compile(
    rf"^import\s+(?:(?P<default>{_IDENT})\s*,\s*)?\{{(?P<names>[^}}]*)\}}\s*from\s+{_SOURCE}\s*;?\s*$",
)
_IMPORT_NAMESPACE = re.compile(rf"^import\s+\*\s+as\s+(?P<namespace>{_IDENT})\s+from\s+{_SOURCE}\s*;?\s*$")
_IMPORT_BARE = re.compile(rf"^import\s+{_SOURCE}\s*;?\s*$")
_EXPORT_DEFAULT = re.compile(r"^export\s+default\s+(?P<expr>.+)$")
_EXPORT_KEYWORD = re.compile(r"^export\b")
_EXPORT_DECLARATION = re.compile(
    rf"^export\s+(?P<decl>(?:async\s+)?function\*?|class|const|let|var)\s+(?P<name>{_IDENT})",
)
_EXPORT_LIST = re.compile(r"^export\s*\{(?P<names>[^}]*)\}\s*;?\s*$")
_SPECIFIER = re.compile(rf"^(?P<name>{_IDENT}|default)(?:\s+as\s+(?P<alias>{_IDENT}|default))?$")


class _Frozen(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")


class ImportBinding(_Frozen):
    """One ``imported as local`` pair of a named import."""

    imported: str
    local: str


class ImportDecl(_Frozen):
    """A single import statement.

    Attributes:
        source: Import specifier as written (``"./dep"``).
        line: 1-based source line of the statement.
        default: Local name bound to the default export, if any.
        namespace: Local name bound to the whole module namespace, if any.
        names: Named bindings in declaration order.
    """

    source: str
    line: int
    default: str | None = None
    namespace: str | None = None
    names: tuple[ImportBinding, ...] = ()


class ExportDecl(_Frozen):
    """A local binding exposed under ``exported``."""

    local: str
    exported: str


class BodyLine(_Frozen):
    """Rewritten body text paired with the source line it came from."""

    line: int
    text: str


class ModuleSyntax(_Frozen):
    """Scanner output; the snapshot cached in place of re-parsing."""

    imports: tuple[ImportDecl, ...] = ()
    exports: tuple[ExportDecl, ...] = ()
    body: tuple[BodyLine, ...] = Field(default=())


def _parse_specifiers(raw: str, *, path: Path, line: int) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for chunk in raw.split(","):
        candidate = chunk.strip()
        if not candidate:
            continue
        match = _SPECIFIER.match(candidate)
        if match is None:
            raise ModuleSyntaxError(path, line, f"invalid specifier '{candidate}'")
        name = match.group("name")
        pairs.append((name, match.group("alias") or name))
    return pairs


def _scan_import(stripped: str, *, path: Path, line: int) -> ImportDecl | None:
    if not stripped.startswith("import"):
        return None
    if match := _IMPORT_NAMED.match(stripped):
        bindings = tuple(
            ImportBinding(imported=name, local=alias)
            for name, alias in _parse_specifiers(match.group("names"), path=path, line=line)
        )
        return ImportDecl(
            source=match.group("source"),
            line=line,
            default=match.group("default"),
            names=bindings,
        )
    if match := _IMPORT_DEFAULT.match(stripped):
        return ImportDecl(source=match.group("source"), line=line, default=match.group("default"))
    if match := _IMPORT_NAMESPACE.match(stripped):
        return ImportDecl(source=match.group("source"), line=line, namespace=match.group("namespace"))
    if match := _IMPORT_BARE.match(stripped):
        return ImportDecl(source=match.group("source"), line=line)
    if stripped.startswith(("import ", "import{", "import*")):
        raise ModuleSyntaxError(path, line, "unsupported import statement")
    return None


def parse_module_source(text: str, *, path: Path) -> ModuleSyntax:
    """Scan module source text into imports, exports and rewritten body lines.

    Args:
        text: Module source.
        path: Source path, used in error messages.

    Returns:
        Immutable `ModuleSyntax` snapshot.

    Raises:
        ModuleSyntaxError: If an import/export statement is malformed.
    """
    imports: list[ImportDecl] = []
    exports: list[ExportDecl] = []
    body: list[BodyLine] = []
    for number, raw_line in enumerate(text.splitlines(), start=1):
        stripped = raw_line.strip()
        indent = raw_line[: len(raw_line) - len(raw_line.lstrip())]
        decl = _scan_import(stripped, path=path, line=number)
        if decl is not None:
            imports.append(decl)
            continue
        if not _EXPORT_KEYWORD.match(stripped):
            body.append(BodyLine(line=number, text=raw_line))
            continue
        if match := _EXPORT_LIST.match(stripped):
            exports.extend(
                ExportDecl(local=name, exported=alias)
                for name, alias in _parse_specifiers(match.group("names"), path=path, line=number)
            )
            continue
        if match := _EXPORT_DEFAULT.match(stripped):
            exports.append(ExportDecl(local=DEFAULT_EXPORT_LOCAL, exported="default"))
            body.append(
                BodyLine(line=number, text=f"{indent}var {DEFAULT_EXPORT_LOCAL} = {match.group('expr')}"),
            )
            continue
        if match := _EXPORT_DECLARATION.match(stripped):
            name = match.group("name")
            exports.append(ExportDecl(local=name, exported=name))
            body.append(BodyLine(line=number, text=indent + stripped.removeprefix("export").lstrip()))
            continue
        raise ModuleSyntaxError(path, number, "unsupported export statement")
    return ModuleSyntax(imports=tuple(imports), exports=tuple(exports), body=tuple(body))


@dataclass(slots=True, frozen=True)
class Module:
    """A loaded module.

    The same type represents both origins; ``origin`` records whether the
    syntax was scanned from source in this pass or hydrated from a cache
    snapshot. Neither path mutates the syntax afterwards.

    Attributes:
        path: Canonical source path.
        imported_path: Specifier under which the module was first requested.
        syntax: Scanned imports, exports and body.
        origin: `ModuleOrigin` tag.
    """

    path: Path
    imported_path: str
    syntax: ModuleSyntax
    origin: ModuleOrigin = ModuleOrigin.PARSED

    @classmethod
    def parse(cls, path: Path, imported_path: str, source_text: str) -> Module:
        return cls(
            path=path,
            imported_path=imported_path,
            syntax=parse_module_source(source_text, path=path),
        )

    @classmethod
    def hydrate(cls, path: Path, imported_path: str, metadata: Mapping[str, object]) -> Module:
        """Rebuild a module from a cached snapshot without reading the source."""
        return cls(
            path=path,
            imported_path=imported_path,
            syntax=ModuleSyntax.model_validate(dict(metadata)),
            origin=ModuleOrigin.HYDRATED,
        )

    @property
    def imports(self) -> tuple[ImportDecl, ...]:
        return self.syntax.imports

    @property
    def exports(self) -> tuple[ExportDecl, ...]:
        return self.syntax.exports

    def snapshot(self) -> dict[str, JSONValue]:
        """Return a JSON-compatible copy of the syntax for caching."""
        return self.syntax.model_dump(mode="json")


__all__ = [
    "DEFAULT_EXPORT_LOCAL",
    "BodyLine",
    "ExportDecl",
    "ImportBinding",
    "ImportDecl",
    "JSONValue",
    "Module",
    "ModuleSyntax",
    "parse_module_source",
]
