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

"""Output formatters for the reference transformer.

A formatter turns loaded modules into generated lines. Every line records
the module and source line it came from (when it has one) so the container
can emit source maps without knowing the output grammar.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

from modcache.core.model_types import FormatterName

if TYPE_CHECKING:
    from .container import Container
    from .module import ImportDecl, Module

_INDENT: Final[str] = "  "


@dataclass(slots=True, frozen=True)
class OutputLine:
    text: str
    module: Module | None = None
    line: int | None = None

    def indented(self, prefix: str) -> OutputLine:
        text = f"{prefix}{self.text}" if self.text else self.text
        return OutputLine(text=text, module=self.module, line=self.line)


@runtime_checkable
class Formatter(Protocol):
    """Capability interface every output formatter implements."""

    name: str

    def render_module(self, module: Module, container: Container) -> list[OutputLine]:
        """Render one module as a standalone output file."""
        ...

    def render_bundle(self, modules: Sequence[Module], container: Container) -> list[OutputLine]:
        """Render modules (dependencies first) as one fused output file."""
        ...


def _member(target: str, name: str) -> str:
    return f"{target}[{json.dumps(name)}]" if name == "default" else f"{target}.{name}"


def _import_lines(module: Module, lookup: Callable[[ImportDecl], str]) -> list[OutputLine]:
    lines: list[OutputLine] = []
    for decl in module.imports:
        target = lookup(decl)
        if not decl.default and not decl.namespace and not decl.names:
            lines.append(OutputLine(f"{target};", module, decl.line))
            continue
        if decl.namespace:
            lines.append(OutputLine(f"var {decl.namespace} = {target};", module, decl.line))
        if decl.default:
            lines.append(OutputLine(f"var {decl.default} = {_member(target, 'default')};", module, decl.line))
        lines.extend(
            OutputLine(f"var {binding.local} = {_member(target, binding.imported)};", module, decl.line)
            for binding in decl.names
        )
    return lines


def _body_lines(module: Module) -> list[OutputLine]:
    return [OutputLine(item.text, module, item.line) for item in module.syntax.body]


def _export_lines(module: Module, target: str = "exports") -> list[OutputLine]:
    return [OutputLine(f"{_member(target, decl.exported)} = {decl.local};") for decl in module.exports]


def _module_lines(module: Module, lookup: Callable[[ImportDecl], str]) -> list[OutputLine]:
    return [*_import_lines(module, lookup), *_body_lines(module), *_export_lines(module)]


class CommonJSFormatter:
    """CommonJS output: ``require`` for imports, ``exports`` for exports."""

    name: str = FormatterName.COMMONJS.value

    def render_module(self, module: Module, container: Container) -> list[OutputLine]:
        def lookup(decl: ImportDecl) -> str:
            return f"require({json.dumps(container.relative_specifier(module, decl.source))})"

        return [OutputLine('"use strict";'), *_module_lines(module, lookup)]

    def render_bundle(self, modules: Sequence[Module], container: Container) -> list[OutputLine]:
        lines = [
            OutputLine("(function () {"),
            OutputLine('  "use strict";'),
            OutputLine("  var __registry__ = {}, __factories__ = {};"),
            OutputLine("  function __require__(id) {"),
            OutputLine("    if (!(id in __registry__)) {"),
            OutputLine("      __factories__[id](__registry__[id] = {});"),
            OutputLine("    }"),
            OutputLine("    return __registry__[id];"),
            OutputLine("  }"),
        ]
        for module in modules:

            def lookup(decl: ImportDecl, current: Module = module) -> str:
                dependency = container.dependency(current, decl.source)
                return f"__require__({json.dumps(container.module_id(dependency))})"

            module_id = json.dumps(container.module_id(module))
            lines.append(OutputLine(f"  __factories__[{module_id}] = function (exports) {{"))
            lines.extend(line.indented(_INDENT * 2) for line in _module_lines(module, lookup))
            lines.append(OutputLine("  };"))
        lines.extend(OutputLine(f"  __require__({json.dumps(container.module_id(module))});") for module in modules)
        lines.append(OutputLine("})();"))
        return lines


class BundleFormatter:
    """Closure-per-module output sharing one ``__modules__`` namespace table."""

    name: str = FormatterName.BUNDLE.value

    @staticmethod
    def _closure(module: Module, container: Container, indent: str) -> list[OutputLine]:
        def lookup(decl: ImportDecl) -> str:
            dependency = container.dependency(module, decl.source)
            return f"__modules__[{json.dumps(container.module_id(dependency))}]"

        module_id = json.dumps(container.module_id(module))
        return [
            OutputLine(f"{indent}(function (exports) {{"),
            *(line.indented(indent + _INDENT) for line in _module_lines(module, lookup)),
            OutputLine(f"{indent}}})(__modules__[{module_id}] = __modules__[{module_id}] || {{}});"),
        ]

    def render_module(self, module: Module, container: Container) -> list[OutputLine]:
        return [
            OutputLine("(function (__modules__) {"),
            OutputLine('  "use strict";'),
            *self._closure(module, container, _INDENT),
            OutputLine("})(globalThis.__modules__ = globalThis.__modules__ || {});"),
        ]

    def render_bundle(self, modules: Sequence[Module], container: Container) -> list[OutputLine]:
        lines = [
            OutputLine("(function () {"),
            OutputLine('  "use strict";'),
            OutputLine("  var __modules__ = {};"),
        ]
        for module in modules:
            lines.extend(self._closure(module, container, _INDENT))
        lines.append(OutputLine("})();"))
        return lines


__all__ = ["BundleFormatter", "CommonJSFormatter", "Formatter", "OutputLine"]
