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

"""Unit tests for the module container and file resolver."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from modcache.exceptions import ResolutionError
from modcache.transform.container import Container, FileResolver, resolve_import_path
from modcache.transform.formatters import CommonJSFormatter
from modcache.transform.module import Module
from tests.fixtures.builders import DEPENDENCY_TREE, RecordingResolver, write_tree

pytestmark = pytest.mark.unit


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    return write_tree(tmp_path / "src", DEPENDENCY_TREE)


def _container(source_dir: Path, **kwargs: object) -> Container:
    return Container(
        formatter=CommonJSFormatter(),
        resolvers=[FileResolver([source_dir])],
        source_dir=source_dir,
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.mark.parametrize(
    ("imported", "importer", "expected"),
    [
        ("./y", "/src/x.js", "/src/y.js"),
        ("./y.js", "/src/x.js", "/src/y.js"),
        ("../x", "/src/lib/z.js", "/src/x.js"),
        ("lib/z", None, "/src/lib/z.js"),
        ("./lib/z", None, "/src/lib/z.js"),
    ],
)
def test_resolve_import_path(imported: str, importer: str | None, expected: str) -> None:
    from_module = None if importer is None else Module.parse(Path(importer), imported, "")

    assert resolve_import_path(imported, from_module, Path("/src"), ".js") == Path(expected)


def test_get_module_loads_dependencies_once(source_dir: Path) -> None:
    resolver = RecordingResolver([source_dir])
    container = Container(formatter=CommonJSFormatter(), resolvers=[resolver], source_dir=source_dir)

    z = container.get_module("lib/z.js")
    x = container.get_module("x.js")

    assert [module.path.name for module in container.modules] == ["z.js", "x.js", "y.js"]
    assert container.dependency(z, "../x") is x
    assert sorted(path.name for path in resolver.loads) == ["x.js", "y.js", "z.js"]


def test_get_module_reports_unresolvable_import(tmp_path: Path) -> None:
    source_dir = write_tree(tmp_path / "src", {"a.js": 'import { b } from "./missing";\n'})
    container = _container(source_dir)

    with pytest.raises(ResolutionError) as excinfo:
        _ = container.get_module("a.js")

    assert excinfo.value.imported_path == "./missing"
    assert excinfo.value.importer == source_dir / "a.js"


def test_get_module_rejects_modules_outside_source_dir(tmp_path: Path) -> None:
    source_dir = write_tree(tmp_path / "src", {"a.js": 'import { b } from "../outside";\n'})
    _ = write_tree(tmp_path, {"outside.js": "export const b = 1;\n"})
    container = _container(source_dir)

    with pytest.raises(ResolutionError, match="is outside") as excinfo:
        _ = container.get_module("a.js")

    assert excinfo.value.imported_path == "../outside"
    assert excinfo.value.reason == f"{tmp_path / 'outside.js'} is outside {source_dir}"
    assert [module.path.name for module in container.modules] == ["a.js"]


def test_get_module_handles_import_cycles(tmp_path: Path) -> None:
    source_dir = write_tree(
        tmp_path / "src",
        {
            "a.js": 'import { b } from "./b";\nexport const a = 1;\n',
            "b.js": 'import { a } from "./a";\nexport const b = 2;\n',
        },
    )
    container = _container(source_dir)

    _ = container.get_module("a.js")

    assert {module.path.name for module in container.modules} == {"a.js", "b.js"}
    assert len(container.ordered_modules()) == 2


def test_ordered_modules_puts_dependencies_first(source_dir: Path) -> None:
    container = _container(source_dir)
    _ = container.get_module("lib/z.js")

    assert [container.module_id(module) for module in container.ordered_modules()] == ["y", "x", "lib/z"]


def test_relative_specifier_and_module_id(source_dir: Path) -> None:
    container = _container(source_dir)
    z = container.get_module("lib/z.js")
    x = container.dependency(z, "../x")

    assert container.relative_specifier(z, "../x") == "../x"
    assert container.relative_specifier(x, "./y") == "./y"
    assert container.module_id(z) == "lib/z"
    assert container.relative_output(z) == "lib/z.js"


def test_write_directory_mirrors_source_tree(source_dir: Path, tmp_path: Path) -> None:
    container = _container(source_dir)
    _ = container.get_module("lib/z.js")
    out_dir = tmp_path / "out"

    artifacts = container.write_directory(out_dir)

    assert artifacts == {
        source_dir / "lib" / "z.js": ("lib/z.js",),
        source_dir / "x.js": ("x.js",),
        source_dir / "y.js": ("y.js",),
    }
    assert (out_dir / "x.js").read_text(encoding="utf-8") == (
        '"use strict";\nvar y = require("./y").y;\nconst x = y + 1;\nexports.x = x;\n'
    )
    assert 'require("../x")' in (out_dir / "lib" / "z.js").read_text(encoding="utf-8")


def test_write_directory_emits_source_maps(source_dir: Path, tmp_path: Path) -> None:
    container = _container(source_dir, source_maps=True, source_root="/app/")
    _ = container.get_module("x.js")
    out_dir = tmp_path / "out"

    artifacts = container.write_directory(out_dir)

    assert artifacts[source_dir / "x.js"] == ("x.js", "x.js.map")
    text = (out_dir / "x.js").read_text(encoding="utf-8")
    assert text.endswith("//# sourceMappingURL=x.js.map\n")
    source_map = json.loads((out_dir / "x.js.map").read_text(encoding="utf-8"))
    assert source_map["version"] == 3
    assert source_map["file"] == "x.js"
    assert source_map["sourceRoot"] == "/app/"
    assert source_map["sources"] == ["x.js"]
    assert source_map["mappings"] == ";AAAA;AACA;"


def test_source_map_sources_relative_to_base_path(source_dir: Path, tmp_path: Path) -> None:
    container = _container(source_dir, source_maps=True, base_path=source_dir.parent)
    _ = container.get_module("y.js")

    _ = container.write_directory(tmp_path / "out")

    source_map = json.loads((tmp_path / "out" / "y.js.map").read_text(encoding="utf-8"))
    assert source_map["sources"] == ["src/y.js"]


def test_write_bundle_returns_artifact_names(source_dir: Path, tmp_path: Path) -> None:
    container = _container(source_dir, source_maps=True)
    _ = container.get_module("lib/z.js")

    names = container.write_bundle(tmp_path / "dist" / "app.js")

    assert names == ("app.js", "app.js.map")
    bundle = (tmp_path / "dist" / "app.js").read_text(encoding="utf-8")
    assert bundle.index('__factories__["y"]') < bundle.index('__factories__["x"]')
    assert bundle.index('__factories__["x"]') < bundle.index('__factories__["lib/z"]')
