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

"""Directory-output builds: per-module reuse and invalidation."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from modcache.cache import module_key
from modcache.core.model_types import OutputKind
from tests.fixtures.builders import RecordingResolver, read_tree, write_file

if TYPE_CHECKING:
    from collections.abc import Callable

    from modcache.build import ModuleCompiler

pytestmark = pytest.mark.integration


def test_first_build_compiles_everything_and_copies_passthrough(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    dest = tmp_path / "dest"

    report = make_compiler().build(source_dir, dest)

    assert report.output_kind is OutputKind.DIRECTORY
    assert report.transformer_invocations == 1
    assert report.compiled == [module_key("lib/z.js"), module_key("x.js"), module_key("y.js")]
    assert report.reused == []
    assert report.passthrough == 2
    assert sorted(read_tree(dest)) == ["README.md", "assets/logo.svg", "lib/z.js", "x.js", "y.js"]
    assert read_tree(dest)["README.md"] == "# sample\n"
    assert read_tree(dest)["x.js"].startswith('"use strict";\n')


def test_rebuild_of_unchanged_tree_is_idempotent(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    compiler = make_compiler()
    first_dest, second_dest = tmp_path / "first", tmp_path / "second"

    _ = compiler.build(source_dir, first_dest)
    report = compiler.build(source_dir, second_dest)

    assert report.transformer_invocations == 0
    assert report.compiled == []
    assert len(report.reused) == 3
    assert read_tree(second_dest) == read_tree(first_dest)


def test_single_module_change_recompiles_only_that_module(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    compiler = make_compiler()
    dest = tmp_path / "dest"
    _ = compiler.build(source_dir, dest)
    before = read_tree(dest)

    _ = write_file(source_dir / "y.js", "export const y = 1;\n")
    report = compiler.build(source_dir, dest)

    assert report.transformer_invocations == 1
    assert report.compiled == [module_key("y.js")]
    assert set(report.reused) == {module_key("lib/z.js"), module_key("x.js")}
    after = read_tree(dest)
    assert after["y.js"] != before["y.js"]
    assert "const y = 1;" in after["y.js"]
    assert after["x.js"] == before["x.js"]
    assert after["lib/z.js"] == before["lib/z.js"]


def test_unchanged_dependency_is_hydrated_not_reread(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
    recording_resolver: RecordingResolver,
) -> None:
    compiler = make_compiler()
    dest = tmp_path / "dest"
    _ = compiler.build(source_dir, dest)
    recording_resolver.loads.clear()

    _ = write_file(source_dir / "x.js", 'import { y } from "./y";\nexport const x = y + 2;\n')
    report = compiler.build(source_dir, dest)

    assert recording_resolver.loads == [source_dir / "x.js"]
    assert report.hydrated == ["y.js"]
    assert report.compiled == [module_key("x.js")]
    x_output = (dest / "x.js").read_text(encoding="utf-8")
    assert 'var y = require("./y").y;' in x_output
    assert "const x = y + 2;" in x_output


def test_symlink_to_identical_content_is_not_a_change(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    compiler = make_compiler()
    dest = tmp_path / "dest"
    _ = compiler.build(source_dir, dest)

    shared = tmp_path / "shared"
    for rel in ("y.js", "README.md"):
        original = source_dir / rel
        stored = write_file(shared / rel, original.read_text(encoding="utf-8"))
        original.unlink()
        original.symlink_to(stored)
    report = compiler.build(source_dir, dest)

    assert report.transformer_invocations == 0
    assert report.compiled == []
    assert read_tree(dest)["README.md"] == "# sample\n"


def test_linked_directory_contents_are_built(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    shared = tmp_path / "shared"
    _ = write_file(shared / "util.js", 'import { y } from "../y";\nexport const util = y;\n')
    _ = write_file(shared / "NOTES.txt", "notes\n")
    (source_dir / "vendor").symlink_to(shared, target_is_directory=True)
    compiler = make_compiler()
    dest = tmp_path / "dest"

    report = compiler.build(source_dir, dest)
    rebuilt = compiler.build(source_dir, dest)

    assert module_key("vendor/util.js") in report.compiled
    assert read_tree(dest)["vendor/NOTES.txt"] == "notes\n"
    assert "vendor/util.js" in read_tree(dest)
    assert rebuilt.transformer_invocations == 0
    assert module_key("vendor/util.js") in rebuilt.reused


def test_passthrough_files_round_trip(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    compiler = make_compiler()
    dest = tmp_path / "dest"
    _ = compiler.build(source_dir, dest)

    _ = write_file(source_dir / "README.md", "# changed\n")
    report = compiler.build(source_dir, dest)

    assert report.transformer_invocations == 0
    assert read_tree(dest)["README.md"] == "# changed\n"
    assert read_tree(dest)["assets/logo.svg"] == "<svg/>\n"


def test_output_subdirectory_keeps_passthrough_at_destination_root(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    dest = tmp_path / "dest"

    report = make_compiler(output="lib").build(source_dir, dest)

    assert report.output_path == dest / "lib"
    assert sorted(read_tree(dest)) == [
        "README.md",
        "assets/logo.svg",
        "lib/lib/z.js",
        "lib/x.js",
        "lib/y.js",
    ]


def test_directory_named_like_a_module_is_passthrough(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    _ = write_file(source_dir / "vendor.js" / "LICENSE", "MIT\n")
    dest = tmp_path / "dest"

    report = make_compiler().build(source_dir, dest)

    assert module_key("vendor.js") not in report.compiled
    assert read_tree(dest)["vendor.js/LICENSE"] == "MIT\n"


def test_missing_scratch_artifact_is_recompiled_with_warning(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
    caplog: pytest.LogCaptureFixture,
) -> None:
    compiler = make_compiler()
    dest = tmp_path / "dest"
    _ = compiler.build(source_dir, dest)
    entry = compiler.store.lookup(module_key("y.js"))
    assert entry is not None
    compiler.store.artifact_path(entry, "y.js").unlink()

    with caplog.at_level("WARNING", logger="modcache.build"):
        report = compiler.build(source_dir, tmp_path / "again")

    assert report.compiled == [module_key("y.js")]
    assert any("missing scratch artifacts" in record.getMessage() for record in caplog.records)
    assert read_tree(tmp_path / "again") == read_tree(dest)


def test_source_maps_are_cached_with_outputs(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    compiler = make_compiler(source_maps=True)
    _ = compiler.build(source_dir, tmp_path / "first")
    report = compiler.build(source_dir, tmp_path / "second")

    assert report.transformer_invocations == 0
    source_map = json.loads((tmp_path / "second" / "lib" / "z.js.map").read_text(encoding="utf-8"))
    assert source_map["sources"] == ["lib/z.js"]
    entry = compiler.store.lookup(module_key("lib/z.js"))
    assert entry is not None
    assert entry.output_artifacts == ("lib/z.js", "lib/z.js.map")


def test_symlink_materialization_links_into_scratch(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    compiler = make_compiler(materialize="symlink")
    dest = tmp_path / "dest"

    _ = compiler.build(source_dir, dest)

    assert (dest / "x.js").is_symlink()
    assert Path(os.readlink(dest / "x.js")).is_relative_to(compiler.store.root)
    assert not (dest / "README.md").is_symlink()


def test_persistent_cache_reused_across_compilers(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    cache_dir = tmp_path / "cache"
    first = make_compiler(cache_dir=cache_dir, persist=True)
    _ = first.build(source_dir, tmp_path / "first")
    first.close()

    second = make_compiler(cache_dir=cache_dir, persist=True)
    report = second.build(source_dir, tmp_path / "second")

    assert report.transformer_invocations == 0
    assert read_tree(tmp_path / "second") == read_tree(tmp_path / "first")


def test_persistent_cache_discarded_when_formatter_changes(
    source_dir: Path,
    tmp_path: Path,
    make_compiler: Callable[..., ModuleCompiler],
) -> None:
    cache_dir = tmp_path / "cache"
    first = make_compiler(cache_dir=cache_dir, persist=True)
    _ = first.build(source_dir, tmp_path / "first")
    first.close()

    second = make_compiler(cache_dir=cache_dir, persist=True, formatter="bundle")
    report = second.build(source_dir, tmp_path / "second")

    assert report.transformer_invocations == 1
    assert "__modules__" in (tmp_path / "second" / "x.js").read_text(encoding="utf-8")
