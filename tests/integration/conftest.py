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

"""Fixtures for end-to-end build tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from modcache.build import ModuleCompiler
from modcache.config import BuildSettings
from tests.fixtures.builders import DEPENDENCY_TREE, RecordingResolver, write_tree

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from pathlib import Path


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """Source tree with a three-module dependency chain and two passthrough files."""
    return write_tree(tmp_path / "src", DEPENDENCY_TREE)


@pytest.fixture
def recording_resolver(source_dir: Path) -> RecordingResolver:
    return RecordingResolver([source_dir])


@pytest.fixture
def make_compiler(
    recording_resolver: RecordingResolver,
) -> Generator[Callable[..., ModuleCompiler], None, None]:
    """Build compilers whose file loads are recorded; all are closed on teardown."""
    compilers: list[ModuleCompiler] = []

    def factory(**options: object) -> ModuleCompiler:
        settings = BuildSettings.from_options(resolvers=[recording_resolver], **options)
        compiler = ModuleCompiler(settings)
        compilers.append(compiler)
        return compiler

    yield factory
    for compiler in compilers:
        compiler.close()
