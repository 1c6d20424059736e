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

"""Places cached artifacts and passthrough files into the destination tree."""

from __future__ import annotations

import os
import shutil
from typing import TYPE_CHECKING

from modcache.core.model_types import MaterializeStrategy

if TYPE_CHECKING:
    from pathlib import Path

    from modcache.cache import CacheEntry, CacheStore
    from modcache.core.type_aliases import RelPath


def _clear_destination(destination: Path) -> None:
    if destination.is_symlink() or destination.is_file():
        destination.unlink()


class Materializer:
    """Copies or links artifacts out of a store's scratch area."""

    def __init__(self, store: CacheStore, strategy: MaterializeStrategy = MaterializeStrategy.COPY) -> None:
        super().__init__()
        self.store = store
        self.strategy = strategy

    def place(self, entry: CacheEntry, destination_dir: Path) -> list[Path]:
        """Place every artifact of ``entry`` under ``destination_dir``.

        Relative artifact paths are preserved, so directory-mode output
        mirrors the source tree.

        Returns:
            Destination paths written, in artifact order.
        """
        placed: list[Path] = []
        for artifact in entry.output_artifacts:
            source = self.store.artifact_path(entry, artifact)
            destination = destination_dir / artifact
            destination.parent.mkdir(parents=True, exist_ok=True)
            _clear_destination(destination)
            if self.strategy is MaterializeStrategy.SYMLINK:
                os.symlink(source, destination)
            else:
                _ = shutil.copy2(source, destination)
            placed.append(destination)
        return placed

    @staticmethod
    def copy_passthrough(source_dir: Path, destination_dir: Path, rel_path: RelPath) -> Path:
        """Copy one non-module file, following links so content is copied."""
        destination = destination_dir / rel_path
        destination.parent.mkdir(parents=True, exist_ok=True)
        _clear_destination(destination)
        _ = shutil.copy2(source_dir / rel_path, destination)
        return destination


__all__ = ["Materializer"]
