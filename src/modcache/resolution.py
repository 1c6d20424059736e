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

"""Resolver that serves unchanged modules from cached parse snapshots.

`CacheResolver` sits first in the transformer's resolver chain. When an
imported module's cache entry still matches the file's current content it
hands back a module hydrated from the entry's metadata, so the source is
neither read nor scanned again. Anything else falls through to the next
resolver.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from modcache._internal.exceptions import HashingError
from modcache._internal.logging_utils import structured_extra
from modcache.cache import module_key
from modcache.core.model_types import LogComponent
from modcache.core.type_aliases import Digest, RelPath
from modcache.hashing import hash_of
from modcache.transform.container import resolve_import_path
from modcache.transform.module import Module

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from modcache.cache import CacheStore
    from modcache.transform.container import Container

logger: logging.Logger = logging.getLogger("modcache.resolution")


class CacheResolver:
    """Hydrates modules from validated cache entries.

    Args:
        store: Cache store shared with the build orchestrator.
        source_dir: Source root; cache keys are relative to it.
        known_digests: Digests already computed for this build, keyed by
            source-relative path. Paths missing here are hashed on demand.
    """

    def __init__(
        self,
        store: CacheStore,
        source_dir: Path,
        *,
        known_digests: Mapping[RelPath, Digest] | None = None,
    ) -> None:
        super().__init__()
        self.store = store
        self.source_dir = source_dir
        self._digests: dict[RelPath, Digest] = dict(known_digests or {})

    def resolve_module(
        self,
        imported_path: str,
        from_module: Module | None,
        container: Container,
    ) -> Module | None:
        resolved = resolve_import_path(imported_path, from_module, self.source_dir, container.extension)
        live = container.get_cached_module(resolved)
        if live is not None:
            return live
        try:
            rel = RelPath(resolved.relative_to(self.source_dir).as_posix())
        except ValueError:
            return None
        entry = self.store.lookup(module_key(rel))
        if entry is None or entry.produced_metadata is None:
            return None
        digest = self._digest(rel, resolved)
        if digest is None or digest != entry.content_hash:
            return None
        metadata = entry.metadata_dict()
        if metadata is None:
            return None
        logger.debug(
            "Hydrated %s from cache",
            rel,
            extra=structured_extra(LogComponent.RESOLUTION, path=rel, key=entry.key, cached=True),
        )
        return Module.hydrate(resolved, imported_path, metadata)

    def _digest(self, rel: RelPath, path: Path) -> Digest | None:
        digest = self._digests.get(rel)
        if digest is not None:
            return digest
        try:
            digest = hash_of(path)
        except HashingError:
            return None
        self._digests[rel] = digest
        return digest


__all__ = ["CacheResolver"]
