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

"""modcache - incremental build cache for module-to-module source transforms.

Decides on every build which modules are unchanged and can be served from
cache, recompiles the rest in a single transformer pass, and reassembles a
directory of modules or a single bundle file from cached and fresh artifacts.
"""

from __future__ import annotations

from modcache.exceptions import (
    BuildFailedError,
    HashingError,
    ModcacheError,
    ModcacheTypeError,
    ModcacheValidationError,
    ModuleSyntaxError,
    ResolutionError,
    TransformerError,
    UnknownFormatterError,
)

from .build import BuildReport, ModuleCompiler, SourceTreeSnapshot, scan_source_tree
from .cache import CacheEntry, CacheStore, bundle_key, module_key
from .config import BuildSettings, load_settings
from .core.model_types import FormatterName, MaterializeStrategy, ModuleOrigin, OutputKind
from .hashing import combine, hash_of
from .materialize import Materializer
from .resolution import CacheResolver

__all__ = [
    "BuildFailedError",
    "BuildReport",
    "BuildSettings",
    "CacheEntry",
    "CacheResolver",
    "CacheStore",
    "FormatterName",
    "HashingError",
    "MaterializeStrategy",
    "Materializer",
    "ModcacheError",
    "ModcacheTypeError",
    "ModcacheValidationError",
    "ModuleCompiler",
    "ModuleOrigin",
    "ModuleSyntaxError",
    "OutputKind",
    "ResolutionError",
    "SourceTreeSnapshot",
    "TransformerError",
    "UnknownFormatterError",
    "__version__",
    "bundle_key",
    "combine",
    "hash_of",
    "load_settings",
    "module_key",
    "scan_source_tree",
]

__version__ = "0.1.0"
