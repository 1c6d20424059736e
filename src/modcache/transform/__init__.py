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

"""Reference transformer wrapped by the modcache build cache.

The cache only relies on the interfaces exported here: `Container` for one
compile pass, the `Resolver` protocol for module loading, and the
`Formatter` protocol for output generation. Formatters are looked up through
`resolve_formatter`, which also discovers plugin formatters.
"""

from .container import Container, FileResolver, Resolver, resolve_import_path
from .formatters import BundleFormatter, CommonJSFormatter, Formatter, OutputLine
from .module import Module, ModuleSyntax, parse_module_source
from .registry import describe_formatters, resolve_formatter

__all__ = [
    "BundleFormatter",
    "CommonJSFormatter",
    "Container",
    "FileResolver",
    "Formatter",
    "Module",
    "ModuleSyntax",
    "OutputLine",
    "Resolver",
    "describe_formatters",
    "parse_module_source",
    "resolve_formatter",
    "resolve_import_path",
]
