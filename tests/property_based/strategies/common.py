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

"""Hypothesis strategies shared across property-based tests."""

from __future__ import annotations

from hypothesis import strategies as st

from modcache.core.type_aliases import Digest
from modcache.hashing import hash_text

__all__ = [
    "digests",
    "extension_names",
    "mixed_case",
    "module_paths",
]


def digests() -> st.SearchStrategy[Digest]:
    """Return a strategy that yields real content digests."""
    return st.text(max_size=40).map(hash_text)


def module_paths(max_depth: int = 3) -> st.SearchStrategy[str]:
    """Return a strategy that yields source-relative POSIX module paths."""
    segment = st.from_regex(r"[a-z][a-z0-9_]{0,7}", fullmatch=True)
    return st.lists(segment, min_size=1, max_size=max_depth).map(lambda parts: "/".join(parts) + ".js")


def extension_names() -> st.SearchStrategy[str]:
    return st.from_regex(r"[a-z0-9]{1,5}", fullmatch=True)


def mixed_case(values: list[str]) -> st.SearchStrategy[str]:
    """Return a strategy that picks one of values with random letter casing.

    Args:
        values: Candidate strings.

    Returns:
        Hypothesis strategy producing case-scrambled members of values.
    """

    def scramble(value: str, flips: list[bool]) -> str:
        return "".join(char.upper() if flip else char for char, flip in zip(value, flips, strict=False))

    return st.sampled_from(values).flatmap(
        lambda value: st.lists(st.booleans(), min_size=len(value), max_size=len(value)).map(
            lambda flips: scramble(value, flips),
        ),
    )
