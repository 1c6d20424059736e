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

"""Property-based tests for configuration parsing and source-map encoding."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from modcache.config import BuildConfigModel
from modcache.core.model_types import MaterializeStrategy, OutputKind
from modcache.transform.sourcemap import encode_vlq
from tests.property_based.strategies import extension_names, mixed_case

pytestmark = pytest.mark.property

_BASE64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"


def _decode_vlq(encoded: str) -> int:
    value = 0
    shift = 0
    for char in encoded:
        digit = _BASE64.index(char)
        value |= (digit & 0b11111) << shift
        shift += 5
    return -(value >> 1) if value & 1 else value >> 1


@given(raw=mixed_case([kind.value for kind in OutputKind]))
def test_output_kind_parses_any_casing(raw: str) -> None:
    assert BuildConfigModel.model_validate({"output_kind": raw}).output_kind.value == raw.lower()


@given(raw=mixed_case([strategy.value for strategy in MaterializeStrategy]))
def test_materialize_parses_any_casing(raw: str) -> None:
    assert BuildConfigModel.model_validate({"materialize": raw}).materialize.value == raw.lower()


@given(name=extension_names(), dotted=st.booleans())
def test_extension_always_has_single_leading_dot(name: str, dotted: bool) -> None:
    extension = BuildConfigModel.model_validate({"extension": f".{name}" if dotted else name}).extension

    assert extension == f".{name}"


@given(value=st.integers(min_value=-(2**31), max_value=2**31))
def test_vlq_uses_base64_digits_and_preserves_value(value: int) -> None:
    encoded = encode_vlq(value)

    assert encoded
    assert set(encoded) <= set(_BASE64)
    assert all(_BASE64.index(char) & 0b100000 for char in encoded[:-1])
    assert not _BASE64.index(encoded[-1]) & 0b100000
    assert _decode_vlq(encoded) == value
