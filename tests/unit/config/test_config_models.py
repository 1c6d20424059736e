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

"""Unit tests for build configuration models."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from modcache._internal.exceptions import ModcacheTypeError, UnknownFormatterError
from modcache.config import BuildConfigModel, BuildSettings, ConfigFieldValueError, settings_from_model
from modcache.core.model_types import MaterializeStrategy, OutputKind
from modcache.transform.formatters import BundleFormatter, CommonJSFormatter
from tests.fixtures.builders import ExplodingFormatter, RecordingResolver

pytestmark = pytest.mark.unit


def test_defaults_produce_directory_commonjs_build() -> None:
    settings = BuildSettings.from_options()

    assert settings.output == "."
    assert settings.output_kind is OutputKind.AUTO
    assert isinstance(settings.formatter, CommonJSFormatter)
    assert settings.resolvers is None
    assert settings.extension == ".js"
    assert settings.materialize is MaterializeStrategy.COPY
    assert not settings.persist


def test_enum_fields_accept_any_case() -> None:
    model = BuildConfigModel.model_validate({"output_kind": " FILE ", "materialize": "SymLink"})

    assert model.output_kind is OutputKind.FILE
    assert model.materialize is MaterializeStrategy.SYMLINK


def test_unknown_enum_value_is_rejected() -> None:
    with pytest.raises(ValidationError, match="Unknown OutputKind"):
        _ = BuildConfigModel.model_validate({"output_kind": "tarball"})


@pytest.mark.parametrize(("raw", "expected"), [("mjs", ".mjs"), (".ts", ".ts"), ("  .jsx ", ".jsx")])
def test_extension_is_normalised(raw: str, expected: str) -> None:
    assert BuildConfigModel.model_validate({"extension": raw}).extension == expected


@pytest.mark.parametrize("raw", [".", "", "a/b", "x\\y"])
def test_unusable_extension_is_rejected(raw: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        _ = BuildConfigModel.model_validate({"extension": raw})

    cause = exc_info.value.errors()[0]["ctx"]["error"]
    assert isinstance(cause, ConfigFieldValueError)
    assert cause.field_name == "extension"


def test_blank_output_is_rejected() -> None:
    with pytest.raises(ValidationError, match="Invalid value for 'output'"):
        _ = BuildConfigModel.model_validate({"output": "   "})


def test_unknown_keys_are_forbidden() -> None:
    with pytest.raises(ValidationError, match="extra"):
        _ = BuildConfigModel.model_validate({"minify": True})


def test_formatter_name_is_resolved_case_insensitively() -> None:
    settings = settings_from_model(BuildConfigModel.model_validate({"formatter": " Bundle "}))

    assert isinstance(settings.formatter, BundleFormatter)


def test_unknown_formatter_name_lists_available() -> None:
    with pytest.raises(UnknownFormatterError) as exc_info:
        _ = BuildSettings.from_options(formatter="amd")

    assert exc_info.value.available == ("bundle", "commonjs")


def test_formatter_instance_is_kept() -> None:
    formatter = ExplodingFormatter()

    assert BuildSettings.from_options(formatter=formatter).formatter is formatter


def test_non_formatter_object_is_rejected() -> None:
    with pytest.raises(ModcacheTypeError):
        _ = BuildSettings.from_options(formatter=object())  # type: ignore[arg-type]


def test_resolvers_are_stored_as_tuple(tmp_path: Path) -> None:
    resolver = RecordingResolver([tmp_path])

    assert BuildSettings.from_options(resolvers=[resolver]).resolvers == (resolver,)


def test_none_options_fall_back_to_defaults() -> None:
    settings = BuildSettings.from_options(output=None, extension=None, cache_dir=None)

    assert settings.output == "."
    assert settings.extension == ".js"


class TestFingerprint:
    def test_equal_settings_share_a_fingerprint(self) -> None:
        assert BuildSettings.from_options().fingerprint() == BuildSettings().fingerprint()

    @pytest.mark.parametrize(
        "options",
        [
            {"formatter": "bundle"},
            {"output": "app.js"},
            {"output_kind": "file"},
            {"extension": ".mjs"},
            {"source_maps": True},
            {"source_root": "/src"},
            {"base_path": Path("/tmp/base")},
        ],
    )
    def test_output_shaping_settings_change_it(self, options: dict[str, object]) -> None:
        assert BuildSettings.from_options(**options).fingerprint() != BuildSettings().fingerprint()

    @pytest.mark.parametrize(
        "options",
        [
            {"materialize": "symlink"},
            {"cache_dir": Path("/tmp/cache")},
            {"persist": True},
        ],
    )
    def test_placement_settings_do_not_change_it(self, options: dict[str, object]) -> None:
        assert BuildSettings.from_options(**options).fingerprint() == BuildSettings().fingerprint()

    @pytest.mark.parametrize(
        "options",
        [
            {"output": "app.js"},
            {"output_kind": "file"},
            {"materialize": "symlink"},
        ],
    )
    def test_artifact_fingerprint_ignores_output_location(self, options: dict[str, object]) -> None:
        settings = BuildSettings.from_options(**options)

        assert settings.artifact_fingerprint() == BuildSettings().artifact_fingerprint()

    @pytest.mark.parametrize(
        "options",
        [
            {"formatter": "bundle"},
            {"extension": ".mjs"},
            {"source_maps": True},
        ],
    )
    def test_artifact_fingerprint_tracks_artifact_bytes(self, options: dict[str, object]) -> None:
        settings = BuildSettings.from_options(**options)

        assert settings.artifact_fingerprint() != BuildSettings().artifact_fingerprint()
