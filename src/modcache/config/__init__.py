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

"""Build configuration: validated models, runtime settings and file loading."""

from .loader import CONFIG_FILENAMES, LoadedSettings, load_settings, resolve_project_root
from .models import (
    BuildConfigModel,
    BuildSettings,
    ConfigFieldValueError,
    ConfigReadError,
    ConfigValidationError,
    InvalidConfigFileError,
    settings_from_model,
)

__all__ = [
    "CONFIG_FILENAMES",
    "BuildConfigModel",
    "BuildSettings",
    "ConfigFieldValueError",
    "ConfigReadError",
    "ConfigValidationError",
    "InvalidConfigFileError",
    "LoadedSettings",
    "load_settings",
    "resolve_project_root",
    "settings_from_model",
]
