# Copyright 2025 Canonical Ltd.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Internal YAML helpers for config files and charm metadata."""

from typing import Any, Dict, TextIO, Union

import yaml

# Use C speedups if available
_safe_loader = getattr(yaml, 'CSafeLoader', yaml.SafeLoader)

YAMLError = yaml.YAMLError


def safe_load(stream: Union[str, TextIO]) -> Any:
    """Same as yaml.safe_load, but use fast C loader if available."""
    return yaml.load(stream, Loader=_safe_loader)  # noqa: S506


def safe_load_mapping(stream: Union[str, TextIO], what: str) -> Dict[str, Any]:
    """Load a YAML document that must be a mapping; an empty document is ``{}``.

    Raises:
        ValueError: if the document is something other than a mapping.
        YAMLError: if the document isn't valid YAML.
    """
    raw = safe_load(stream)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f'{what} should be a mapping, not {type(raw).__name__}')
    return raw
