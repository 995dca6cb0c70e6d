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

"""Configuration for a simulated controller session."""

from __future__ import annotations

import dataclasses
import os
import uuid
from collections.abc import Mapping
from typing import Any, TextIO

from ._private import yaml


@dataclasses.dataclass(frozen=True, kw_only=True)
class SandboxConfig:
    """Settings shared by the charm store, backend state and dispatcher of a session.

    Use :meth:`from_environ` to pick up overrides from ``JUJU_SANDBOX_*``
    environment variables, or :meth:`from_yaml` to load a config file such as::

        user: admin
        password: password
        default-series: trusty
        charms:
          - |
            name: ghost
            revision: 3
            provides:
              website:
                interface: http
    """

    user: str = 'admin'
    """Name of the single identity that may log in.

    For example 'admin' (from ``JUJU_SANDBOX_USER``).
    """

    password: str = 'password'  # noqa: S105
    """Password of the login identity (from ``JUJU_SANDBOX_PASSWORD``)."""

    default_series: str = 'precise'
    """Series used to resolve charm URLs that don't name one.

    For example 'precise' (from ``JUJU_SANDBOX_SERIES``).
    """

    model_name: str = 'sandbox'
    """Name of the simulated model (from ``JUJU_SANDBOX_MODEL_NAME``)."""

    model_uuid: str = dataclasses.field(default_factory=lambda: str(uuid.uuid4()))
    """UUID of the simulated model (from ``JUJU_SANDBOX_MODEL_UUID``)."""

    charms: tuple[str, ...] = ()
    """Metadata YAML documents for charms added to the built-in charm store."""

    @classmethod
    def _from_dict(cls, d: Mapping[str, Any]) -> SandboxConfig:
        kwargs: dict[str, Any] = {}
        for key, field in (
            ('user', 'user'),
            ('password', 'password'),
            ('default-series', 'default_series'),
            ('model-name', 'model_name'),
            ('model-uuid', 'model_uuid'),
        ):
            if d.get(key) is None:
                continue
            if not isinstance(d[key], str):
                raise ValueError(f'{key} should be a string, not {type(d[key]).__name__}')
            kwargs[field] = d[key]
        charms = d.get('charms') or []
        if not isinstance(charms, list) or not all(isinstance(c, str) for c in charms):
            raise ValueError('charms should be a list of metadata YAML strings')
        kwargs['charms'] = tuple(charms)
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, stream: str | TextIO) -> SandboxConfig:
        """Create a ``SandboxConfig`` from a YAML document.

        Raises:
            ValueError: If the document isn't a mapping or has values of the wrong type.
        """
        return cls._from_dict(yaml.safe_load_mapping(stream, 'sandbox config'))

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> SandboxConfig:
        """Create a ``SandboxConfig`` from the environment.

        If environ is ``None``, ``os.environ`` will be used. Unset variables
        keep their defaults.
        """
        if environ is None:
            environ = os.environ
        return cls._from_dict({
            'user': environ.get('JUJU_SANDBOX_USER') or None,
            'password': environ.get('JUJU_SANDBOX_PASSWORD') or None,
            'default-series': environ.get('JUJU_SANDBOX_SERIES') or None,
            'model-name': environ.get('JUJU_SANDBOX_MODEL_NAME') or None,
            'model-uuid': environ.get('JUJU_SANDBOX_MODEL_UUID') or None,
        })
