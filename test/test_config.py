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

from __future__ import annotations

import dataclasses
import io

import pytest

from jujusandbox import SandboxConfig


def test_defaults():
    config = SandboxConfig()
    assert config.user == 'admin'
    assert config.password == 'password'
    assert config.default_series == 'precise'
    assert config.model_name == 'sandbox'
    assert config.charms == ()
    # Each session gets its own model UUID.
    assert config.model_uuid != SandboxConfig().model_uuid


def test_frozen():
    config = SandboxConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.user = 'bob'  # type: ignore


def test_keyword_only():
    with pytest.raises(TypeError):
        SandboxConfig('bob')  # type: ignore


def test_from_yaml():
    config = SandboxConfig.from_yaml("""
user: bob
password: hunter2
default-series: trusty
model-name: staging
model-uuid: 00000000-0000-4000-8000-000000000000
charms:
  - |
    name: ghost
    revision: 3
""")
    assert config.user == 'bob'
    assert config.password == 'hunter2'
    assert config.default_series == 'trusty'
    assert config.model_name == 'staging'
    assert config.model_uuid == '00000000-0000-4000-8000-000000000000'
    assert config.charms == ('name: ghost\nrevision: 3\n',)


def test_from_yaml_stream():
    config = SandboxConfig.from_yaml(io.StringIO('model-name: dev\n'))
    assert config.model_name == 'dev'
    assert config.user == 'admin'


def test_from_empty_yaml():
    assert SandboxConfig.from_yaml('').user == 'admin'


@pytest.mark.parametrize(
    'document,message',
    [
        ('- a\n- b\n', 'sandbox config should be a mapping, not list'),
        ('user: 42\n', 'user should be a string, not int'),
        ('default-series: [a]\n', 'default-series should be a string, not list'),
        ('charms: ghost\n', 'charms should be a list of metadata YAML strings'),
        ('charms: [{name: ghost}]\n', 'charms should be a list of metadata YAML strings'),
    ],
)
def test_from_yaml_invalid(document: str, message: str):
    with pytest.raises(ValueError) as excinfo:
        SandboxConfig.from_yaml(document)
    assert str(excinfo.value) == message


def test_from_environ():
    config = SandboxConfig.from_environ({
        'JUJU_SANDBOX_USER': 'bob',
        'JUJU_SANDBOX_PASSWORD': 'hunter2',
        'JUJU_SANDBOX_SERIES': 'xenial',
        'JUJU_SANDBOX_MODEL_NAME': 'ci',
        'JUJU_SANDBOX_MODEL_UUID': 'abc',
    })
    assert config == SandboxConfig(
        user='bob',
        password='hunter2',
        default_series='xenial',
        model_name='ci',
        model_uuid='abc',
    )


def test_from_environ_empty_values():
    config = SandboxConfig.from_environ({'JUJU_SANDBOX_USER': '', 'UNRELATED': 'x'})
    assert config.user == 'admin'


def test_from_os_environ(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv('JUJU_SANDBOX_MODEL_NAME', 'from-env')
    monkeypatch.delenv('JUJU_SANDBOX_USER', raising=False)
    config = SandboxConfig.from_environ()
    assert config.model_name == 'from-env'
    assert config.user == 'admin'
