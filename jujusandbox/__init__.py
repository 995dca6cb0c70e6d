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

"""An in-process simulator of the Juju controller API.

The package lets a console, or its test suite, talk to a deterministic
backend instead of a live controller:

- :class:`~jujusandbox.state.BackendState`, the in-memory environment of
  charms, services, units, relations and model users.
- :class:`~jujusandbox.dispatcher.ControllerAPI`, which decodes request
  envelopes, checks authentication, runs the matching handler and replies.
- :class:`~jujusandbox.connection.ClientConnection`, the single-client
  transport with a WebSocket-like open/closed state machine.
- :class:`~jujusandbox.client.Environment`, a client that turns method calls
  into envelopes and replies into results or :class:`APIError`.
- :class:`~jujusandbox.session.Session`, which wires the above together for
  one test or session.
"""

from __future__ import annotations

__all__ = [  # noqa: RUF022 `__all__` is not sorted
    '__version__',
    # From charmstore.py
    'Charm',
    'CharmStore',
    'CharmURL',
    'RelationMeta',
    'RelationRole',
    # From client.py
    'APIError',
    'Environment',
    # From config.py
    'SandboxConfig',
    # From connection.py
    'ClientConnection',
    'ConnectionClosedError',
    'InvalidStateError',
    'MessageEvent',
    # From dispatcher.py
    'ControllerAPI',
    # From envelope.py
    'Error',
    'ProtocolError',
    'Reply',
    'Request',
    # From log.py
    'setup_logging',
    # From session.py
    'Session',
    # From state.py
    'BackendState',
    'Endpoint',
    'Failure',
    'ModelUser',
    'Relation',
    'Service',
    'Unit',
]

from .charmstore import Charm, CharmStore, CharmURL, RelationMeta, RelationRole
from .client import APIError, Environment
from .config import SandboxConfig
from .connection import ClientConnection, ConnectionClosedError, InvalidStateError, MessageEvent
from .dispatcher import ControllerAPI
from .envelope import Error, ProtocolError, Reply, Request
from .log import setup_logging
from .session import Session
from .state import BackendState, Endpoint, Failure, ModelUser, Relation, Service, Unit
from .version import version as __version__
