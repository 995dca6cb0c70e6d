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

"""A self-contained simulated controller session."""

from __future__ import annotations

import logging
import types

from .charmstore import CharmStore
from .client import Environment
from .config import SandboxConfig
from .connection import ClientConnection
from .dispatcher import ControllerAPI
from .state import BackendState

logger = logging.getLogger(__name__)


class Session:
    """Owns the state, API, connection and client of one simulated session.

    Construct one per test and tear it down with :meth:`cleanup`, or use it
    as a context manager::

        with Session() as session:
            session.env.connect()
            session.env.deploy('cs:wordpress')
            assert session.state.service_by_name('wordpress') is not None

    Args:
        config: the session configuration; defaults are used if omitted.
        charm_store: the charm store to deploy from; built from ``config``
            if omitted.
        authenticated: start the session already logged in.
    """

    def __init__(
        self,
        config: SandboxConfig | None = None,
        *,
        charm_store: CharmStore | None = None,
        authenticated: bool = True,
    ):
        self.config = config or SandboxConfig()
        self.state = BackendState(self.config, charm_store=charm_store)
        self.state.authenticated = authenticated
        self.api = ControllerAPI(self.state)
        self.connection = ClientConnection(self.api)
        self.env = Environment(self.connection)
        logger.debug('Started sandbox session for model %r', self.config.model_name)

    def cleanup(self):
        """Close the connection and unbind the API; calling it twice is harmless."""
        self.connection.close()
        self.api.close()
        self.connection.onmessage = None

    def __enter__(self) -> Session:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: types.TracebackType | None,
    ):
        self.cleanup()
