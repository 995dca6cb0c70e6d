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

"""Simulated client connection to the controller API.

:class:`ClientConnection` stands in for the WebSocket a console would open to
a real controller. It follows the same open/closed state machine and fails
fast on misuse, raising errors derived from websocket-client's exceptions so
that code written against a real connection handles them unchanged.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Optional

import websocket  # type: ignore

if TYPE_CHECKING:
    from .dispatcher import ControllerAPI
    from .envelope import RawPayload

logger = logging.getLogger(__name__)

OPEN_TO_ANOTHER_CLIENT = 'INVALID_STATE_ERR : Connection is open to another client.'
CONNECTION_CLOSED = 'INVALID_STATE_ERR : Connection is closed.'


class InvalidStateError(websocket.WebSocketException):
    """Raised when the connection is used in a way its current state doesn't allow."""

    def __init__(self, message: str):
        super().__init__(message)


class ConnectionClosedError(InvalidStateError, websocket.WebSocketConnectionClosedException):
    """Raised when sending or receiving on a closed connection."""

    def __init__(self, message: str = CONNECTION_CLOSED):
        super().__init__(message)


@dataclasses.dataclass(frozen=True)
class MessageEvent:
    """A message delivered to :attr:`ClientConnection.onmessage`."""

    data: str
    """The reply envelope as JSON text."""


class ClientConnection:
    """A connection from one client to a :class:`~jujusandbox.dispatcher.ControllerAPI`.

    Replies to :meth:`send` are delivered, before ``send`` returns, to the
    ``onmessage`` callback as :class:`MessageEvent` objects.
    """

    onmessage: Optional[Callable[[MessageEvent], Any]]
    """Called with each message received while open."""

    def __init__(self, api: ControllerAPI):
        self._api = api
        self.onmessage = None

    @property
    def connected(self) -> bool:
        """Whether this connection is the client currently bound to the API."""
        return self._api.client is self

    def open(self):
        """Bind this connection to the API.

        Re-opening an open connection does nothing.

        Raises:
            InvalidStateError: if the API is already open to another client.
        """
        self._api.open(self)

    def close(self):
        """Unbind this connection; closing a closed connection does nothing."""
        if self.connected:
            self._api.close()

    def send(self, data: RawPayload):
        """Send a request envelope to the API.

        Raises:
            ConnectionClosedError: if the connection isn't open.
            ProtocolError: if ``data`` isn't a well-formed request envelope.
        """
        if not self.connected:
            raise ConnectionClosedError()
        self._api.receive(data)

    def receive(self, data: Mapping[str, Any]):
        """Deliver a reply envelope from the API to the ``onmessage`` callback."""
        if self.onmessage is None:
            logger.debug('Dropping message with no onmessage handler: %r', data)
            return
        self.onmessage(MessageEvent(json.dumps(data)))
