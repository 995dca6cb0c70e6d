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

"""Client for the simulated controller API.

:class:`Environment` turns method calls into request envelopes, sends them
over a :class:`~jujusandbox.connection.ClientConnection` and turns the reply
back into a return value, or raises :class:`APIError` for error replies.
"""

import itertools
import logging
from typing import Any, Dict, Iterable, List, Optional

from .connection import ClientConnection, MessageEvent
from .envelope import Error, ProtocolError, Reply, Request

logger = logging.getLogger(__name__)


class APIError(Error):
    """Raised when the API answers a request with an error."""

    body: Dict[str, Any]
    """The reply envelope, as a dict."""

    message: str
    """Human-readable error message from the API."""

    def __init__(self, body: Dict[str, Any], message: str):
        """This shouldn't be instantiated directly."""
        super().__init__(message)  # Makes str(e) return message
        self.body = body
        self.message = message

    def __repr__(self):
        return f'APIError({self.body!r}, {self.message!r})'


class Environment:
    """A client of the controller API, talking over ``conn``.

    Request ids are allocated from 1 upwards. Because the API answers
    synchronously, each call returns (or raises) with its own reply.
    """

    def __init__(self, conn: ClientConnection):
        self._conn = conn
        self._request_ids = itertools.count(1)
        self._replies: Dict[Any, Reply] = {}
        conn.onmessage = self._on_message

    @property
    def connected(self) -> bool:
        return self._conn.connected

    def connect(self):
        self._conn.open()

    def close(self):
        self._conn.close()

    def _on_message(self, event: MessageEvent):
        reply = Reply.from_json(event.data)
        if reply.request_id in self._replies:
            raise ProtocolError(f'duplicate reply for request {reply.request_id}')
        self._replies[reply.request_id] = reply

    def _request(
        self, type: str, request: str, params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        request_id = next(self._request_ids)
        envelope = Request(type, request, params or {}, request_id)
        logger.debug('Sending %s.%s (RequestId %d)', type, request, request_id)
        self._conn.send(envelope.to_json())
        reply = self._replies.pop(request_id, None)
        if reply is None:
            raise ProtocolError(f'no reply received for request {request_id}')
        if reply.error is not None:
            raise APIError(reply.to_dict(), reply.error)
        assert reply.response is not None
        return reply.response

    def login(self, user: str, password: str):
        """Log in as ``user``; raises :class:`APIError` on bad credentials."""
        self._request('Admin', 'Login', {'AuthTag': f'user-{user}', 'Password': password})

    def deploy(
        self,
        charm_url: str,
        service_name: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
        config_yaml: Optional[str] = None,
        num_units: Optional[int] = None,
    ):
        """Deploy a charm as a new service."""
        params: Dict[str, Any] = {'CharmUrl': charm_url}
        if service_name is not None:
            params['ServiceName'] = service_name
        if config is not None:
            params['Config'] = config
        if config_yaml is not None:
            params['ConfigYAML'] = config_yaml
        if num_units is not None:
            params['NumUnits'] = num_units
        self._request('Client', 'ServiceDeploy', params)

    def set_charm(self, service_name: str, charm_url: str, force: bool = False):
        self._request('Client', 'ServiceSetCharm', {
            'ServiceName': service_name,
            'CharmUrl': charm_url,
            'Force': force,
        })

    def get_service(self, service_name: str) -> Dict[str, Any]:
        return self._request('Client', 'ServiceGet', {'ServiceName': service_name})

    def add_units(self, service_name: str, num_units: int = 1) -> List[str]:
        """Add units to a service, returning the new unit names."""
        response = self._request('Client', 'AddServiceUnits', {
            'ServiceName': service_name,
            'NumUnits': num_units,
        })
        return response['Units']

    def remove_units(self, unit_names: Iterable[str]):
        self._request('Client', 'DestroyServiceUnits', {'UnitNames': list(unit_names)})

    def expose(self, service_name: str):
        self._request('Client', 'ServiceExpose', {'ServiceName': service_name})

    def unexpose(self, service_name: str):
        self._request('Client', 'ServiceUnexpose', {'ServiceName': service_name})

    def add_relation(self, endpoint_a: str, endpoint_b: str) -> Dict[str, Dict[str, Any]]:
        """Relate two endpoints, returning the resolved endpoints keyed by service name."""
        response = self._request('Client', 'AddRelation', {'Endpoints': [endpoint_a, endpoint_b]})
        return response['Endpoints']

    def remove_relation(self, endpoint_a: str, endpoint_b: str):
        self._request('Client', 'DestroyRelation', {'Endpoints': [endpoint_a, endpoint_b]})

    def _modify_model_access(self, user: str, action: str, access: str):
        response = self._request('ModelManager', 'ModifyModelAccess', {
            'Changes': [{'UserTag': f'user-{user}', 'Action': action, 'Access': access}],
        })
        error = response['Results'][0].get('Error')
        if error:
            raise APIError(response, error)

    def grant_model_access(self, user: str, access: str):
        """Give ``user`` at least ``access`` ('read', 'write' or 'admin') on the model."""
        self._modify_model_access(user, 'grant', access)

    def revoke_model_access(self, user: str, access: str):
        """Take ``access`` away from ``user``; revoking 'read' removes all access."""
        self._modify_model_access(user, 'revoke', access)

    def model_user_info(self) -> List[Dict[str, Any]]:
        """Return one dict per user with access to the model, ordered by name."""
        response = self._request('Client', 'ModelUserInfo')
        return [result['Result'] for result in response['Results']]

    def watch_all(self) -> str:
        """Start a watcher of all environment changes, returning its id."""
        return self._request('Client', 'WatchAll')['AllWatcherId']

    def next_deltas(self, watcher_id: str) -> List[List[Any]]:
        """Return the changes the watcher hasn't seen yet."""
        return self._request('AllWatcher', 'Next', {'Id': watcher_id})['Deltas']

    def stop_watcher(self, watcher_id: str):
        self._request('AllWatcher', 'Stop', {'Id': watcher_id})
