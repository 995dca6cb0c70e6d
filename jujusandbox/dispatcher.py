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

"""Emulation of a Juju controller's RPC API on top of :class:`~jujusandbox.state.BackendState`.

:class:`ControllerAPI` decodes request envelopes, gates them on
authentication, routes each ``(Type, Request)`` pair to its handler and
answers with a reply correlated by ``RequestId``. Everything happens
synchronously inside :meth:`ControllerAPI.receive`.

Errors come in two tiers. Misuse of the transport (receiving while no client
is bound, malformed envelopes) raises. Domain problems (unknown services,
bad credentials, incompatible relations) become ``Error`` replies and leave
the session usable.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Union

from . import log
from .connection import OPEN_TO_ANOTHER_CLIENT, ConnectionClosedError, InvalidStateError
from .envelope import RawPayload, Reply, Request
from .state import BackendState, Failure

if TYPE_CHECKING:
    from .connection import ClientConnection

logger = logging.getLogger(__name__)

LOGIN = ('Admin', 'Login')

UNAUTHENTICATED_ERROR = 'Please log in.'
INVALID_CREDENTIALS_ERROR = 'invalid entity name or password'
ENDPOINTS_REQUIRED_ERROR = 'Two string endpoint names required to establish a relation'

_Result = Union[Dict[str, Any], Failure]
_Handler = Callable[[Dict[str, Any]], _Result]


class _ParamError(Exception):
    """Raised by handlers when a parameter has the wrong type."""


_MISSING = object()


def _param(params: dict[str, Any], key: str, kind: type | tuple[type, ...], default: Any = _MISSING):
    value = params.get(key)
    if value is None:
        if default is _MISSING:
            raise _ParamError(f'missing parameter {key}')
        return default
    # bool is an int, but never a valid count.
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise _ParamError(f'invalid parameter {key}: {value!r}')
    return value


def _endpoint_pair(params: dict[str, Any]) -> tuple[str, str] | None:
    endpoints = params.get('Endpoints')
    if (
        not isinstance(endpoints, list)
        or len(endpoints) != 2
        or not all(isinstance(endpoint, str) for endpoint in endpoints)
    ):
        return None
    return endpoints[0], endpoints[1]


class ControllerAPI:
    """An in-process stand-in for the controller end of the API connection.

    At most one :class:`~jujusandbox.connection.ClientConnection` is bound at
    a time; replies go back to it through its ``receive`` method.

    Args:
        state: the environment the handlers operate on. The API owns it for
            the lifetime of the session.
    """

    def __init__(self, state: BackendState):
        self.state = state
        self.client: ClientConnection | None = None
        self._watchers: dict[str, int] = {}
        self._next_watcher_id = 1
        self._routes: dict[tuple[str, str], _Handler] = {
            LOGIN: self._login,
            ('Client', 'ServiceDeploy'): self._service_deploy,
            ('Client', 'ServiceSetCharm'): self._service_set_charm,
            ('Client', 'ServiceGet'): self._service_get,
            ('Client', 'AddServiceUnits'): self._add_service_units,
            ('Client', 'DestroyServiceUnits'): self._destroy_service_units,
            ('Client', 'ServiceExpose'): self._service_expose,
            ('Client', 'ServiceUnexpose'): self._service_unexpose,
            ('Client', 'AddRelation'): self._add_relation,
            ('Client', 'DestroyRelation'): self._destroy_relation,
            ('Client', 'ModelUserInfo'): self._model_user_info,
            ('ModelManager', 'ModifyModelAccess'): self._modify_model_access,
            ('Client', 'WatchAll'): self._watch_all,
            ('AllWatcher', 'Next'): self._all_watcher_next,
            ('AllWatcher', 'Stop'): self._all_watcher_stop,
        }

    @property
    def connected(self) -> bool:
        return self.client is not None

    @property
    def routes(self) -> frozenset[tuple[str, str]]:
        """The ``(Type, Request)`` pairs this API answers."""
        return frozenset(self._routes)

    def open(self, client: ClientConnection):
        """Bind a client; re-opening to the same client does nothing.

        Raises:
            InvalidStateError: if another client is bound.
        """
        if self.client is client:
            return
        if self.client is not None:
            raise InvalidStateError(OPEN_TO_ANOTHER_CLIENT)
        self.client = client
        logger.debug('Connection opened')

    def close(self):
        """Unbind the current client, if any."""
        if self.client is None:
            return
        self.client = None
        logger.debug('Connection closed')

    def receive(self, data: RawPayload):
        """Handle a request envelope and send the reply to the bound client.

        Raises:
            ConnectionClosedError: if no client is bound.
            ProtocolError: if ``data`` isn't a well-formed request envelope.
        """
        if self.client is None:
            raise ConnectionClosedError()
        request = Request.from_json(data)
        reply = self.dispatch(request)
        self.client.receive(reply.to_dict())

    def dispatch(self, request: Request) -> Reply:
        """Authenticate, route and execute a request, returning its reply."""
        if request.key != LOGIN and not self.state.authenticated:
            log._log_security_event(
                'WARN',
                log._SecurityEventAuthZ.AUTHZ_FAIL,
                f'{request.type}.{request.request}',
                description='Request refused before login.',
                app_id=self.state.app_id,
            )
            return Reply.failure(request.request_id, UNAUTHENTICATED_ERROR)
        handler = self._routes.get(request.key)
        if handler is None:
            logger.debug('Unknown request %s.%s', request.type, request.request)
            return Reply.failure(
                request.request_id, f'unknown request "{request.type}.{request.request}"')
        logger.debug('Dispatching %s.%s (RequestId %r)',
                     request.type, request.request, request.request_id)
        try:
            result = handler(request.params)
        except _ParamError as e:
            log._log_security_event(
                'WARN',
                log._SecurityEventInput.INPUT_VALIDATION_FAIL,
                f'{request.type}.{request.request}',
                description=str(e),
                app_id=self.state.app_id,
            )
            result = Failure(str(e))
        if isinstance(result, Failure):
            logger.debug('%s.%s failed: %s', request.type, request.request, result)
            return Reply.failure(request.request_id, result.message)
        return Reply.success(request.request_id, result)

    # Admin

    def _login(self, params: dict[str, Any]) -> _Result:
        user = params.get('AuthTag')
        password = params.get('Password')
        if not isinstance(user, str) or not isinstance(password, str):
            return Failure(INVALID_CREDENTIALS_ERROR)
        if not self.state.login(user, password):
            return Failure(INVALID_CREDENTIALS_ERROR)
        return {}

    # Services

    def _service_deploy(self, params: dict[str, Any]) -> _Result:
        result = self.state.deploy(
            _param(params, 'CharmUrl', str),
            service_name=_param(params, 'ServiceName', str, None),
            config=_param(params, 'Config', dict, None),
            config_yaml=_param(params, 'ConfigYAML', str, None),
            num_units=_param(params, 'NumUnits', int, None),
        )
        if isinstance(result, Failure):
            return result
        return {}

    def _service_set_charm(self, params: dict[str, Any]) -> _Result:
        result = self.state.set_charm(
            _param(params, 'ServiceName', str, ''),
            _param(params, 'CharmUrl', str),
            force=_param(params, 'Force', bool, False),
        )
        if isinstance(result, Failure):
            return result
        return {}

    def _service_get(self, params: dict[str, Any]) -> _Result:
        name = _param(params, 'ServiceName', str, '')
        service = self.state.service_by_name(name)
        if service is None:
            return Failure(f'"{name}" is an invalid service name.')
        charm = self.state.charm_by_url(service.charm_url)
        config: dict[str, Any] = {}
        options = charm.options if charm is not None else {}
        for option, declaration in options.items():
            config[option] = {
                'type': declaration.get('type', 'string'),
                'description': declaration.get('description', ''),
                'value': service.config.get(option, declaration.get('default')),
                'default': option not in service.config,
            }
        for option, value in service.config.items():
            config.setdefault(option, {'value': value, 'default': False})
        return {
            'Service': service.name,
            'Charm': service.charm_url,
            'Config': config,
            'Exposed': service.exposed,
            'Units': [unit.name for unit in service.units],
        }

    def _add_service_units(self, params: dict[str, Any]) -> _Result:
        result = self.state.add_units(
            _param(params, 'ServiceName', str, ''),
            _param(params, 'NumUnits', int, 1),
        )
        if isinstance(result, Failure):
            return result
        return {'Units': [unit.name for unit in result]}

    def _destroy_service_units(self, params: dict[str, Any]) -> _Result:
        names = _param(params, 'UnitNames', list)
        if not all(isinstance(name, str) for name in names):
            raise _ParamError(f'invalid parameter UnitNames: {names!r}')
        result = self.state.remove_units(names)
        if isinstance(result, Failure):
            return result
        return {}

    def _service_expose(self, params: dict[str, Any]) -> _Result:
        result = self.state.expose(_param(params, 'ServiceName', str, ''))
        if isinstance(result, Failure):
            return result
        return {}

    def _service_unexpose(self, params: dict[str, Any]) -> _Result:
        result = self.state.unexpose(_param(params, 'ServiceName', str, ''))
        if isinstance(result, Failure):
            return result
        return {}

    # Relations

    def _add_relation(self, params: dict[str, Any]) -> _Result:
        endpoints = _endpoint_pair(params)
        if endpoints is None:
            return Failure(ENDPOINTS_REQUIRED_ERROR)
        result = self.state.add_relation(*endpoints)
        if isinstance(result, Failure):
            return result
        return {
            'Endpoints': {
                endpoint.service: endpoint.to_dict() for endpoint in result.endpoints
            },
        }

    def _destroy_relation(self, params: dict[str, Any]) -> _Result:
        endpoints = _endpoint_pair(params)
        if endpoints is None:
            return Failure(ENDPOINTS_REQUIRED_ERROR)
        result = self.state.remove_relation(*endpoints)
        if isinstance(result, Failure):
            return result
        return {}

    # Model access

    def _model_user_info(self, params: dict[str, Any]) -> _Result:
        return {'Results': [{'Result': user.to_dict()} for user in self.state.model_users()]}

    def _modify_model_access(self, params: dict[str, Any]) -> _Result:
        changes = _param(params, 'Changes', list)
        results: list[dict[str, Any]] = []
        for change in changes:
            if not isinstance(change, dict):
                raise _ParamError(f'invalid parameter Changes: {changes!r}')
            result = self.state.modify_model_access(
                _param(change, 'UserTag', str),
                _param(change, 'Action', str),
                _param(change, 'Access', str),
            )
            results.append({'Error': result.message} if isinstance(result, Failure) else {})
        return {'Results': results}

    # Delta watchers

    def _watch_all(self, params: dict[str, Any]) -> _Result:
        watcher_id = str(self._next_watcher_id)
        self._next_watcher_id += 1
        # A new watcher first sees every change, which replays the whole environment.
        self._watchers[watcher_id] = 0
        return {'AllWatcherId': watcher_id}

    def _all_watcher_next(self, params: dict[str, Any]) -> _Result:
        watcher_id = _param(params, 'Id', str, '')
        if watcher_id not in self._watchers:
            return Failure(f'unknown watcher id "{watcher_id}"')
        deltas, self._watchers[watcher_id] = self.state.changes_since(self._watchers[watcher_id])
        return {'Deltas': [list(delta) for delta in deltas]}

    def _all_watcher_stop(self, params: dict[str, Any]) -> _Result:
        watcher_id = _param(params, 'Id', str, '')
        if self._watchers.pop(watcher_id, None) is None:
            return Failure(f'unknown watcher id "{watcher_id}"')
        return {}
