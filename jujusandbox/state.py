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

"""In-memory model of a Juju environment: services, units, relations and users.

:class:`BackendState` holds the whole graph and exposes mutation operations
that either apply the change and return the affected entities, or return a
:class:`Failure` describing why they could not. Only contract violations by
the caller (such as passing ``None`` where a name is required) raise.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
from typing import Any, Iterable, Literal

from . import log
from ._private import yaml
from .charmstore import Charm, CharmStore, RelationMeta, RelationRole
from .config import SandboxConfig

logger = logging.getLogger(__name__)

ACCESS_LEVELS = ('read', 'write', 'admin')
"""Model access levels, lowest first."""

DeltaKind = Literal['service', 'unit', 'relation']
DeltaOp = Literal['change', 'remove']
Delta = tuple[DeltaKind, DeltaOp, dict[str, Any]]


@dataclasses.dataclass(frozen=True)
class Failure:
    """The reason a state mutation could not be applied."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclasses.dataclass
class Unit:
    """A unit of a service, named ``service/number``."""

    service: str
    number: int

    @property
    def name(self) -> str:
        return f'{self.service}/{self.number}'

    def to_delta(self, charm_url: str) -> dict[str, Any]:
        return {'Name': self.name, 'Service': self.service, 'CharmURL': charm_url}


@dataclasses.dataclass
class Service:
    """A deployed service."""

    name: str
    charm_url: str
    config: dict[str, Any] = dataclasses.field(default_factory=dict)
    exposed: bool = False
    subordinate: bool = False
    units: list[Unit] = dataclasses.field(default_factory=list)
    next_unit_number: int = 0
    """Ordinal for the next unit; it only grows, so unit names are never reused."""

    def to_delta(self) -> dict[str, Any]:
        return {
            'Name': self.name,
            'CharmURL': self.charm_url,
            'Exposed': self.exposed,
            'Subordinate': self.subordinate,
            'Config': dict(self.config),
        }


@dataclasses.dataclass(frozen=True)
class Endpoint:
    """One side of a relation, resolved against the service's charm."""

    service: str
    name: str
    interface: str
    role: RelationRole
    scope: str
    optional: bool = False
    limit: int | None = None

    def __str__(self) -> str:
        return f'{self.service}:{self.name}'

    def to_dict(self) -> dict[str, Any]:
        return {
            'Name': self.name,
            'Role': self.role.wire_name,
            'Interface': self.interface,
            'Optional': self.optional,
            'Limit': self.limit or 0,
            'Scope': self.scope,
        }


@dataclasses.dataclass(frozen=True)
class Relation:
    """An established relation between two endpoints."""

    id: int
    endpoints: tuple[Endpoint, Endpoint]

    @property
    def key(self) -> frozenset[str]:
        """The unordered pair of endpoint names; unique across the model."""
        return frozenset(str(endpoint) for endpoint in self.endpoints)

    @property
    def scope(self) -> str:
        return self.endpoints[0].scope

    def involves(self, service: str) -> bool:
        return any(endpoint.service == service for endpoint in self.endpoints)

    def to_delta(self) -> dict[str, Any]:
        return {
            'Key': ' '.join(sorted(self.key)),
            'Id': self.id,
            'Endpoints': [
                {'ServiceName': endpoint.service, 'Relation': endpoint.to_dict()}
                for endpoint in self.endpoints
            ],
        }


@dataclasses.dataclass
class ModelUser:
    """A user with access to the model."""

    name: str
    access: str
    display_name: str = ''
    last_connection: datetime.datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        last = self.last_connection.isoformat() if self.last_connection else None
        return {
            'User': self.name,
            'DisplayName': self.display_name,
            'Access': self.access,
            'LastConnection': last,
        }


def _user_name(tag: str) -> str:
    """Strip the ``user-`` prefix from a user tag."""
    return tag[len('user-'):] if tag.startswith('user-') else tag


def _invalid_service(name: str) -> Failure:
    return Failure(f'"{name}" is an invalid service name.')


_CHARM_STORE_ERROR = 'Error interacting with the charm store.'
_ENDPOINTS_REQUIRED = 'Two string endpoint names required to establish a relation'


class BackendState:
    """The in-memory environment mutated by the controller API handlers.

    Args:
        config: the session configuration; defaults are used if omitted.
        charm_store: the store deploys resolve charms from; built from
            ``config`` if omitted.
    """

    def __init__(
        self,
        config: SandboxConfig | None = None,
        charm_store: CharmStore | None = None,
    ):
        self.config = config or SandboxConfig()
        self.charm_store = charm_store or CharmStore.from_config(self.config)
        self.authenticated = False
        self._charms: dict[str, Charm] = {}
        self._services: dict[str, Service] = {}
        self._relations: list[Relation] = []
        self._relation_ids = 0
        self._users: dict[str, ModelUser] = {
            self.config.user: ModelUser(
                self.config.user, 'admin', display_name=self.config.user),
        }
        self._deltas: list[Delta] = []
        self._next_changes_cursor = 0

    # Authentication.

    @property
    def app_id(self) -> str:
        """Identifies this model in security event logs."""
        return f'{self.config.model_uuid}-{self.config.model_name}'

    def login(self, user: str, password: str) -> bool:
        """Authenticate the session, returning whether the credentials matched.

        ``user`` may be a plain name or a ``user-`` tag.
        """
        if user is None or password is None:
            raise TypeError('user and password are required')
        name = _user_name(user)
        if name != self.config.user or password != self.config.password:
            log._log_security_event(
                'WARN',
                log._SecurityEventAuthN.AUTHN_LOGIN_FAIL,
                name,
                description=f'Failed login attempt for {name!r}.',
                app_id=self.app_id,
            )
            return False
        self.authenticated = True
        if name in self._users:
            self._users[name].last_connection = datetime.datetime.now(datetime.timezone.utc)
        log._log_security_event(
            'INFO',
            log._SecurityEventAuthN.AUTHN_LOGIN_SUCCESS,
            name,
            description=f'User {name!r} logged in.',
            app_id=self.app_id,
        )
        return True

    def logout(self):
        self.authenticated = False

    # Read accessors.

    def service_by_name(self, name: str) -> Service | None:
        return self._services.get(name)

    def units_for_service(self, service: str | Service) -> list[Unit]:
        if isinstance(service, Service):
            service = service.name
        found = self._services.get(service)
        return list(found.units) if found is not None else []

    def charm_by_url(self, url: str) -> Charm | None:
        """Return a charm that has been loaded into the environment by a deploy or set-charm."""
        return self._charms.get(url)

    def relations_for_service(self, service: str) -> list[Relation]:
        return [relation for relation in self._relations if relation.involves(service)]

    @property
    def services(self) -> list[Service]:
        return list(self._services.values())

    @property
    def relations(self) -> list[Relation]:
        return list(self._relations)

    def model_users(self) -> list[ModelUser]:
        return sorted(self._users.values(), key=lambda user: user.name)

    # Services and units.

    def _load_charm(self, url: str) -> Charm | None:
        charm = self.charm_store.resolve(url)
        if charm is not None:
            self._charms.setdefault(str(charm.url), charm)
        return charm

    def deploy(
        self,
        charm_url: str,
        service_name: str | None = None,
        config: dict[str, Any] | None = None,
        config_yaml: str | None = None,
        num_units: int | None = None,
    ) -> Service | Failure:
        """Deploy a new service of the given charm.

        The service name defaults to the charm name, and the number of units
        to 1 (0 for subordinate charms).
        """
        if charm_url is None:
            raise TypeError('charm_url is required')
        charm = self._load_charm(charm_url)
        if charm is None:
            return Failure(_CHARM_STORE_ERROR)
        name = service_name or charm.name
        if name in self._services:
            return Failure('A service with this name already exists.')
        if config and config_yaml:
            return Failure('Cannot supply both config and config YAML.')
        if config_yaml:
            try:
                config = yaml.safe_load(config_yaml)
            except yaml.YAMLError as e:
                return Failure(f'Error parsing config YAML: {e}')
            if not isinstance(config, dict):
                return Failure('Config YAML must be a mapping.')
        if num_units is None:
            num_units = 0 if charm.subordinate else 1
        if num_units < 0:
            return Failure('must add at least one unit')
        if charm.subordinate and num_units:
            return Failure('subordinate service must be deployed without units')

        service = Service(
            name=name,
            charm_url=str(charm.url),
            config=dict(config or {}),
            subordinate=charm.subordinate,
        )
        self._services[name] = service
        self._record('service', 'change', service.to_delta())
        self._create_units(service, num_units)
        logger.debug('Deployed service %r from %s with %d unit(s)', name, charm.url, num_units)
        return service

    def _create_units(self, service: Service, count: int) -> list[Unit]:
        units: list[Unit] = []
        for _ in range(count):
            unit = Unit(service.name, service.next_unit_number)
            service.next_unit_number += 1
            service.units.append(unit)
            units.append(unit)
            self._record('unit', 'change', unit.to_delta(service.charm_url))
        return units

    def add_units(self, service_name: str, num_units: int) -> list[Unit] | Failure:
        """Add units to a service, continuing its unit numbering."""
        service = self._services.get(service_name)
        if service is None:
            return _invalid_service(service_name)
        if num_units < 1:
            return Failure('must add at least one unit')
        if service.subordinate:
            return Failure(
                f'cannot add unit to service "{service_name}": service is a subordinate')
        return self._create_units(service, num_units)

    def remove_units(self, unit_names: Iterable[str]) -> list[Unit] | Failure:
        """Remove the named units; nothing is removed unless all of them exist.

        A name given more than once is removed once.
        """
        unit_names = list(dict.fromkeys(unit_names))
        found: list[tuple[Service, Unit]] = []
        for unit_name in unit_names:
            service_name, _, _ = unit_name.partition('/')
            service = self._services.get(service_name)
            unit = None
            if service is not None:
                unit = next((u for u in service.units if u.name == unit_name), None)
            if service is None or unit is None:
                return Failure(f'unit "{unit_name}" does not exist')
            if service.subordinate:
                return Failure(f'unit "{unit_name}" is a subordinate')
            found.append((service, unit))
        for service, unit in found:
            service.units.remove(unit)
            self._record('unit', 'remove', unit.to_delta(service.charm_url))
        return [unit for _, unit in found]

    def set_charm(
        self, service_name: str, charm_url: str, force: bool = False
    ) -> Service | Failure:
        """Switch a service to another charm, keeping its units."""
        service = self._services.get(service_name)
        if service is None:
            return _invalid_service(service_name)
        charm = self._load_charm(charm_url)
        if charm is None:
            return Failure(_CHARM_STORE_ERROR)
        if charm.subordinate != service.subordinate:
            return Failure(
                f'cannot upgrade service "{service_name}" to charm "{charm.url}": '
                "cannot change a service's subordinacy"
            )
        # TODO: reject upgrades that drop endpoints of established relations unless force is set.
        service.charm_url = str(charm.url)
        self._record('service', 'change', service.to_delta())
        logger.debug('Service %r now uses %s (force=%s)', service_name, charm.url, force)
        return service

    def expose(self, service_name: str) -> Service | Failure:
        return self._set_exposed(service_name, True)

    def unexpose(self, service_name: str) -> Service | Failure:
        return self._set_exposed(service_name, False)

    def _set_exposed(self, service_name: str, exposed: bool) -> Service | Failure:
        service = self._services.get(service_name)
        if service is None:
            return _invalid_service(service_name)
        if service.exposed != exposed:
            service.exposed = exposed
            self._record('service', 'change', service.to_delta())
        return service

    # Relations.

    def _candidates(self, endpoint: str) -> tuple[Service, list[RelationMeta]] | None:
        service_name, _, relation_name = endpoint.partition(':')
        service = self._services.get(service_name)
        if service is None:
            return None
        charm = self._charms.get(service.charm_url)
        if charm is None:
            return None
        metas = [
            meta for meta in charm.relations.values()
            if not meta.role.is_peer()
            and (not relation_name or meta.relation_name == relation_name)
        ]
        return service, metas

    def add_relation(self, endpoint_a: str, endpoint_b: str) -> Relation | Failure:
        """Relate two endpoints, each ``service:relation`` or just ``service``.

        A bare service name is resolved to the single relation compatible
        with the other side.
        """
        if not isinstance(endpoint_a, str) or not isinstance(endpoint_b, str):
            return Failure(_ENDPOINTS_REQUIRED)
        side_a = self._candidates(endpoint_a)
        side_b = self._candidates(endpoint_b)
        if side_a is None or side_b is None:
            return Failure('Charm not loaded.')
        service_a, metas_a = side_a
        service_b, metas_b = side_b
        matches = [
            (meta_a, meta_b)
            for meta_a in metas_a
            for meta_b in metas_b
            if meta_a.interface_name == meta_b.interface_name
            and meta_a.role.is_counterpart(meta_b.role)
        ]
        if not matches:
            return Failure('No matching interfaces.')
        if len(matches) > 1:
            return Failure('Ambiguous relation.')
        meta_a, meta_b = matches[0]
        scope = 'container' if 'container' in (meta_a.scope, meta_b.scope) else 'global'
        endpoints = (
            self._endpoint(service_a, meta_a, scope),
            self._endpoint(service_b, meta_b, scope),
        )
        key = frozenset(str(endpoint) for endpoint in endpoints)
        if any(relation.key == key for relation in self._relations):
            return Failure('Relation already exists.')
        self._relation_ids += 1
        relation = Relation(self._relation_ids, endpoints)
        self._relations.append(relation)
        self._record('relation', 'change', relation.to_delta())
        logger.debug('Added %s relation %s', scope, ' '.join(sorted(key)))
        return relation

    @staticmethod
    def _endpoint(service: Service, meta: RelationMeta, scope: str) -> Endpoint:
        return Endpoint(
            service=service.name,
            name=meta.relation_name,
            interface=meta.interface_name,
            role=meta.role,
            scope=scope,
            optional=meta.optional,
            limit=meta.limit,
        )

    def remove_relation(self, endpoint_a: str, endpoint_b: str) -> Relation | None | Failure:
        """Remove the relation between two endpoints.

        Returns the removed relation, or ``None`` if there was no such
        relation (which is not an error).
        """
        if not isinstance(endpoint_a, str) or not isinstance(endpoint_b, str):
            return Failure(_ENDPOINTS_REQUIRED)
        for endpoint in (endpoint_a, endpoint_b):
            service_name = endpoint.partition(':')[0]
            if service_name not in self._services:
                return _invalid_service(service_name)
        for relation in self._relations:
            if _matches(relation, endpoint_a, endpoint_b):
                self._relations.remove(relation)
                self._record('relation', 'remove', relation.to_delta())
                return relation
        return None

    # Model access.

    def modify_model_access(
        self, user: str, action: str, access: str
    ) -> ModelUser | None | Failure:
        """Grant or revoke a user's access to the model.

        Access levels are ordered ``read < write < admin``. Granting raises a
        user to ``access``; revoking ``access`` drops the user to the level
        below it, and revoking ``read`` removes the user entirely (in which
        case ``None`` is returned).
        """
        if user is None:
            raise TypeError('user is required')
        name = _user_name(user)
        if access not in ACCESS_LEVELS:
            return Failure(f'invalid model access permission "{access}"')
        level = ACCESS_LEVELS.index(access)
        current = self._users.get(name)
        current_level = ACCESS_LEVELS.index(current.access) if current is not None else -1
        if action == 'grant':
            if current_level >= level:
                return Failure(f'user already has "{access}" access or greater')
            if current is None:
                current = self._users[name] = ModelUser(name, access, display_name=name)
            current.access = access
        elif action == 'revoke':
            if current is None or current_level < level:
                return Failure(f'user "{name}" does not have "{access}" access')
            if level == 0:
                del self._users[name]
                current = None
            else:
                assert current is not None
                current.access = ACCESS_LEVELS[level - 1]
        else:
            return Failure(f'invalid action "{action}"')
        log._log_security_event(
            'INFO',
            log._SecurityEventAuthZ.AUTHZ_CHANGE,
            name,
            description=f'{action} {access} access on model {self.config.model_name!r}.',
            app_id=self.app_id,
        )
        return current

    # Change log.

    def _record(self, kind: DeltaKind, op: DeltaOp, data: dict[str, Any]):
        self._deltas.append((kind, op, data))

    @property
    def revision(self) -> int:
        """Number of changes recorded so far."""
        return len(self._deltas)

    def changes_since(self, revision: int) -> tuple[list[Delta], int]:
        """Return the changes made after ``revision`` and the current revision."""
        return list(self._deltas[revision:]), len(self._deltas)

    def next_changes(self) -> list[Delta]:
        """Return the changes made since the previous call."""
        changes, self._next_changes_cursor = self.changes_since(self._next_changes_cursor)
        return changes


def _matches(relation: Relation, endpoint_a: str, endpoint_b: str) -> bool:
    """Report whether a relation joins the two (possibly bare) endpoint names."""
    first, second = relation.endpoints

    def fits(endpoint: Endpoint, wanted: str) -> bool:
        return wanted in (endpoint.service, str(endpoint))

    return (fits(first, endpoint_a) and fits(second, endpoint_b)) or (
        fits(first, endpoint_b) and fits(second, endpoint_a)
    )

