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

"""Fixture charm store: charm URLs, charm metadata and URL resolution."""

from __future__ import annotations

import dataclasses
import enum
import logging
import re
from typing import TYPE_CHECKING, Any, Iterable, TextIO

from ._private import yaml

if TYPE_CHECKING:
    from .config import SandboxConfig

logger = logging.getLogger(__name__)

_URL_RE = re.compile(
    r'^(?P<schema>cs|local):'
    r'(?:~(?P<user>[a-z0-9][a-zA-Z0-9+.-]*)/)?'
    r'(?:(?P<series>[a-z]+(?:-[a-z]+)*)/)?'
    r'(?P<name>[a-z][a-z0-9]*(?:-[a-z0-9]*[a-z][a-z0-9]*)*)'
    r'(?:-(?P<revision>\d+))?$'
)


@dataclasses.dataclass(frozen=True)
class CharmURL:
    """A parsed charm URL such as ``cs:~user/precise/wordpress-10``.

    The series and revision are ``None`` when the URL leaves them out; a URL
    with both is fully resolved.
    """

    schema: str
    name: str
    series: str | None = None
    revision: int | None = None
    user: str | None = None

    @classmethod
    def parse(cls, url: str) -> CharmURL:
        """Parse a charm URL.

        Raises:
            ValueError: if ``url`` isn't a valid charm URL.
        """
        match = _URL_RE.match(url)
        if match is None:
            raise ValueError(f'invalid charm URL: {url!r}')
        revision = match.group('revision')
        return cls(
            schema=match.group('schema'),
            name=match.group('name'),
            series=match.group('series'),
            revision=int(revision) if revision is not None else None,
            user=match.group('user'),
        )

    @property
    def resolved(self) -> bool:
        return self.series is not None and self.revision is not None

    def __str__(self) -> str:
        parts = [f'{self.schema}:']
        if self.user is not None:
            parts.append(f'~{self.user}/')
        if self.series is not None:
            parts.append(f'{self.series}/')
        parts.append(self.name)
        if self.revision is not None:
            parts.append(f'-{self.revision}')
        return ''.join(parts)


class RelationRole(enum.Enum):
    """An annotation for a charm's role in a relation.

    For each relation a charm's role may be

    - A Peer
    - A service consumer in the relation ('requires')
    - A service provider in the relation ('provides')
    """

    peer = 'peer'
    requires = 'requires'
    provides = 'provides'

    def is_peer(self) -> bool:
        """Report whether this role is 'peer'.

        ``role.is_peer()`` is a shortcut for ``role == RelationRole.peer``.
        """
        return self is RelationRole.peer

    @property
    def wire_name(self) -> str:
        """The role name used in API responses: 'peer', 'requirer' or 'provider'."""
        return _WIRE_ROLES[self]

    def is_counterpart(self, other: RelationRole) -> bool:
        """Report whether a relation can join this role to ``other``."""
        return {self, other} == {RelationRole.requires, RelationRole.provides}


_WIRE_ROLES = {
    RelationRole.peer: 'peer',
    RelationRole.requires: 'requirer',
    RelationRole.provides: 'provider',
}


class RelationMeta:
    """Object containing metadata about a relation definition."""

    role: RelationRole
    """Role this relation takes, one of 'peer', 'requires', or 'provides'."""

    relation_name: str
    """Name of this relation."""

    interface_name: str
    """Definition of the interface protocol."""

    limit: int | None
    """Maximum number of connections to this relation endpoint."""

    scope: str
    """Scope based on how this relation should be used.

    Will be either ``"global"`` or ``"container"``.
    """

    optional: bool
    """Informational flag from the charm metadata."""

    VALID_SCOPES = ['global', 'container']

    def __init__(self, role: RelationRole, relation_name: str, raw: dict[str, Any] | str):
        assert isinstance(
            role, RelationRole
        ), f'role should be one of {list(RelationRole)!r}, not {role!r}'
        # Old-style metadata allows just the interface name.
        if isinstance(raw, str):
            raw = {'interface': raw}
        self.role = role
        self.relation_name = relation_name
        self.interface_name = raw['interface']

        self.limit = limit = raw.get('limit', None)
        if limit is not None and not isinstance(limit, int):
            raise TypeError(f'limit should be an int, not {type(limit)}')

        self.scope = raw.get('scope') or self.VALID_SCOPES[0]
        if self.scope not in self.VALID_SCOPES:
            raise TypeError(
                "scope should be one of {}; not '{}'".format(
                    ', '.join(f"'{s}'" for s in self.VALID_SCOPES), self.scope
                )
            )

        self.optional = raw.get('optional', False)

    def __repr__(self):
        return (
            f'<RelationMeta {self.role.value} {self.relation_name!r} '
            f'interface={self.interface_name!r} scope={self.scope!r}>'
        )


class Charm:
    """A charm in the store, identified by its fully resolved URL.

    Args:
        url: the resolved charm URL.
        raw: a mapping containing the contents of metadata.yaml, optionally
            with an ``options`` mapping in the config.yaml format.
    """

    url: CharmURL
    """Fully resolved URL of this charm."""

    name: str
    """Name of this charm."""

    summary: str
    """Short description of what this charm does."""

    subordinate: bool
    """Whether this charm is intended to be used as a subordinate charm."""

    requires: dict[str, RelationMeta]
    """Relations this charm requires."""

    provides: dict[str, RelationMeta]
    """Relations this charm provides, including the implicit ``juju-info``."""

    peers: dict[str, RelationMeta]
    """Peer relations."""

    relations: dict[str, RelationMeta]
    """All :class:`RelationMeta` instances, merged from the three above."""

    options: dict[str, dict[str, Any]]
    """Config option declarations, keyed by option name."""

    def __init__(self, url: CharmURL, raw: dict[str, Any]):
        if not url.resolved:
            raise ValueError(f'charm URL {url} is not fully resolved')
        self.url = url
        self.name = raw.get('name', url.name)
        self.summary = raw.get('summary', '')
        self.subordinate = raw.get('subordinate', False)
        self.requires = {
            name: RelationMeta(RelationRole.requires, name, rel)
            for name, rel in (raw.get('requires') or {}).items()
        }
        self.provides = {
            name: RelationMeta(RelationRole.provides, name, rel)
            for name, rel in (raw.get('provides') or {}).items()
        }
        # Every charm implicitly provides juju-info, unless it declares that name itself.
        if 'juju-info' not in self.requires:
            self.provides.setdefault(
                'juju-info', RelationMeta(RelationRole.provides, 'juju-info', 'juju-info'))
        self.peers = {
            name: RelationMeta(RelationRole.peer, name, rel)
            for name, rel in (raw.get('peers') or {}).items()
        }
        self.relations: dict[str, RelationMeta] = {}
        self.relations.update(self.requires)
        self.relations.update(self.provides)
        self.relations.update(self.peers)
        options = raw.get('options') or {}
        if not isinstance(options, dict):
            raise TypeError(f'options should be a mapping, not {type(options).__name__}')
        for name, declaration in options.items():
            if not isinstance(declaration, dict):
                raise TypeError(
                    f'option {name!r} should be a mapping, not {type(declaration).__name__}'
                )
        self.options = dict(options)

    @classmethod
    def from_yaml(cls, metadata: str | TextIO, default_series: str = 'precise') -> Charm:
        """Instantiate a :class:`Charm` from a metadata YAML document.

        Besides the usual metadata.yaml fields, the document may carry
        ``revision`` (default 0), ``series`` (default ``default_series``),
        ``owner`` and ``options``.
        """
        raw = yaml.safe_load_mapping(metadata, 'charm metadata')
        if 'name' not in raw:
            raise ValueError('charm metadata needs a name')
        url = CharmURL(
            schema='cs',
            name=raw['name'],
            series=raw.get('series', default_series),
            revision=int(raw.get('revision', 0)),
            user=raw.get('owner'),
        )
        return cls(url, raw)

    def __repr__(self):
        return f'<Charm {self.url}>'


class CharmStore:
    """An in-memory charm store that resolves partial charm URLs.

    Args:
        charms: the charms available in the store.
        default_series: the series used for URLs that don't name one.
    """

    def __init__(self, charms: Iterable[Charm] = (), default_series: str = 'precise'):
        self.default_series = default_series
        self._charms: dict[str, Charm] = {}
        for charm in charms:
            self.add(charm)

    @classmethod
    def from_config(cls, config: SandboxConfig) -> CharmStore:
        """Build the fixture store plus any charms named in ``config``."""
        store = cls(default_series=config.default_series)
        for metadata in _FIXTURE_CHARMS:
            store.add(Charm.from_yaml(metadata))
        for metadata in config.charms:
            store.add(Charm.from_yaml(metadata, default_series=config.default_series))
        return store

    def add(self, charm: Charm):
        """Add a charm to the store, replacing one with the same URL."""
        self._charms[str(charm.url)] = charm

    def get(self, url: str) -> Charm | None:
        """Return the charm with exactly this resolved URL, if any."""
        return self._charms.get(url)

    def resolve(self, url: str) -> Charm | None:
        """Resolve a possibly partial charm URL to a charm in the store.

        A missing series prefers :attr:`default_series` (then any series), and
        a missing revision picks the latest one. Returns ``None`` if nothing
        matches or the URL can't be parsed.
        """
        try:
            wanted = CharmURL.parse(url)
        except ValueError:
            logger.debug('Cannot resolve malformed charm URL %r', url)
            return None
        candidates = [
            charm for charm in self._charms.values()
            if charm.url.name == wanted.name
            and charm.url.user == wanted.user
            and (wanted.series is None or charm.url.series == wanted.series)
            and (wanted.revision is None or charm.url.revision == wanted.revision)
        ]
        if wanted.series is None:
            preferred = [c for c in candidates if c.url.series == self.default_series]
            candidates = preferred or candidates
        if not candidates:
            logger.debug('No charm in the store matches %r', url)
            return None
        return max(candidates, key=lambda charm: charm.url.revision or 0)

    def __contains__(self, url: str) -> bool:
        return url in self._charms

    def __len__(self) -> int:
        return len(self._charms)


_FIXTURE_CHARMS = (
    '''
name: wordpress
revision: 10
summary: WordPress is a full featured web blogging tool.
provides:
  website:
    interface: http
requires:
  db:
    interface: mysql
  cache:
    interface: memcache
    optional: true
peers:
  loadbalancer:
    interface: reversenginx
options:
  engine:
    type: string
    default: nginx
  tuning:
    type: string
    default: single
''',
    '''
name: mysql
revision: 7
summary: MySQL is a fast, stable and true multi-user, multi-threaded SQL database.
provides:
  db:
    interface: mysql
  db-admin:
    interface: mysql-root
  master:
    interface: mysql-oneway-replication
requires:
  slave:
    interface: mysql-oneway-replication
peers:
  cluster:
    interface: mysql-ha
options:
  dataset-size:
    type: string
    default: 80%
''',
    '''
name: mediawiki
revision: 6
summary: A wiki engine, the one behind Wikipedia.
provides:
  website:
    interface: http
requires:
  db:
    interface: mysql
  cache:
    interface: memcache
options:
  name:
    type: string
    default: Please set name of wiki
''',
    '''
name: puppet
revision: 5
summary: Puppet agent for configuration management.
subordinate: true
requires:
  juju-info:
    interface: juju-info
    scope: container
options:
  puppet-server:
    type: string
    default: ''
''',
    '''
name: haproxy
revision: 18
summary: Fast and reliable load balancing reverse proxy.
provides:
  website:
    interface: http
requires:
  reverseproxy:
    interface: http
peers:
  peer:
    interface: haproxy-peer
''',
    '''
name: memcached
revision: 11
summary: A distributed memory object caching system.
provides:
  cache:
    interface: memcache
''',
)
