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

import io

import pytest

from jujusandbox import Charm, CharmStore, CharmURL, RelationMeta, RelationRole, SandboxConfig


class TestCharmURL:
    @pytest.mark.parametrize(
        'url,expected',
        [
            ('cs:wordpress', CharmURL('cs', 'wordpress')),
            ('cs:precise/wordpress', CharmURL('cs', 'wordpress', series='precise')),
            ('cs:wordpress-10', CharmURL('cs', 'wordpress', revision=10)),
            (
                'cs:precise/wordpress-10',
                CharmURL('cs', 'wordpress', series='precise', revision=10),
            ),
            (
                'cs:~bob/trusty/ghost-3',
                CharmURL('cs', 'ghost', series='trusty', revision=3, user='bob'),
            ),
            ('local:precise/db-admin-2', CharmURL('local', 'db-admin', 'precise', 2)),
        ],
    )
    def test_parse(self, url: str, expected: CharmURL):
        parsed = CharmURL.parse(url)
        assert parsed == expected
        assert str(parsed) == url

    @pytest.mark.parametrize(
        'url', ['', 'wordpress', 'http:wordpress', 'cs:', 'cs:Wordpress', 'cs:precise/']
    )
    def test_parse_invalid(self, url: str):
        with pytest.raises(ValueError):
            CharmURL.parse(url)

    def test_resolved(self):
        assert CharmURL.parse('cs:precise/wordpress-10').resolved
        assert not CharmURL.parse('cs:precise/wordpress').resolved
        assert not CharmURL.parse('cs:wordpress-10').resolved


class TestRelationMeta:
    def test_interface_shorthand(self):
        meta = RelationMeta(RelationRole.requires, 'db', 'mysql')
        assert meta.interface_name == 'mysql'
        assert meta.scope == 'global'
        assert meta.limit is None
        assert not meta.optional

    def test_full(self):
        meta = RelationMeta(
            RelationRole.provides,
            'info',
            {'interface': 'juju-info', 'scope': 'container', 'limit': 1, 'optional': True},
        )
        assert meta.scope == 'container'
        assert meta.limit == 1
        assert meta.optional

    def test_invalid_scope(self):
        with pytest.raises(TypeError):
            RelationMeta(RelationRole.requires, 'db', {'interface': 'mysql', 'scope': 'galaxy'})

    def test_invalid_limit(self):
        with pytest.raises(TypeError):
            RelationMeta(RelationRole.requires, 'db', {'interface': 'mysql', 'limit': 'one'})

    def test_roles(self):
        assert RelationRole.peer.is_peer()
        assert not RelationRole.requires.is_peer()
        assert RelationRole.requires.is_counterpart(RelationRole.provides)
        assert RelationRole.provides.is_counterpart(RelationRole.requires)
        assert not RelationRole.provides.is_counterpart(RelationRole.provides)
        assert not RelationRole.peer.is_counterpart(RelationRole.peer)
        assert [role.wire_name for role in RelationRole] == ['peer', 'requirer', 'provider']


class TestCharm:
    def test_from_yaml(self):
        charm = Charm.from_yaml(
            """
name: ghost
revision: 3
owner: bob
summary: A blog.
provides:
  website: http
requires:
  db:
    interface: mysql
peers:
  ring:
    interface: ghost-peer
options:
  port:
    type: int
    default: 2368
""",
            default_series='trusty',
        )
        assert str(charm.url) == 'cs:~bob/trusty/ghost-3'
        assert charm.name == 'ghost'
        assert charm.summary == 'A blog.'
        assert not charm.subordinate
        assert sorted(charm.provides) == ['juju-info', 'website']
        assert charm.provides['website'].interface_name == 'http'
        assert charm.requires['db'].role is RelationRole.requires
        assert charm.peers['ring'].role is RelationRole.peer
        assert sorted(charm.relations) == ['db', 'juju-info', 'ring', 'website']
        assert charm.options['port']['default'] == 2368

    def test_from_yaml_stream(self):
        charm = Charm.from_yaml(io.StringIO('name: tiny\n'))
        assert str(charm.url) == 'cs:precise/tiny-0'

    def test_implicit_juju_info(self):
        charm = Charm.from_yaml('name: tiny\n')
        info = charm.provides['juju-info']
        assert info.interface_name == 'juju-info'
        assert info.scope == 'global'

    def test_subordinate_keeps_its_juju_info(self):
        charm = Charm.from_yaml("""
name: agent
subordinate: true
requires:
  juju-info:
    interface: juju-info
    scope: container
""")
        assert charm.subordinate
        assert 'juju-info' not in charm.provides
        assert charm.relations['juju-info'].role is RelationRole.requires
        assert charm.relations['juju-info'].scope == 'container'

    @pytest.mark.parametrize('metadata', ['', '- a list', 'summary: no name'])
    def test_from_yaml_invalid(self, metadata: str):
        with pytest.raises(ValueError):
            Charm.from_yaml(metadata)

    @pytest.mark.parametrize(
        'options,message',
        [
            ('options:\n  port: 80\n', "option 'port' should be a mapping, not int"),
            ('options: [port]\n', 'options should be a mapping, not list'),
        ],
    )
    def test_invalid_options(self, options: str, message: str):
        with pytest.raises(TypeError) as excinfo:
            Charm.from_yaml('name: ghost\nrevision: 1\n' + options)
        assert str(excinfo.value) == message

    def test_invalid_options_rejected_by_store(self):
        config = SandboxConfig(charms=('name: ghost\nrevision: 1\noptions:\n  port: 80\n',))
        with pytest.raises(TypeError):
            CharmStore.from_config(config)

    def test_unresolved_url(self):
        with pytest.raises(ValueError):
            Charm(CharmURL('cs', 'wordpress'), {'name': 'wordpress'})


class TestCharmStore:
    @pytest.fixture
    def store(self):
        return CharmStore.from_config(SandboxConfig())

    def test_fixtures(self, store: CharmStore):
        for url in (
            'cs:precise/wordpress-10',
            'cs:precise/mysql-7',
            'cs:precise/mediawiki-6',
            'cs:precise/puppet-5',
            'cs:precise/haproxy-18',
            'cs:precise/memcached-11',
        ):
            assert url in store
        assert len(store) == 6
        puppet = store.get('cs:precise/puppet-5')
        assert puppet is not None
        assert puppet.subordinate

    @pytest.mark.parametrize(
        'url', ['cs:wordpress', 'cs:precise/wordpress', 'cs:wordpress-10', 'cs:precise/wordpress-10']
    )
    def test_resolve(self, store: CharmStore, url: str):
        charm = store.resolve(url)
        assert charm is not None
        assert str(charm.url) == 'cs:precise/wordpress-10'

    @pytest.mark.parametrize(
        'url', ['cs:nope', 'cs:trusty/wordpress', 'cs:wordpress-11', 'cs:~bob/wordpress', 'junk']
    )
    def test_resolve_missing(self, store: CharmStore, url: str):
        assert store.resolve(url) is None

    def test_resolve_latest_revision(self, store: CharmStore):
        store.add(Charm.from_yaml('name: wordpress\nrevision: 12\n'))
        charm = store.resolve('cs:wordpress')
        assert charm is not None
        assert str(charm.url) == 'cs:precise/wordpress-12'
        charm = store.resolve('cs:wordpress-10')
        assert charm is not None
        assert str(charm.url) == 'cs:precise/wordpress-10'

    def test_resolve_prefers_default_series(self, store: CharmStore):
        store.add(Charm.from_yaml('name: wordpress\nrevision: 40\nseries: trusty\n'))
        charm = store.resolve('cs:wordpress')
        assert charm is not None
        assert str(charm.url) == 'cs:precise/wordpress-10'
        charm = store.resolve('cs:trusty/wordpress')
        assert charm is not None
        assert str(charm.url) == 'cs:trusty/wordpress-40'

    def test_resolve_other_series(self, store: CharmStore):
        store.add(Charm.from_yaml('name: ghost\nrevision: 3\nseries: trusty\n'))
        charm = store.resolve('cs:ghost')
        assert charm is not None
        assert str(charm.url) == 'cs:trusty/ghost-3'

    def test_resolve_owner(self, store: CharmStore):
        store.add(Charm.from_yaml('name: wordpress\nowner: bob\nrevision: 2\n'))
        charm = store.resolve('cs:~bob/wordpress')
        assert charm is not None
        assert str(charm.url) == 'cs:~bob/precise/wordpress-2'
        charm = store.resolve('cs:wordpress')
        assert charm is not None
        assert charm.url.user is None

    def test_config_charms(self):
        config = SandboxConfig(default_series='trusty', charms=('name: ghost\nrevision: 3\n',))
        store = CharmStore.from_config(config)
        assert store.default_series == 'trusty'
        assert 'cs:trusty/ghost-3' in store
        charm = store.resolve('cs:ghost')
        assert charm is not None
        # Fixture charms are still found, in their own series.
        charm = store.resolve('cs:wordpress')
        assert charm is not None
        assert str(charm.url) == 'cs:precise/wordpress-10'

    def test_empty_store(self):
        store = CharmStore()
        assert len(store) == 0
        assert store.resolve('cs:wordpress') is None
