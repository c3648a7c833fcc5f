"""Tests for the run context."""

from pathlib import Path

import pytest

from pytest_forge.builtins.lookups import ContextLookup
from pytest_forge.context import ContextManager, Store, Variables, dig
from pytest_forge.errors import NamespaceError
from pytest_forge.schema import Blueprint
from pytest_forge.values import resolve


def make_blueprint(name: str = 'users/create', **kwargs: object) -> Blueprint:
    """Build an uncompiled blueprint located under `/blueprints`."""
    return Blueprint(
        name=name,
        file_path=Path(f'/blueprints/{name}.yml'),
        relative_path=Path(f'{name}.yml'),
        **kwargs,
    )


@pytest.mark.parametrize('path, expected', (
    pytest.param(('user', 'name'), 'Ann', id='mapping'),
    pytest.param(('items', '1'), 'b', id='index'),
    pytest.param(('items', -1), 'c', id='negative index'),
    pytest.param(('items', 5), None, id='out of range'),
    pytest.param(('user', 'missing', 'deep'), None, id='missing key'),
    pytest.param(('user', 'name', 'first'), None, id='scalar'),
))
def test_dig(path: tuple, expected: object) -> None:
    """Traverse nested data, misses resolve to None."""
    data = {
        'user': {'name': 'Ann'},
        'items': ['a', 'b', 'c'],
    }

    assert dig(data, path) == expected


def test_resolve_deferred_structures() -> None:
    """Resolve callables nested in mappings and sequences."""
    manager = ContextManager()
    manager.variables.set({'value': 10})

    resolved = resolve({
        'double': lambda ctx: ctx.retrieve('variables', 'value') * 2,
        'items': (1, lambda ctx: 'two'),  # noqa: ARG005
        'static': 'static',
    }, manager)

    assert resolved == {
        'double': 20,
        'items': [1, 'two'],
        'static': 'static',
    }


def test_resolve_unsupported_type() -> None:
    """Reject objects that are neither values nor deferred callables."""
    class Opaque:
        pass

    with pytest.raises(TypeError, match=r'has unsupported type$'):
        resolve(Opaque())


def test_variables_overlay_wins() -> None:
    """Overlay keys shadow the base mapping, even with blank values."""
    variables = Variables({'token': 'base', 'user': 'ann'})
    variables.use_overlay({'token': None})

    assert 'token' in variables
    assert variables.retrieve('token') is None
    assert variables.retrieve('user') == 'ann'

    variables.clear_overlay()

    assert variables.retrieve('token') == 'base'


def test_store_copies_values() -> None:
    """Stored values do not follow later mutation of the source."""
    store = Store()
    data = {'ids': [1, 2]}

    store.store('data', data)
    data['ids'].append(3)

    assert store.retrieve('data') == {'ids': [1, 2]}
    assert store.retrieve('missing') is None


def test_store_clear_spec_scope() -> None:
    """Clearing `spec` keeps `file` entries, clearing `file` drops all."""
    store = Store()
    store.store('kept', 1)
    store.store('dropped', 2, scope='spec')

    store.clear_scope('spec')

    assert 'kept' in store
    assert 'dropped' not in store

    store.clear_scope('file')

    assert len(store) == 0


def test_store_unknown_scope() -> None:
    """Reject scopes other than `file` and `spec`."""
    with pytest.raises(ValueError, match=r'^Unknown store scope'):
        Store().store('value', 1, scope='session')  # type: ignore[arg-type]


@pytest.mark.parametrize('namespace, path, expected', (
    pytest.param('global', ('variables', 'api'), 'v1', id='global'),
    pytest.param('metadata', ('file_name',), 'create.yml', id='metadata file name'),
    pytest.param('metadata', ('relative_path',), 'users/create.yml', id='metadata relative path'),
    pytest.param('store', ('user', 'id'), 7, id='store'),
    pytest.param('variables', ('items', 0), 'first', id='variables'),
))
def test_context_retrieve(namespace: str, path: tuple, expected: object) -> None:
    """Read values from each of the four namespaces."""
    manager = ContextManager({'api': 'v1'})
    manager.start_blueprint(make_blueprint(variables={'items': ['first']}))
    manager.store.store('user', {'id': 7})

    assert manager.retrieve(namespace, *path) == expected


@pytest.mark.parametrize('namespace, path', (
    pytest.param('session', ('value',), id='unknown namespace'),
    pytest.param('global', ('params', 'value'), id='unknown global namespace'),
    pytest.param('global', ('value',), id='missing global key'),
    pytest.param('metadata', ('author',), id='unknown metadata'),
    pytest.param('metadata', (), id='metadata without key'),
    pytest.param('store', (), id='store without key'),
    pytest.param('variables', (), id='variables without key'),
))
def test_context_unknown_namespace(namespace: str, path: tuple) -> None:
    """Unknown namespaces are errors, not misses."""
    manager = ContextManager()

    with pytest.raises(NamespaceError, match=r'^Unknown namespace'):
        manager.retrieve(namespace, *path)


def test_context_resolves_nested_lookups() -> None:
    """Deferred values stored in variables are resolved on read."""
    manager = ContextManager()
    manager.variables.set({
        'user': {'id': 42},
        'alias': ContextLookup('variables', 'user.id'),
    })

    assert manager.retrieve('variables', 'alias') == 42


def test_start_blueprint_resets_state() -> None:
    """Starting a blueprint resets store, metadata and variables."""
    manager = ContextManager({'api': 'v1'})
    manager.global_.store('variables', {'token': 'secret'})
    manager.store.store('stale', True)
    manager.variables.set({'stale': True}, {'overlay': True})

    manager.start_blueprint(make_blueprint('orders', variables={'limit': 5}))

    assert len(manager.store) == 0
    assert manager.retrieve('variables', 'limit') == 5
    assert manager.retrieve('variables', 'stale') is None
    assert manager.retrieve('variables', 'overlay') is None
    assert manager.retrieve('metadata', 'file_path') == '/blueprints/orders.yml'
    assert manager.retrieve('global', 'variables', 'token') == 'secret'


def test_clear_restores_initial_globals() -> None:
    """Clearing the manager restores the initial global variables."""
    manager = ContextManager({'api': 'v1'})
    manager.global_.store('variables', {'api': 'v2', 'token': 'secret'})

    manager.clear()

    assert manager.retrieve('global', 'variables', 'api') == 'v1'
    assert manager.retrieve('global', 'variables', 'token') is None
