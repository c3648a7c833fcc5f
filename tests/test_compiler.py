"""Tests for blueprint compilation."""

from typing import TYPE_CHECKING

import pytest

from pytest_forge.core import Compiler
from pytest_forge.errors import CompileError
from pytest_forge.schema import Source

if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest_forge.schema import Blueprint

TEST_FLAT_BLUEPRINT = '''
tags: api
variables:
  limit: 10
steps:
  - name: Create user
    tags: [users]
    request:
      url: /users
      verb: post
    expect:
      status: 201
  - store:
      id: 1
'''

TEST_AUTH_BLUEPRINT = '''
tags: auth
steps:
  - name: Login
    request:
      url: /login
      verb: POST
'''

TEST_INCLUDING_BLUEPRINT = '''
tags: api
steps:
  - tags: [login]
    include: auth
  - request:
      url: /users
'''


def test_compile_flattens_payloads(compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Split multi-payload steps and stamp top-level groups."""
    blueprint = compile_yaml(main=TEST_FLAT_BLUEPRINT)['main']

    assert [step.kind for step in blueprint.steps] == ['request', 'expect', 'store']
    assert [step.group for step in blueprint.steps] == [0, 0, 1]
    assert [step.name for step in blueprint.steps] == ['Create user', 'Create user', None]

    assert blueprint.steps[0].action.verb == 'POST'  # type: ignore[union-attr]
    assert blueprint.steps[0].tags == {'api', 'users'}
    assert blueprint.steps[2].tags == {'api'}
    assert blueprint.variables == {'limit': 10}


def test_compile_keeps_sources(compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Every compiled step remembers its declaration line."""
    content = 'steps:\n  - store: {first: 1}\n  - store: {second: 2}\n'

    steps = compile_yaml(main=content)['main'].steps

    assert [step.source for step in steps] == [
        Source(file_name='main.yml', line_number=2),
        Source(file_name='main.yml', line_number=3),
    ]


def test_compile_payload_order(compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Payloads of one step run in the fixed order."""
    content = '''
    - store:
        value: 1
    - expect:
        - status: 200
        - status: 201
      store:
        id: 2
      request:
        url: /ping
      call: prepare
      hooks:
        after_step: cleanup
    '''

    steps = compile_yaml(main=content)['main'].steps

    assert [step.kind for step in steps] == ['store', 'hooks', 'call', 'request', 'expect', 'expect', 'store']
    assert [step.group for step in steps] == [0, 1, 1, 1, 1, 1, 1]


def test_compile_drops_empty_steps(compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Steps without payloads or children disappear."""
    content = '''
    - name: Nothing to do
    - description: Group without steps
      steps: []
    - store:
        value: 1
    '''

    steps = compile_yaml(main=content)['main'].steps

    assert [step.kind for step in steps] == ['store']
    assert steps[0].group == 2


def test_compile_nested_groups(compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Nested steps inherit tags and variables of their ancestors."""
    content = '''
    - tags: outer
      variables:
        user: ann
        token: outer
      steps:
        - tags: [inner]
          variables:
            token: inner
          store:
            value: !var token
        - store:
            other: 1
    '''

    steps = compile_yaml(main=content)['main'].steps

    assert [step.tags for step in steps] == [{'outer', 'inner'}, {'outer'}]
    assert steps[0].variables == {'user': 'ann', 'token': 'inner'}
    assert steps[1].variables == {'user': 'ann', 'token': 'outer'}
    assert {step.group for step in steps} == {0}


def test_compile_include(compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Splice included steps with a notice and provenance."""
    compiled = compile_yaml(main=TEST_INCLUDING_BLUEPRINT, auth=TEST_AUTH_BLUEPRINT)
    steps = compiled['main'].steps

    assert [step.kind for step in steps] == ['notice', 'request', 'request']
    assert steps[0].action.message == 'Including auth (1 steps)'  # type: ignore[union-attr]

    login = steps[1]
    include_source = Source(file_name='main.yml', line_number=4)

    assert login.name == 'Login'
    assert login.source == Source(file_name='auth.yml', line_number=4)
    assert login.included_by == (include_source,)
    assert login.tags == {'auth', 'login', 'api'}
    assert login.group == 0

    assert steps[2].included_by == ()
    assert steps[2].group == 1

    assert compiled['auth'].steps[0].included_by == ()


def test_compile_nested_include_provenance(compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Provenance lists including sources innermost first."""
    compiled = compile_yaml(
        outer='- include: middle\n',
        middle='- store: {flag: 1}\n- include: inner\n',
        inner='- store: {value: 1}\n',
    )

    value = next(
        step for step in compiled['outer'].steps
        if step.kind == 'store' and 'value' in step.action.entries  # type: ignore[union-attr]
    )

    assert value.included_by == (
        Source(file_name='middle.yml', line_number=2),
        Source(file_name='outer.yml', line_number=1),
    )


def test_compile_include_list(compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Include several blueprints from one step, in order."""
    compiled = compile_yaml(
        main='- include: [first, second]\n',
        first='- store: {a: 1}\n',
        second='- store: {b: 2}\n- store: {c: 3}\n',
    )

    assert [step.kind for step in compiled['main'].steps] == [
        'notice', 'store', 'notice', 'store', 'store',
    ]


def test_compile_include_is_memoized(parse_blueprints: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Included blueprints are compiled once."""
    compiler = Compiler(parse_blueprints(
        first='- include: shared\n',
        second='- include: shared\n',
        shared='- store: {a: 1}\n',
    ))

    compiler.compile_all()

    assert compiler.steps_for('shared') is compiler.steps_for('shared')


def test_compile_unknown_include(compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Fail with the list of available blueprints."""
    with pytest.raises(CompileError, match=r'^Unknown blueprint "missing" included') as error:
        compile_yaml(main='- include: missing\n', other='- store: {a: 1}\n')

    assert 'Available blueprints: "main", "other"' in str(error.value)
    assert error.value.context is not None
    assert error.value.context.get('line_num') == 1


@pytest.mark.parametrize('documents, chain', (
    pytest.param({'main': '- include: main\n'}, 'main -> main', id='self'),
    pytest.param(
        {'first': '- include: second\n', 'second': '- include: first\n'},
        'first -> second -> first',
        id='mutual',
    ),
    pytest.param(
        {
            'first': '- include: second\n',
            'second': '- include: third\n',
            'third': '- include: second\n',
        },
        'second -> third -> second',
        id='nested',
    ),
))
def test_compile_include_cycle(documents: dict[str, str], chain: str,
                               compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Reject include cycles, naming the chain."""
    with pytest.raises(CompileError, match=rf'^Include cycle detected: {chain}'):
        compile_yaml(**documents)


def test_compile_shared_request(compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Merge shared request attributes into every descendant request."""
    content = '''
    - shared:
        request:
          url: /users
          headers:
            Accept: application/json
      steps:
        - request:
            verb: POST
            headers:
              X-Trace: one
            body:
              name: ann
        - steps:
            - request:
                url: /users/1
                headers:
                  Accept: text/plain
    '''

    steps = compile_yaml(main=content)['main'].steps
    first, second = (step.action for step in steps)

    assert first.url == '/users'  # type: ignore[union-attr]
    assert first.verb == 'POST'  # type: ignore[union-attr]
    assert first.headers == {'Accept': 'application/json', 'X-Trace': 'one'}  # type: ignore[union-attr]
    assert first.body == {'name': 'ann'}  # type: ignore[union-attr]

    assert second.url == '/users/1'  # type: ignore[union-attr]
    assert second.verb == 'GET'  # type: ignore[union-attr]
    assert second.headers == {'Accept': 'text/plain'}  # type: ignore[union-attr]

    assert all(step.shared is None for step in steps)


def test_compile_shared_body_deep_merge(compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Mapping bodies are deep-merged, step values win."""
    content = '''
    - shared:
        request:
          body:
            user:
              name: ann
              role: admin
      steps:
        - request:
            url: /users
            body:
              user:
                role: guest
    '''

    steps = compile_yaml(main=content)['main'].steps

    assert steps[0].action.body == {'user': {'name': 'ann', 'role': 'guest'}}  # type: ignore[union-attr]


@pytest.mark.parametrize('content, expect_message', (
    pytest.param('- just text\n', r'^Step must be a mapping', id='not a mapping'),
    pytest.param('- request: {verb: FETCH}\n', r'^Invalid step', id='invalid verb'),
    pytest.param('- store: {a: 1}\n  unknown: 1\n', r'^Invalid step', id='extra field'),
    pytest.param('- hooks: {before_forge: setup}\n', r'^Invalid step', id='hook event'),
    pytest.param('- hooks: {before_step: 42}\n', r'^Invalid step', id='hook reference'),
    pytest.param('- call: {arguments: [1]}\n', r'^Invalid step', id='call without name'),
    pytest.param('- expect: {json: {shape: {id: decimal}}}\n', r'^Invalid step', id='unknown type'),
))
def test_compile_invalid_step(content: str, expect_message: str,
                              compile_yaml: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Malformed steps fail with their location."""
    with pytest.raises(CompileError, match=expect_message) as error:
        compile_yaml(main=content)

    assert 'in "main.yml"' in str(error.value)


def test_compile_is_idempotent(compile_yaml: 'Callable[..., dict[str, Blueprint]]',
                               parse_blueprints: 'Callable[..., dict[str, Blueprint]]') -> None:
    """Flattening a compiled step list changes nothing."""
    table = parse_blueprints(main=TEST_INCLUDING_BLUEPRINT, auth=TEST_AUTH_BLUEPRINT)
    compiler = Compiler(table)

    steps = compiler.steps_for('main')
    reflattened = [
        item
        for step in steps
        for item in compiler.flatten(step, step.group)
    ]

    assert tuple(compiler.renormalize(reflattened, table['main'])) == steps
    assert all(not step.children and step.kind != 'include' for step in steps)
