"""Tests for response validators."""

import pytest

from pytest_forge.builtins.matchers import GreaterThan, KindOf, Regex
from pytest_forge.errors import ContentValidationFailure, SchemaValidationFailure
from pytest_forge.validators import (
    ContentValidator,
    HeaderValidator,
    SchemaValidator,
    ShapeValidator,
    parse_schema,
    parse_shape,
)

TEST_USER_SCHEMA = {
    'type': 'object',
    'structure': {
        'id': {'type': 'Integer'},
        'name': {'type': 'string'},
        'email': {'type': '?string', 'optional': True},
        'roles': {
            'type': 'array',
            'pattern': {'type': 'string'},
        },
    },
}


def failures_by_path(failures: list) -> dict[str, str]:
    return {failure.path: failure.message for failure in failures}


def test_schema_valid() -> None:
    """A matching value produces no failures."""
    actual = {'id': 1, 'name': 'Ann', 'roles': ['admin'], 'extra': True}

    assert SchemaValidator().validate(actual, TEST_USER_SCHEMA) == []


def test_schema_type_mismatch() -> None:
    """Report the path, declared types and actual type."""
    failure, = SchemaValidator().validate(
        {'id': 'abc', 'name': 'Ann', 'roles': []},
        TEST_USER_SCHEMA,
    )

    assert failure.path == '.id'
    assert failure.expected == ['Integer']
    assert failure.actual == 'abc'
    assert failure.actual_type == 'string'


def test_schema_collects_every_failure() -> None:
    """Validation never stops at the first mismatch."""
    failures = SchemaValidator().validate(
        {'id': True, 'email': 5, 'roles': ['admin', 7]},
        TEST_USER_SCHEMA,
    )

    assert failures_by_path(failures) == {
        '.id': 'expected Integer, got boolean',
        '.name': 'key not found',
        '.email': 'expected string | null, got integer',
        '.roles[1]': 'expected string, got integer',
    }


def test_schema_root_failure() -> None:
    """Top-level failures use the `root` path."""
    failure, = SchemaValidator().validate([], TEST_USER_SCHEMA)

    assert failure.path == 'root'
    assert failure.actual_type == 'array'


def test_schema_type_failure_stops_recursion() -> None:
    """Structure is not walked when the type already differs."""
    failures = SchemaValidator().validate({'id': {'nested': 1}}, {
        'type': 'object',
        'structure': {'id': {'type': 'string', 'structure': {'nested': {'type': 'string'}}}},
    })

    assert failures_by_path(failures) == {'.id': 'expected string, got object'}


def test_schema_tuple_structure() -> None:
    """A list structure is a fixed-length tuple."""
    schema = {'type': 'array', 'structure': [{'type': 'integer'}, {'type': 'string'}]}

    assert SchemaValidator().validate([1, 'a'], schema) == []
    assert failures_by_path(SchemaValidator().validate([1], schema)) == {
        '[1]': 'item not found',
    }
    assert failures_by_path(SchemaValidator().validate([1, 'a', None], schema)) == {
        'root': 'expected 2 items, got 3',
    }


def test_schema_validate_or_raise() -> None:
    """Raise one aggregate error carrying every failure."""
    with pytest.raises(SchemaValidationFailure, match=r'^Schema failed with 3 mismatch') as error:
        SchemaValidator().validate_or_raise({'roles': 'admin'}, TEST_USER_SCHEMA)

    assert [failure.path for failure in error.value.failures] == ['.id', '.name', '.roles']


@pytest.mark.parametrize('schema, expect_message', (
    pytest.param({'type': 'decimal'}, r"^Unknown type 'decimal'", id='unknown type'),
    pytest.param({'type': 'object', 'required': True}, r'^Unknown schema keys: required', id='unknown key'),
    pytest.param({'structure': 'id'}, r'^Invalid schema structure', id='invalid structure'),
    pytest.param(None, r'^Schema can not be empty', id='empty'),
))
def test_parse_schema_invalid(schema: object, expect_message: str) -> None:
    """Malformed schemas are rejected before validation."""
    with pytest.raises(ValueError, match=expect_message):
        parse_schema(schema)


@pytest.mark.parametrize('shape, actual', (
    pytest.param('integer', 5, id='scalar'),
    pytest.param('?string', None, id='nullable'),
    pytest.param('integer | string', 'a', id='union'),
    pytest.param(['integer'], [1, 2, 3], id='array'),
    pytest.param(['integer'], [], id='empty array'),
    pytest.param(['integer', 'string'], [1, 'a'], id='tuple'),
    pytest.param({'id': 'int', 'tags': ['str']}, {'id': 1, 'tags': ['a']}, id='object'),
    pytest.param({'id': 'integer', 'email?': 'string'}, {'id': 1}, id='optional key'),
    pytest.param({'users': [{'id': 'number'}]}, {'users': [{'id': 1.5}, {'id': 2}]}, id='nested'),
))
def test_shape_valid(shape: object, actual: object) -> None:
    """Compact shapes accept matching values."""
    assert ShapeValidator().validate(actual, shape) == []


def test_shape_failures() -> None:
    """Shape mismatches are reported by path."""
    shape = {'id': 'integer', 'email?': 'string', 'users': [{'name': 'string'}]}
    actual = {'id': 1.5, 'email': None, 'users': [{'name': 'a'}, {}]}

    assert failures_by_path(ShapeValidator().validate(actual, shape)) == {
        '.id': 'expected integer, got number',
        '.email': 'expected string, got null',
        '.users[1].name': 'key not found',
    }


def test_parse_shape_optional_keys() -> None:
    """A trailing question mark marks a key optional."""
    node = parse_shape({'email?': 'string', 'id': 'integer'})

    assert node.structure['email'].optional  # type: ignore[index]
    assert not node.structure['id'].optional  # type: ignore[index]


def test_content_key_not_found() -> None:
    """Missing keys are reported with the `missing` actual type."""
    failure, = ContentValidator().validate({'id': 1}, {'user': {'name': 'Ann'}})

    assert failure.path == '.user'
    assert failure.message == 'key not found'
    assert failure.actual_type == 'missing'
    assert failure.expected == {'name': 'Ann'}


def test_content_literals_and_matchers() -> None:
    """Literals compare strictly, matchers decide for themselves."""
    expected = {
        'id': KindOf('integer'),
        'name': 'Ann',
        'age': GreaterThan(18),
        'active': 1,
        'items': [1, Regex('^b')],
    }
    actual = {
        'id': 7,
        'name': 'Ann',
        'age': 10,
        'active': True,
        'items': [1, 'bar', 3],
        'extra': None,
    }

    failures = ContentValidator().validate(actual, expected)

    assert failures_by_path(failures) == {
        '.age': 'expected 10 (integer) to be greater than 18',
        '.active': 'expected 1, got True',
        '.items': 'expected 2 items, got 3',
    }


def test_content_root_literal() -> None:
    """Top-level literals fail at `root`."""
    with pytest.raises(ContentValidationFailure, match=r'root: expected 1, got 2'):
        ContentValidator().validate_or_raise(2, 1)


@pytest.mark.parametrize('expected', (
    pytest.param({'Content-Type': 'application/json'}, id='exact'),
    pytest.param({'content-type': 'application/json'}, id='lowercase'),
    pytest.param({'CONTENT-TYPE': Regex('json')}, id='matcher'),
))
def test_headers_case_insensitive(expected: dict) -> None:
    """Header names are matched regardless of case."""
    headers = {'content-type': 'application/json', 'x-total': '10'}

    assert HeaderValidator().validate(headers, expected) == []


def test_headers_failures() -> None:
    """Missing and differing headers are reported."""
    headers = {'content-type': 'text/plain', 'x-total': '10'}
    expected = {
        'Content-Type': Regex('json'),
        'X-Total': 10,
        'X-Request-Id': 'abc',
    }

    failures = HeaderValidator().validate(headers, expected)

    assert failures_by_path(failures) == {
        '.Content-Type': "expected 'text/plain' (string) to match pattern 'json'",
        '.X-Request-Id': 'header not found',
    }
