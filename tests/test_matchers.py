"""Tests for built-in matchers."""

from typing import Any

import pytest

from pytest_forge.builtins.matchers import (
    Anything,
    BaseMatcher,
    Equal,
    GreaterThan,
    GreaterThanOrEqual,
    KindOf,
    LessThan,
    LessThanOrEqual,
    NotEqual,
    Partial,
    Regex,
)
from pytest_forge.matchers import is_matcher


@pytest.mark.parametrize('matcher, value, expected', (
    pytest.param(Equal(1), 1, True, id='eq int'),
    pytest.param(Equal(1), True, False, id='eq bool is not int'),
    pytest.param(Equal(1), 1.0, False, id='eq float is not int'),
    pytest.param(Equal('1'), 1, False, id='eq str is not int'),
    pytest.param(Equal(None), None, True, id='eq none'),
    pytest.param(Equal([1, {'a': 2}]), [1, {'a': 2}], True, id='eq nested'),
    pytest.param(NotEqual(1), 2, True, id='ne int'),
    pytest.param(NotEqual(1), True, True, id='ne bool'),
    pytest.param(NotEqual('a'), 'a', False, id='ne same'),
))
def test_equality(matcher: BaseMatcher, value: Any, expected: bool) -> None:  # noqa: ANN401
    """Equality matchers compare types strictly."""
    assert matcher.matches(value) is expected


@pytest.mark.parametrize('matcher, value, expected', (
    pytest.param(LessThan(5), 3, True, id='lt'),
    pytest.param(LessThan(5), 5, False, id='lt equal'),
    pytest.param(LessThanOrEqual(5), 5, True, id='lte equal'),
    pytest.param(GreaterThan(5), 5.5, True, id='gt float'),
    pytest.param(GreaterThan(5), '6', False, id='gt str'),
    pytest.param(GreaterThan(0), True, False, id='gt bool'),
    pytest.param(GreaterThanOrEqual('b'), 'b', True, id='gte str'),
    pytest.param(LessThanOrEqual(None), None, True, id='lte none'),
    pytest.param(LessThan(None), None, False, id='lt none'),
    pytest.param(LessThan(5), None, False, id='lt actual none'),
))
def test_ordering(matcher: BaseMatcher, value: Any, expected: bool) -> None:  # noqa: ANN401
    """Ordering matchers never compare across types."""
    assert matcher.matches(value) is expected


@pytest.mark.parametrize('expected, value, result', (
    pytest.param({'id': 1}, {'id': 1, 'name': 'Ann'}, True, id='mapping subset'),
    pytest.param({'id': 1, 'age': 3}, {'id': 1}, False, id='mapping missing key'),
    pytest.param({'user': {'id': GreaterThan(0)}}, {'user': {'id': 5, 'x': 1}}, True, id='nested matcher'),
    pytest.param([2, 3], [1, 2, 3], True, id='sequence subset'),
    pytest.param([4], [1, 2, 3], False, id='sequence missing item'),
    pytest.param([{'id': 2}], [{'id': 1}, {'id': 2, 'x': 0}], True, id='sequence of mappings'),
    pytest.param({'id': 1}, [1], False, id='type mismatch'),
))
def test_partial(expected: Any, value: Any, result: bool) -> None:  # noqa: ANN401
    """Partial matching accepts supersets, recursively."""
    assert Partial(expected).matches(value) is result


@pytest.mark.parametrize('matcher, value, expected', (
    pytest.param(Regex(r'^\d+$'), '123', True, id='full'),
    pytest.param(Regex('json'), 'application/json; charset=utf-8', True, id='search'),
    pytest.param(Regex('JSON'), 'application/json', False, id='case sensitive'),
    pytest.param(Regex('JSON', ignore_case=True), 'application/json', True, id='ignore case'),
    pytest.param(Regex(r'\d'), 123, False, id='not a string'),
))
def test_regex(matcher: BaseMatcher, value: Any, expected: bool) -> None:  # noqa: ANN401
    """Regular expressions search strings only."""
    assert matcher.matches(value) is expected


@pytest.mark.parametrize('types, value, expected', (
    pytest.param('integer', 1, True, id='integer'),
    pytest.param('integer', True, False, id='bool is not integer'),
    pytest.param('Number', 1, True, id='int is number'),
    pytest.param('str', 'a', True, id='alias'),
    pytest.param('hash', {}, True, id='hash alias'),
    pytest.param('nil', None, True, id='nil alias'),
    pytest.param(['string', 'null'], None, True, id='union'),
    pytest.param(['string', 'null'], 1, False, id='union mismatch'),
    pytest.param('array', (1, 2), True, id='tuple is array'),
))
def test_kind_of(types: str | list[str], value: Any, expected: bool) -> None:  # noqa: ANN401
    """Type matchers use canonical type names."""
    assert KindOf(types).matches(value) is expected


def test_kind_of_unknown_type() -> None:
    """Unknown type names are rejected when the matcher is built."""
    with pytest.raises(ValueError, match=r"^Unknown type 'decimal'"):
        KindOf('decimal')


@pytest.mark.parametrize('value', (None, 0, '', [], {'a': 1}))
def test_anything(value: Any) -> None:  # noqa: ANN401
    """Anything matches anything."""
    assert Anything().matches(value)


@pytest.mark.parametrize('matcher, value, message', (
    pytest.param(Equal(1), '1', "expected '1' (string) to equal 1", id='equal'),
    pytest.param(KindOf(['integer', 'null']), 'a', "expected 'a' (string) to be a kind of integer | null", id='kind of'),
    pytest.param(LessThan(2), 3, 'expected 3 (integer) to be less than 2', id='less than'),
))
def test_failure_message(matcher: BaseMatcher, value: Any, message: str) -> None:  # noqa: ANN401
    """Failed matches explain the last actual value."""
    assert not matcher.matches(value)
    assert matcher.failure_message == message


def test_failure_message_before_match() -> None:
    """Describe the expectation when nothing was matched yet."""
    assert Equal(1).failure_message == 'expected to equal 1'


def test_is_matcher() -> None:
    """Built-in matchers implement the matcher protocol."""
    assert is_matcher(Regex('a'))
    assert is_matcher(Anything())
    assert not is_matcher('a')
    assert not is_matcher(lambda value: True)  # noqa: ARG005
