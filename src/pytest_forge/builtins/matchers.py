"""Built-in matchers produced by YAML matcher instructions.

Matchers support strict and partial comparison of scalars, sequences
and mappings, ordering comparisons, regular expressions and runtime
type checks. Every matcher remembers the last value it was given so a
failed match can explain itself.
"""

# ruff: noqa: S101

from contextlib import suppress
from re import IGNORECASE, UNICODE, search
from typing import TYPE_CHECKING, Any

from pytest_forge.values import MAPPINGS, SCALARS, SEQUENCES, canonical_type, is_instance_of, type_name

if TYPE_CHECKING:
    from pytest_forge.values import RuntimeValue

_UNSET = object()


def _exact_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Perform strict equality comparison.

    Booleans never compare equal to integers.

    Raises:
        AssertionError: If values differ or types do not match.
    """
    if expected is None:
        assert actual is None
        return True

    assert isinstance(actual, type(expected))
    assert isinstance(actual, bool) == isinstance(expected, bool)
    assert actual == expected

    return True


def _seq_partial_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Each expected element must match at least one actual element.

    Raises:
        AssertionError: If inputs are not sequences.
    """
    assert isinstance(actual, SEQUENCES)
    assert isinstance(expected, SEQUENCES)

    for expected_item in expected:
        found = False
        for actual_item in actual:
            with suppress(AssertionError):
                found = _partial_match(actual_item, expected_item)
            if found:
                break
        assert found

    return True


def _map_partial_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Expected keys must exist in the actual mapping and match recursively.

    Raises:
        AssertionError: If inputs are not mappings or keys are missing.
    """
    assert isinstance(actual, MAPPINGS)
    assert isinstance(expected, MAPPINGS)

    for key, value in expected.items():
        assert key in actual
        assert _partial_match(actual[key], value)

    return True


def _partial_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Recursively perform partial matching."""
    if isinstance(expected, BaseMatcher):
        return expected.matches(actual)

    if expected is None or isinstance(expected, SCALARS):
        return _exact_match(actual, expected)

    if isinstance(expected, SEQUENCES):
        return _seq_partial_match(actual, expected)

    if isinstance(expected, MAPPINGS):
        return _map_partial_match(actual, expected)

    raise TypeError(f'Unsupported type {expected.__class__!r}')  # pragma: no cover


def _cmp(actual: 'RuntimeValue', expected: 'RuntimeValue',
         swap: bool = False, inclusive: bool = False) -> bool:
    """Base implementation for ordering comparisons."""
    if expected is None or actual is None:
        return actual is expected and inclusive

    assert not isinstance(actual, bool)
    if isinstance(expected, (int, float)):
        assert isinstance(actual, (int, float))
    else:
        assert isinstance(actual, type(expected))

    if swap:
        actual, expected = expected, actual

    assert actual < expected or (inclusive and actual == expected)

    return True


class BaseMatcher:
    """Base class for built-in matchers.

    Subclasses implement `check`, which may either return a boolean or
    raise `AssertionError` or `TypeError` on mismatch.
    """

    #: Short verb phrase used in descriptions.
    verb: str = 'match'

    def __init__(self, expected: 'RuntimeValue' = None) -> None:
        """Initialize a matcher.

        Args:
            expected: Reference value of the matcher.
        """
        self.expected = expected
        self.last_actual: Any = _UNSET

    def check(self, value: 'RuntimeValue') -> bool:
        raise NotImplementedError

    def matches(self, value: 'RuntimeValue') -> bool:
        """Return True if the value satisfies the matcher."""
        self.last_actual = value
        try:
            return bool(self.check(value))
        except (AssertionError, TypeError, ValueError):
            return False

    @property
    def description(self) -> str:
        """Short description of what the matcher accepts."""
        return f'{self.verb} {self.expected!r}'

    @property
    def failure_message(self) -> str:
        """Explain the last failed `matches` call."""
        if self.last_actual is _UNSET:
            return f'expected to {self.description}'

        return (
            f'expected {self.last_actual!r} ({type_name(self.last_actual)}) '
            f'to {self.description}'
        )

    def __repr__(self) -> str:
        """Debug representation."""
        return f'{type(self).__name__}({self.expected!r})'


class Equal(BaseMatcher):
    """Strict equality, types included."""

    verb = 'equal'

    def check(self, value: 'RuntimeValue') -> bool:
        return _exact_match(value, self.expected)


class NotEqual(BaseMatcher):
    """Strict inequality."""

    verb = 'not equal'

    def check(self, value: 'RuntimeValue') -> bool:
        try:
            return not _exact_match(value, self.expected)
        except AssertionError:
            return True


class Partial(BaseMatcher):
    """Recursive partial match of mappings and sequences.

    Nested matchers are honoured at any depth.
    """

    verb = 'include'

    def check(self, value: 'RuntimeValue') -> bool:
        return _partial_match(value, self.expected)


class LessThan(BaseMatcher):
    verb = 'be less than'

    def check(self, value: 'RuntimeValue') -> bool:
        return _cmp(value, self.expected)


class LessThanOrEqual(BaseMatcher):
    verb = 'be less than or equal to'

    def check(self, value: 'RuntimeValue') -> bool:
        return _cmp(value, self.expected, inclusive=True)


class GreaterThan(BaseMatcher):
    verb = 'be greater than'

    def check(self, value: 'RuntimeValue') -> bool:
        return _cmp(value, self.expected, swap=True)


class GreaterThanOrEqual(BaseMatcher):
    verb = 'be greater than or equal to'

    def check(self, value: 'RuntimeValue') -> bool:
        return _cmp(value, self.expected, swap=True, inclusive=True)


class Regex(BaseMatcher):
    """Regular expression search against a string."""

    verb = 'match pattern'

    def __init__(self, pattern: str, ignore_case: bool = False) -> None:
        """Initialize a regex matcher.

        Written as `!regex PATTERN` or `!regex {pattern: PATTERN, ignore_case: true}`.

        Args:
            pattern: Pattern searched anywhere in the value.
            ignore_case: Whether matching is case-insensitive.
        """
        super().__init__(pattern)
        self.flags = UNICODE | (IGNORECASE if ignore_case else 0)

    def check(self, value: 'RuntimeValue') -> bool:
        if not isinstance(value, str):
            return False

        return search(self.expected, value, self.flags) is not None


class KindOf(BaseMatcher):
    """Runtime type check against one or more canonical type names."""

    verb = 'be a kind of'

    def __init__(self, expected: str | list[str]) -> None:
        """Initialize a type matcher.

        Args:
            expected: Type name or list of type names (a union).

        Raises:
            ValueError: If a type name is unknown.
        """
        names = [expected] if isinstance(expected, str) else list(expected)
        super().__init__(tuple(canonical_type(name) for name in names))

    @property
    def description(self) -> str:
        """Short description of the accepted types."""
        return f'{self.verb} {' | '.join(self.expected)}'

    def check(self, value: 'RuntimeValue') -> bool:
        return any(is_instance_of(value, name) for name in self.expected)


class Anything(BaseMatcher):
    """Accepts any value, including `None`."""

    @property
    def description(self) -> str:
        return 'be anything'

    def check(self, value: 'RuntimeValue') -> bool:  # noqa: ARG002
        return True
