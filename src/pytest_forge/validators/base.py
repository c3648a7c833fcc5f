"""Shared validator machinery.

Validators are pure functions from (actual, expected) to a list of
path-tagged failures. They never stop at the first mismatch. Paths use
`.key` for mapping keys and `[index]` for sequence items, concatenated
for nesting; failures at the top level use the path `root`.
"""

from typing import Any, ClassVar

from pydantic import Field

from pytest_forge.errors import ValidationFailure
from pytest_forge.matchers import is_matcher
from pytest_forge.models import SchemaModel
from pytest_forge.values import RuntimeValue, type_name  # noqa: TC001

ROOT_PATH = 'root'

#: Marker returned by `find_key` for absent keys.
MISSING: Any = object()


class Failure(SchemaModel):
    """Single mismatch found by a validator."""

    path: str = Field(
        title='Path',
        description='Location of the mismatch inside the validated value.',
    )

    expected: RuntimeValue = Field(
        default=None,
        title='Expected descriptor',
    )

    actual: RuntimeValue = Field(
        default=None,
        title='Actual value',
    )

    actual_type: str = Field(
        title='Actual type',
    )

    message: str = Field(
        title='Message',
    )

    check: str | None = Field(
        default=None,
        title='Check',
        description='Expectation the failure belongs to, e.g. `status` or `content`.',
    )

    def __str__(self) -> str:
        """Render as `[check] path: message`."""
        prefix = f'[{self.check}] ' if self.check else ''
        return f'{prefix}{self.path}: {self.message}'


def key_path(path: str, key: object) -> str:
    """Extend a path with a mapping key."""
    return f'{path}.{key}'


def index_path(path: str, index: int) -> str:
    """Extend a path with a sequence index."""
    return f'{path}[{index}]'


def find_key(data: RuntimeValue, key: object) -> RuntimeValue:
    """Look a key up by itself or by its string form.

    Returns:
        The value, or `MISSING` if data is not a mapping or lacks the key.
    """
    if not isinstance(data, dict):
        return MISSING

    for candidate in (key, str(key)):
        if candidate in data:
            return data[candidate]

    return MISSING


class BaseValidator:
    """Base class collecting failures during a single walk.

    Subclasses implement `check`, which walks the actual value and calls
    `fail` for every mismatch.
    """

    #: Aggregate error raised by `validate_or_raise`.
    failure_class: ClassVar[type[ValidationFailure]] = ValidationFailure

    def __init__(self) -> None:
        """Initialize a validator."""
        self.failures: list[Failure] = []

    def prepare(self, expected: RuntimeValue) -> RuntimeValue:
        """Normalize the expected value before walking."""
        return expected

    def check(self, actual: RuntimeValue, expected: RuntimeValue, path: str) -> None:
        raise NotImplementedError

    def fail(self, path: str, expected: RuntimeValue, actual: RuntimeValue,
             message: str) -> None:
        """Record a mismatch."""
        self.failures.append(Failure(
            path=path or ROOT_PATH,
            expected=expected,
            actual=None if actual is MISSING else actual,
            actual_type='missing' if actual is MISSING else type_name(actual),
            message=message,
        ))

    def validate(self, actual: RuntimeValue, expected: RuntimeValue) -> list[Failure]:
        """Collect every mismatch between actual and expected values.

        Args:
            actual: Value under test.
            expected: Expectation tree.

        Returns:
            Failures in walk order, empty when the value matches.
        """
        self.failures = []
        self.check(actual, self.prepare(expected), '')

        return list(self.failures)

    def validate_or_raise(self, actual: RuntimeValue, expected: RuntimeValue) -> None:
        """Validate and raise one aggregate error carrying every failure.

        Raises:
            ValidationFailure: Subclass matching the validator.
        """
        if failures := self.validate(actual, expected):
            raise self.failure_class(failures)


def describe(value: RuntimeValue) -> RuntimeValue:
    """Expected descriptor of a literal or matcher."""
    if is_matcher(value):
        return value.description

    return value
