"""Content validator.

Walks actual data against a tree of literal values and matchers.
Mappings and sequences recurse like schema structures; leaves are
checked by the matcher, or by type-strict equality for literals.
"""

from typing import ClassVar

from pytest_forge.errors import ContentValidationFailure
from pytest_forge.matchers import is_matcher
from pytest_forge.values import RuntimeValue, type_name

from .base import MISSING, BaseValidator, describe, find_key, index_path, key_path


def literal_equals(actual: RuntimeValue, expected: RuntimeValue) -> bool:
    """Compare two literals, types included; booleans are never numbers."""
    return type_name(actual) == type_name(expected) and actual == expected


class ContentValidator(BaseValidator):
    """Walks a value against expected content."""

    failure_class: ClassVar = ContentValidationFailure

    def check(self, actual: RuntimeValue, expected: RuntimeValue, path: str) -> None:
        """Dispatch on the kind of the expected value."""
        if is_matcher(expected):
            if not expected.matches(actual):
                self.fail(path, expected.description, actual, expected.failure_message)
            return

        if isinstance(expected, dict):
            self.check_mapping(actual, expected, path)
            return

        if isinstance(expected, (list, tuple)):
            self.check_sequence(actual, expected, path)
            return

        if not literal_equals(actual, expected):
            self.fail(path, expected, actual, f'expected {expected!r}, got {actual!r}')

    def check_mapping(self, actual: RuntimeValue, expected: dict, path: str) -> None:
        """Check every expected key; extra actual keys are allowed."""
        if not isinstance(actual, dict):
            self.fail(path, 'object', actual, f'expected object, got {type_name(actual)}')
            return

        for key, item in expected.items():
            item_path = key_path(path, key)
            if (value := find_key(actual, key)) is MISSING:
                self.fail(item_path, describe(item), MISSING, 'key not found')
                continue

            self.check(value, item, item_path)

    def check_sequence(self, actual: RuntimeValue, expected: list | tuple, path: str) -> None:
        """Check items position by position and the item count."""
        if not isinstance(actual, (list, tuple)):
            self.fail(path, 'array', actual, f'expected array, got {type_name(actual)}')
            return

        if len(actual) != len(expected):
            self.fail(
                path,
                f'{len(expected)} items',
                actual,
                f'expected {len(expected)} items, got {len(actual)}',
            )

        for index, (value, item) in enumerate(zip(actual, expected, strict=False)):
            self.check(value, item, index_path(path, index))
