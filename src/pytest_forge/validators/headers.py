"""Header validator.

Header names are looked up exactly first and case-insensitively
second. A failing matcher's own failure text is reported verbatim.
"""

from typing import ClassVar

from pytest_forge.errors import HeaderValidationFailure
from pytest_forge.matchers import is_matcher
from pytest_forge.values import RuntimeValue  # noqa: TC001

from .base import MISSING, BaseValidator, describe, find_key, key_path


def find_header(headers: RuntimeValue, name: str) -> RuntimeValue:
    """Look a header up exactly, then case-insensitively."""
    if (value := find_key(headers, name)) is not MISSING:
        return value

    if not isinstance(headers, dict):
        return MISSING

    lowered = name.lower()
    for key, value in headers.items():
        if str(key).lower() == lowered:
            return value

    return MISSING


class HeaderValidator(BaseValidator):
    """Checks response headers against expected values or matchers."""

    failure_class: ClassVar = HeaderValidationFailure

    def check(self, actual: RuntimeValue, expected: RuntimeValue, path: str) -> None:
        """Check every expected header."""
        for name, item in (expected or {}).items():
            item_path = key_path(path, name)

            if (value := find_header(actual, str(name))) is MISSING:
                self.fail(item_path, describe(item), MISSING, 'header not found')
                continue

            if is_matcher(item):
                if not item.matches(value):
                    self.fail(item_path, item.description, value, item.failure_message)
                continue

            if str(value) != str(item):
                self.fail(item_path, item, value, f'expected {item!r}, got {value!r}')
