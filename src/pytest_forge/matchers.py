"""Matcher protocol consumed by the validators.

A matcher is an opaque predicate produced by the expression layer. The
engine only ever invokes `matches` and reads the human-readable texts;
it never inspects or constructs matchers itself.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Matcher(Protocol):
    """Opaque boolean test with a human-readable description."""

    #: Short description of what the matcher accepts.
    description: str

    def matches(self, value: Any) -> bool:  # noqa: ANN401
        """Return True if the value satisfies the matcher."""
        ...  # pragma: no cover

    @property
    def failure_message(self) -> str:
        """Explain the last failed `matches` call."""
        ...  # pragma: no cover


def is_matcher(value: Any) -> bool:  # noqa: ANN401
    """Check whether a value implements the matcher protocol."""
    return isinstance(value, Matcher)
