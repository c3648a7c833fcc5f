"""Deferred lookups resolved against the context manager.

Lookups are produced by YAML instructions while a blueprint is loaded
and evaluated right before the step that holds them runs. A lookup is
a plain callable taking the context manager.
"""

from os import environ
from re import compile as regexp
from typing import TYPE_CHECKING

from pydantic_core import to_json

from pytest_forge.errors import UndefinedVariableError
from pytest_forge.names import VARIABLE_PATTERN

if TYPE_CHECKING:
    from re import Match

    from pytest_forge.context import ContextManager
    from pytest_forge.values import RuntimeValue


def split_path(path: str) -> list[str]:
    """Split a dotted path and validate its root segment.

    Raises:
        ValueError: If the path is empty or its root is not an identifier.
    """
    segments = path.strip().split('.')
    if not VARIABLE_PATTERN.match(segments[0]) or not all(segments):
        raise ValueError(f'Invalid variable path {path!r}')

    return segments


class ContextLookup:
    """Dotted-path lookup inside one context namespace.

    Numeric segments index into lists. Misses resolve to `None`.
    """

    def __init__(self, namespace: str, path: str, *prefix: str) -> None:
        """Initialize a lookup.

        Args:
            namespace: Context namespace to read from.
            path: Dot-separated path; the first segment names the entry.
            *prefix: Segments prepended to the path (e.g. the `variables`
                sub-namespace of `global`).

        Raises:
            ValueError: If the path is not valid.
        """
        self.namespace = namespace
        self.path = (*prefix, *split_path(path))

    def __call__(self, context: 'ContextManager') -> 'RuntimeValue':
        """Resolve the lookup against a context manager."""
        return context.retrieve(self.namespace, *self.path)

    def __repr__(self) -> str:
        """Debug representation."""
        return f'{type(self).__name__}({self.namespace!r}, {'.'.join(self.path)!r})'


class EnvironmentLookup:
    """Environment variable lookup with an optional default.

    The variable is read when the step runs, not when the file loads.
    """

    def __init__(self, name: str, default: str | None = None) -> None:
        """Initialize an environment lookup.

        Args:
            name: Environment variable name.
            default: Value returned when the variable is not set.
        """
        self.name = name.strip()
        self.default = default

        if not self.name:
            raise ValueError('Empty environment variable name')

    def __call__(self, context: 'ContextManager') -> str | None:  # noqa: ARG002
        """Read the environment variable."""
        return environ.get(self.name, self.default)

    def __repr__(self) -> str:
        """Debug representation."""
        return f'{type(self).__name__}({self.name!r})'


class TemplateLookup:
    """String with `{{ path }}` placeholders rendered when the step runs.

    A placeholder path is looked up in the variables first and in the
    store when no variable carries its root name. Strings are inserted
    as is, every other value as compact JSON (`true`, `[1,2]`).
    """

    PLACEHOLDER = regexp(r'\{\{\s*([^{}\s]+)\s*\}\}')

    def __init__(self, template: str) -> None:
        """Initialize a template.

        Args:
            template: Text with placeholders.

        Raises:
            ValueError: If a placeholder path is not valid.
        """
        self.template = template
        self.paths = {
            match.group(1): split_path(match.group(1))
            for match in self.PLACEHOLDER.finditer(template)
        }

    def lookup(self, context: 'ContextManager', placeholder: str) -> 'RuntimeValue':
        root, *_ = path = self.paths[placeholder]

        if root in context.variables:
            return context.retrieve('variables', *path)
        if root in context.store:
            return context.retrieve('store', *path)

        raise UndefinedVariableError(root)

    def __call__(self, context: 'ContextManager') -> str:
        """Render the template against a context manager.

        Raises:
            UndefinedVariableError: If a placeholder root is neither a
                variable nor a stored value.
        """
        def substitute(match: 'Match[str]') -> str:
            value = self.lookup(context, match.group(1))
            return value if isinstance(value, str) else to_json(value).decode()

        return self.PLACEHOLDER.sub(substitute, self.template)

    def __repr__(self) -> str:
        """Debug representation."""
        return f'{type(self).__name__}({self.template!r})'
