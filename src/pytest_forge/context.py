"""Execution context for blueprint runs.

The context manager owns four independently lifecycled namespaces:

- `global`: run-wide variables shared across blueprints;
- `metadata`: location of the currently executing blueprint;
- `store`: values captured by `store` steps, tagged with a scope;
- `variables`: blueprint base variables plus a per-step overlay.

One context manager is created per run and passed explicitly through
the runner and into every deferred value and callback.
"""

from copy import deepcopy
from logging import getLogger
from typing import TYPE_CHECKING, Any, Literal, NamedTuple

from pytest_forge.errors import NamespaceError
from pytest_forge.values import resolve

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

if TYPE_CHECKING:
    from pytest_forge.schema import Blueprint
    from pytest_forge.values import RuntimeValue

logger = getLogger(__name__)

type Scope = Literal['file', 'spec']

SCOPES: tuple[Scope, ...] = ('file', 'spec')


def dig(value: 'RuntimeValue', path: 'Iterable[str | int]') -> 'RuntimeValue':
    """Traverse nested mappings and sequences.

    Missing keys, out of range indices and type mismatches resolve to
    `None` instead of raising.

    Args:
        value: Root value.
        path: Keys and indices to follow.

    Returns:
        The value found at the end of the path, or `None`.
    """
    for key in path:
        if value is None:
            return None

        if isinstance(value, dict):
            value = value.get(key, value.get(str(key)))
        elif isinstance(value, (list, tuple)) and str(key).lstrip('-').isdecimal():
            index = int(key)
            value = value[index] if -len(value) <= index < len(value) else None
        else:
            return None

    return value


class Global:
    """Run-wide state surviving across blueprints.

    Only the `variables` namespace exists; it is cleared at run start.
    """

    NAMESPACES = ('variables',)

    def __init__(self) -> None:
        """Initialize empty global state."""
        self.variables: dict[str, Any] = {}

    def _ensure_namespace(self, namespace: str) -> None:
        if namespace not in self.NAMESPACES:
            raise NamespaceError(namespace, self.NAMESPACES)

    def retrieve(self, namespace: str, key: str) -> 'RuntimeValue':
        """Read a global value.

        Raises:
            NamespaceError: If the namespace is not `variables`.
        """
        self._ensure_namespace(namespace)
        return self.variables.get(key)

    def store(self, namespace: str, values: 'Mapping[str, RuntimeValue]') -> None:
        """Merge values into a global namespace.

        Raises:
            NamespaceError: If the namespace is not `variables`.
        """
        self._ensure_namespace(namespace)
        self.variables.update(deepcopy(dict(values)))

    def clear(self) -> None:
        self.variables.clear()


class Metadata:
    """Location of the blueprint currently being executed."""

    NAMESPACES = ('file_name', 'file_path', 'relative_path')

    def __init__(self) -> None:
        """Initialize empty metadata."""
        self.values: dict[str, Any] = {}

    def _ensure_namespace(self, namespace: str) -> None:
        if namespace not in self.NAMESPACES:
            raise NamespaceError(namespace, self.NAMESPACES)

    def retrieve(self, namespace: str) -> 'RuntimeValue':
        """Read a metadata value.

        Raises:
            NamespaceError: If the namespace is unknown.
        """
        self._ensure_namespace(namespace)
        return self.values.get(namespace)

    def store(self, namespace: str, value: 'RuntimeValue') -> None:
        """Overwrite a metadata value.

        Raises:
            NamespaceError: If the namespace is unknown.
        """
        self._ensure_namespace(namespace)
        self.values[namespace] = value

    def clear(self) -> None:
        self.values.clear()


class StoreEntry(NamedTuple):
    """Captured value together with its lifetime scope."""

    value: 'RuntimeValue'
    scope: Scope


class Store:
    """Named captured values with `file` or `spec` lifetime.

    Values are deep-copied on write so later mutation of live data can
    not corrupt stored history. Unknown keys are a miss, not an error.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self.entries: dict[str, StoreEntry] = {}

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def store(self, key: str, value: 'RuntimeValue', scope: Scope = 'file') -> None:
        """Persist a deep copy of a value.

        Args:
            key: Entry name.
            value: Value to capture.
            scope: Lifetime of the entry.

        Raises:
            ValueError: If the scope is unknown.
        """
        if scope not in SCOPES:
            raise ValueError(f'Unknown store scope {scope!r}')

        self.entries[key] = StoreEntry(deepcopy(value), scope)

    def retrieve(self, key: str) -> 'RuntimeValue':
        """Read a stored value, `None` if the key was never stored."""
        if (entry := self.entries.get(key)) is None:
            return None

        return entry.value

    def clear_scope(self, scope: Scope) -> None:
        """Drop entries by scope.

        Clearing `file` drops everything; clearing `spec` drops only
        `spec`-scoped entries.
        """
        if scope == 'file':
            self.entries.clear()
            return

        self.entries = {
            key: entry
            for key, entry in self.entries.items()
            if entry.scope != scope
        }

    def clear(self) -> None:
        self.clear_scope('file')


_MISSING = object()


class Variables:
    """Blueprint base variables with a temporarily active overlay.

    The overlay wins whenever it defines a key, even when the value is
    blank; otherwise lookups fall back to the base mapping.
    """

    def __init__(self, base: 'Mapping[str, RuntimeValue] | None' = None,
                 overlay: 'Mapping[str, RuntimeValue] | None' = None) -> None:
        """Initialize variables.

        Args:
            base: Base mapping of the blueprint.
            overlay: Initially active overlay.
        """
        self.base: dict[str, Any] = {}
        self.overlay: dict[str, Any] = {}
        self.set(base, overlay)

    def __contains__(self, key: object) -> bool:
        return key in self.overlay or key in self.base

    def retrieve(self, key: str) -> 'RuntimeValue':
        """Read a variable, preferring the overlay."""
        if (value := self.overlay.get(key, _MISSING)) is not _MISSING:
            return value

        return self.base.get(key)

    def store(self, key: str, value: 'RuntimeValue') -> None:
        """Persist a deep copy of a value into the base mapping."""
        self.base[key] = deepcopy(value)

    def use_overlay(self, overlay: 'Mapping[str, RuntimeValue] | None') -> None:
        """Activate an overlay, replacing the previous one."""
        self.overlay = dict(overlay or {})

    def clear_overlay(self) -> None:
        self.overlay = {}

    def set(self, base: 'Mapping[str, RuntimeValue] | None' = None,
            overlay: 'Mapping[str, RuntimeValue] | None' = None) -> None:
        """Replace both the base mapping and the overlay."""
        self.base = dict(base or {})
        self.use_overlay(overlay)

    def clear(self) -> None:
        self.set()


class ContextManager:
    """Entry point to the four context namespaces.

    Attributes:
        global_: Run-wide variables.
        metadata: Current blueprint location.
        store: Captured values.
        variables: Blueprint variables and step overlay.
    """

    NAMESPACES = ('global', 'metadata', 'store', 'variables')

    def __init__(self, global_variables: 'Mapping[str, RuntimeValue] | None' = None) -> None:
        """Initialize a context manager.

        Args:
            global_variables: Initial global variables, restored on `clear`.
        """
        self.initial_globals = dict(global_variables or {})

        self.global_ = Global()
        self.metadata = Metadata()
        self.store = Store()
        self.variables = Variables()

        self.global_.store('variables', self.initial_globals)

    def retrieve(self, namespace: str, *path: str | int) -> 'RuntimeValue':
        """Read a value from one of the namespaces.

        The first path element selects the entry inside the namespace
        (for `global` the sub-namespace followed by the key). Remaining
        elements traverse into the value. Deferred values found along the
        way are resolved against this context.

        Args:
            namespace: One of `global`, `metadata`, `store`, `variables`.
            *path: Entry name and optional nested keys or indices.

        Returns:
            Resolved value or `None` on a miss.

        Raises:
            NamespaceError: If a namespace is unknown or no entry is named.
        """
        match namespace:
            case 'global':
                if len(path) < 2:  # noqa: PLR2004
                    raise NamespaceError(str(path[0]) if path else '', self.global_.NAMESPACES)
                sub, key, *rest = path
                value = self.global_.retrieve(str(sub), str(key))
            case 'metadata':
                if not path:
                    raise NamespaceError('', self.metadata.NAMESPACES)
                key, *rest = path
                value = self.metadata.retrieve(str(key))
            case 'store':
                if not path:
                    raise NamespaceError('', self.store.entries)
                key, *rest = path
                value = self.store.retrieve(str(key))
            case 'variables':
                if not path:
                    raise NamespaceError('', {**self.variables.base, **self.variables.overlay})
                key, *rest = path
                value = self.variables.retrieve(str(key))
            case _:
                raise NamespaceError(namespace, self.NAMESPACES)

        return dig(self.resolve(value), rest)

    def resolve(self, value: 'RuntimeValue') -> 'RuntimeValue':
        """Resolve deferred lookups into concrete values."""
        return resolve(value, self)

    def start_blueprint(self, blueprint: 'Blueprint') -> None:
        """Reset per-blueprint state before a blueprint runs.

        Clears the whole store, replaces metadata and installs the
        blueprint variables as the new base. Global is kept.
        """
        logger.debug('Resetting context for blueprint %s', blueprint.name)

        self.store.clear_scope('file')

        self.metadata.clear()
        self.metadata.store('file_name', blueprint.file_path.name)
        self.metadata.store('file_path', str(blueprint.file_path))
        self.metadata.store('relative_path', str(blueprint.relative_path))

        self.variables.set(blueprint.variables)

    def clear(self) -> None:
        """Reset every namespace, restoring initial globals."""
        self.global_.clear()
        self.global_.store('variables', self.initial_globals)
        self.metadata.clear()
        self.store.clear()
        self.variables.clear()
