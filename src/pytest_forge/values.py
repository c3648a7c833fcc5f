"""Core type definitions for the blueprint runtime.

This module defines the foundational type system used by the execution
engine. It distinguishes between fully resolved values and deferred values
that must be evaluated against a context manager at runtime.

It also provides utilities for recursively resolving deferred structures
into strict runtime values.
"""

from collections.abc import Callable, Mapping, Sequence
from copy import deepcopy
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from pydantic import SecretStr

from pytest_forge.matchers import is_matcher

if TYPE_CHECKING:
    from pytest_forge.context import ContextManager

#: Scalars represent fully resolved, atomic values that do not
#: participate in deferred evaluation.
type Scalar = date | datetime | timedelta | str | bytes | int | float | bool | SecretStr

#: A value is considered resolved if it contains no deferred
#: computations and can be consumed by transports and validators.
type Value = Scalar | Sequence['Value'] | Mapping[str, 'Value'] | None

#: Any Python object received from YAML loaders, callbacks or
#: transports prior to resolution.
type RuntimeValue = Any

#: Deferred values are evaluated eagerly and deeply against the
#: context manager (passed as the only argument) right before a step
#: uses them.
type DeferredCallable[T] = Callable[[RuntimeValue], T]
type Deferred[T] = T | DeferredCallable[T] | Sequence['Deferred[T]'] | Mapping[str, 'Deferred[T]']

MAPPINGS = (dict,)
SCALARS = (date, datetime, timedelta, str, bytes, int, float, bool, SecretStr)
SEQUENCES = (list, tuple, set)

#: Canonical type names used by schema declarations and failure reports.
TYPE_NAMES = {
    'string': (str,),
    'integer': (int,),
    'number': (int, float),
    'boolean': (bool,),
    'array': (list, tuple),
    'object': (dict,),
    'null': (type(None),),
}

TYPE_ALIASES = {
    'str': 'string',
    'text': 'string',
    'int': 'integer',
    'float': 'number',
    'bool': 'boolean',
    'list': 'array',
    'dict': 'object',
    'hash': 'object',
    'map': 'object',
    'nil': 'null',
    'none': 'null',
    'nilclass': 'null',
    'trueclass': 'boolean',
    'falseclass': 'boolean',
}


def canonical_type(name: str) -> str:
    """Return the canonical spelling of a declared type name.

    Args:
        name: Declared type name, case-insensitive.

    Returns:
        One of the keys of `TYPE_NAMES`.

    Raises:
        ValueError: If the name is unknown.
    """
    lowered = name.strip().lower()
    lowered = TYPE_ALIASES.get(lowered, lowered)
    if lowered not in TYPE_NAMES:
        raise ValueError(f'Unknown type {name!r}')

    return lowered


def type_name(value: RuntimeValue) -> str:
    """Describe the runtime type of a value with a canonical type name.

    Booleans are reported as `boolean` and never as `integer`.
    Unknown objects are reported by their class name.
    """
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, int):
        return 'integer'
    if isinstance(value, float):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, (list, tuple)):
        return 'array'
    if isinstance(value, dict):
        return 'object'

    return type(value).__name__


def is_instance_of(value: RuntimeValue, name: str) -> bool:
    """Check a value against a canonical type name."""
    if isinstance(value, bool) and name in ('integer', 'number'):
        return False

    return isinstance(value, TYPE_NAMES[name])


def resolve(value: RuntimeValue, context: 'ContextManager | None' = None) -> RuntimeValue:
    """Recursively resolve a deferred structure into runtime values.

    Deferred callables are evaluated against the provided context manager
    before resolution continues. Matchers are opaque and returned as is.
    Concrete results are deep-copied so callers never share mutable state
    with the context they were read from.

    Args:
        value: Deferred value to resolve.
        context: Context manager passed to deferred callables.

    Returns:
        A fully resolved value.

    Raises:
        TypeError: If the value type is unsupported.
    """
    if value is None or isinstance(value, SCALARS):
        return value

    if is_matcher(value):
        return value

    if isinstance(value, MAPPINGS):
        return {
            key: resolve(item, context)
            for key, item in value.items()
        }

    if isinstance(value, SEQUENCES):
        return [
            resolve(item, context)
            for item in value
        ]

    if callable(value):
        return resolve(deepcopy(value(context)), context)

    raise TypeError(f'{value!r} has unsupported type')
