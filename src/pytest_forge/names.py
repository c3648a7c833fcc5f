"""Blueprint name primitives and validation rules.

This module defines base name patterns and strongly-typed aliases used by
the step compiler to validate variable, callback, and tag identifiers.
"""

from re import ASCII
from re import compile as regexp
from typing import Annotated

from pydantic import Field

#: Base pattern for identifiers.
#: Identifiers must start with a letter and may contain letters, digits, or underscores
_NAME_PATTERN = r'[a-zA-Z][\w]*'

#: Compiled pattern for variable identifiers
VARIABLE_PATTERN = regexp(
    rf'^(?P<name>{_NAME_PATTERN})$',
    flags=ASCII,
)

#: Lifecycle events a hook binding may target.
HOOK_EVENTS = (
    'before_forge',
    'after_forge',
    'before_blueprint',
    'after_blueprint',
    'before_step',
    'after_step',
)

Variable = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}$',
        title='Variable identifier',
        description=(
            'Name of a variable used to store or reference values within '
            'a blueprint execution context. '
            'Variable identifiers must start with a letter and may contain '
            'letters, digits, or underscores.'
        ),
        examples=[
            'userId',
            'api_token',
        ],
    ),
]

CallbackName = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}$',
        title='Callback identifier',
        description=(
            'Name under which a callback is registered. '
            'Callbacks are registered from Python code or discovered '
            'through the `forge_callbacks` entry point group.'
        ),
        examples=[
            'seed_database',
            'login',
        ],
    ),
]

Tag = Annotated[
    str, Field(
        min_length=1,
        title='Tag',
        description=(
            'Label used to select or skip steps at run time. '
            'Tags are inherited by all nested and included steps.'
        ),
        examples=[
            'smoke',
            'slow',
        ],
    ),
]
