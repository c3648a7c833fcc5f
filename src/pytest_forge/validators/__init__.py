"""Structural validators for response data.

Four validators share one contract, `validate(actual, expected)`
returning every path-tagged failure and `validate_or_raise` raising one
aggregate error:

- `SchemaValidator`: typed schema trees;
- `ShapeValidator`: compact shape notation;
- `ContentValidator`: literal values and matchers;
- `HeaderValidator`: response headers.
"""

from .base import MISSING, ROOT_PATH, BaseValidator, Failure, find_key
from .content import ContentValidator
from .headers import HeaderValidator
from .schema import SchemaNode, SchemaValidator, parse_schema
from .shape import ShapeValidator, parse_shape

__all__ = (
    'MISSING',
    'ROOT_PATH',
    'BaseValidator',
    'ContentValidator',
    'Failure',
    'HeaderValidator',
    'SchemaNode',
    'SchemaValidator',
    'ShapeValidator',
    'find_key',
    'parse_schema',
    'parse_shape',
)
