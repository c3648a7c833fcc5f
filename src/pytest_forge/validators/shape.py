"""Shape validator.

A shape is compact schema notation:

- a string is a type declaration (`string`, `?string`, `integer | null`);
- a mapping is an object; keys ending in `?` are optional;
- a one-item list is an array whose items all follow that item;
- a longer list is a fixed-length tuple.

Shapes are normalized into schema nodes and walked by the schema
validator.
"""

from typing import ClassVar

from pytest_forge.errors import ShapeValidationFailure
from pytest_forge.values import RuntimeValue  # noqa: TC001

from .schema import SchemaNode, SchemaValidator, parse_types

OPTIONAL_SUFFIX = '?'


def parse_shape(value: RuntimeValue) -> SchemaNode:
    """Normalize compact shape notation into a schema node.

    Raises:
        ValueError: If the shape is empty or names an unknown type.
    """
    if isinstance(value, SchemaNode):
        return value

    if value is None:
        raise ValueError('Shape can not be empty')

    if isinstance(value, str):
        types, declared = parse_types(value)
        return SchemaNode(types=types, declared=declared)

    if isinstance(value, list):
        if len(value) == 1:
            return SchemaNode(types=('array',), declared=('array',), pattern=parse_shape(value[0]))

        return SchemaNode(
            types=('array',),
            declared=('array',),
            structure=tuple(parse_shape(item) for item in value) or None,
        )

    if isinstance(value, dict):
        structure: dict[str, SchemaNode] = {}
        for key, item in value.items():
            name = str(key)
            optional = name.endswith(OPTIONAL_SUFFIX)
            if optional:
                name = name.removesuffix(OPTIONAL_SUFFIX)
            structure[name] = parse_shape(item).model_copy(update={'optional': optional})

        return SchemaNode(types=('object',), declared=('object',), structure=structure)

    raise ValueError(f'Invalid shape {value!r}')


class ShapeValidator(SchemaValidator):
    """Walks a value against a compact shape."""

    failure_class: ClassVar = ShapeValidationFailure

    def prepare(self, expected: RuntimeValue) -> SchemaNode:
        """Normalize the compact shape."""
        return parse_shape(expected)
