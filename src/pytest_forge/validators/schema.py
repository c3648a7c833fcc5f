"""Schema validator.

A schema is a typed tree of nodes `{type, structure, pattern, optional}`:

- `type` is a type name or a list of type names (a union); a name
  prefixed with `?` is nullable and `a | b` spells a union inline;
- `structure` is a mapping of keys to nodes (an object) or a list of
  nodes (a fixed-length tuple);
- `pattern` is a node applied to every item of an array;
- `optional` marks a mapping key that may be absent.
"""

from typing import ClassVar, Union

from pydantic import Field

from pytest_forge.errors import SchemaValidationFailure
from pytest_forge.models import SchemaModel
from pytest_forge.values import RuntimeValue, canonical_type, is_instance_of, type_name

from .base import MISSING, BaseValidator, find_key, index_path, key_path

SCHEMA_KEYS = frozenset({'type', 'structure', 'pattern', 'optional'})


class SchemaNode(SchemaModel):
    """Normalized schema node."""

    types: tuple[str, ...] = Field(
        default=(),
        title='Canonical types',
        description='Accepted canonical type names, empty to accept anything.',
    )

    declared: tuple[str, ...] = Field(
        default=(),
        title='Declared types',
        description='Type names as authored, used in failure reports.',
    )

    structure: Union[dict[str, 'SchemaNode'], tuple['SchemaNode', ...], None] = Field(  # noqa: UP007
        default=None,
        title='Structure',
    )

    pattern: Union['SchemaNode', None] = Field(  # noqa: UP007
        default=None,
        title='Item pattern',
    )

    optional: bool = Field(
        default=False,
        title='Optional key',
    )

    def accepts(self, value: RuntimeValue) -> bool:
        """Check the runtime type of a value against the node types."""
        if not self.types:
            return True

        return any(is_instance_of(value, name) for name in self.types)


def parse_types(value: RuntimeValue) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Parse a type declaration.

    Args:
        value: Type name, `?`-prefixed nullable name, `a | b` union or a
            list of any of these.

    Returns:
        Canonical names and declared names.

    Raises:
        ValueError: If a type name is unknown.
    """
    names = [value] if isinstance(value, str) else list(value or ())

    declared: list[str] = []
    for name in names:
        if not isinstance(name, str):
            raise ValueError(f'Type name must be a string, got {name!r}')

        for part in name.split('|'):
            part = part.strip()
            if part.startswith('?'):
                declared.extend((part[1:], 'null'))
            else:
                declared.append(part)

    canonical = tuple(dict.fromkeys(canonical_type(name) for name in declared))

    return canonical, tuple(dict.fromkeys(declared))


def parse_schema(value: RuntimeValue) -> SchemaNode:
    """Normalize an authored schema tree.

    Raises:
        ValueError: If the tree is malformed or names an unknown type.
    """
    if isinstance(value, SchemaNode):
        return value

    if value is None:
        raise ValueError('Schema can not be empty')

    if isinstance(value, str):
        types, declared = parse_types(value)
        return SchemaNode(types=types, declared=declared)

    if isinstance(value, list):
        return SchemaNode(
            types=('array',),
            declared=('array',),
            structure=tuple(parse_schema(item) for item in value),
        )

    if not isinstance(value, dict):
        raise ValueError(f'Invalid schema node {value!r}')

    if unknown := set(value) - SCHEMA_KEYS:
        raise ValueError(f'Unknown schema keys: {', '.join(sorted(map(str, unknown)))}')

    types, declared = parse_types(value.get('type'))

    structure = value.get('structure')
    if isinstance(structure, dict):
        structure = {str(key): parse_schema(item) for key, item in structure.items()}
    elif isinstance(structure, list):
        structure = tuple(parse_schema(item) for item in structure)
    elif structure is not None:
        raise ValueError(f'Invalid schema structure {structure!r}')

    pattern = value.get('pattern')

    return SchemaNode(
        types=types,
        declared=declared,
        structure=structure,
        pattern=parse_schema(pattern) if pattern is not None else None,
        optional=bool(value.get('optional', False)),
    )


class SchemaValidator(BaseValidator):
    """Walks a value against a schema tree."""

    failure_class: ClassVar = SchemaValidationFailure

    def prepare(self, expected: RuntimeValue) -> SchemaNode:
        """Normalize the authored schema."""
        return parse_schema(expected)

    def check(self, actual: RuntimeValue, expected: SchemaNode, path: str) -> None:
        """Check type, then structure and pattern of a value."""
        if not expected.accepts(actual):
            self.fail(
                path,
                list(expected.declared),
                actual,
                f'expected {' | '.join(expected.declared)}, got {type_name(actual)}',
            )
            return

        if isinstance(expected.structure, dict):
            self.check_mapping(actual, expected.structure, path)
        elif isinstance(expected.structure, tuple):
            self.check_tuple(actual, expected.structure, path)

        if expected.pattern is not None:
            self.check_pattern(actual, expected.pattern, path)

    def check_mapping(self, actual: RuntimeValue, structure: dict[str, SchemaNode], path: str) -> None:
        """Check declared keys of an object."""
        if not isinstance(actual, dict):
            self.fail(path, ['object'], actual, f'expected object, got {type_name(actual)}')
            return

        for key, node in structure.items():
            item_path = key_path(path, key)
            if (value := find_key(actual, key)) is MISSING:
                if not node.optional:
                    self.fail(item_path, list(node.declared), MISSING, 'key not found')
                continue

            self.check(value, node, item_path)

    def check_tuple(self, actual: RuntimeValue, structure: tuple[SchemaNode, ...], path: str) -> None:
        """Check an array item by item against a fixed-length tuple."""
        if not isinstance(actual, (list, tuple)):
            self.fail(path, ['array'], actual, f'expected array, got {type_name(actual)}')
            return

        for index, node in enumerate(structure):
            item_path = index_path(path, index)
            if index >= len(actual):
                self.fail(item_path, list(node.declared), MISSING, 'item not found')
                continue

            self.check(actual[index], node, item_path)

        if len(actual) > len(structure):
            self.fail(
                path,
                f'{len(structure)} items',
                actual,
                f'expected {len(structure)} items, got {len(actual)}',
            )

    def check_pattern(self, actual: RuntimeValue, pattern: SchemaNode, path: str) -> None:
        """Check every array item against a repeating pattern."""
        if not isinstance(actual, (list, tuple)):
            self.fail(path, ['array'], actual, f'expected array, got {type_name(actual)}')
            return

        for index, item in enumerate(actual):
            self.check(item, pattern, index_path(path, index))


def validate_schema(actual: RuntimeValue, schema: RuntimeValue) -> list:
    """Validate a value against an authored schema tree."""
    return SchemaValidator().validate(actual, schema)
