"""Built-in YAML instructions.

Lookup instructions (`!var`, `!global`, `!store`, `!meta`, `!env`, `!fmt`)
produce deferred values resolved against the context manager when the
step runs. Matcher instructions (`!eq`, `!ne`, `!lt`, `!lte`, `!gt`,
`!gte`, `!regex`, `!kind_of`, `!any`, `!partial`) produce opaque
matchers consumed by the validators.

Each instruction is a PyYAML constructor registered on the blueprint
loader under `!<name>`.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from yaml.error import MarkedYAMLError
from yaml.nodes import MappingNode, ScalarNode, SequenceNode

from pytest_forge.builtins import matchers
from pytest_forge.builtins.lookups import ContextLookup, EnvironmentLookup, TemplateLookup
from pytest_forge.errors import ForgeError, LoadError

if TYPE_CHECKING:
    from yaml import BaseLoader
    from yaml.nodes import Node

type Constructor = Callable[['BaseLoader', 'Node'], Any]


def construct_value(loader: 'BaseLoader', node: 'Node') -> Any:  # noqa: ANN401
    """Construct the plain value under an explicitly tagged node.

    Plain scalars are resolved with implicit YAML typing, so `!lt 5`
    compares against an integer and `!eq "5"` against a string.
    """
    if isinstance(node, ScalarNode):
        if not node.value and node.style is None:
            return None
        tag = (
            loader.resolve(ScalarNode, node.value, (True, False))
            if node.style is None
            else 'tag:yaml.org,2002:str'
        )
        return loader.construct_object(
            ScalarNode(tag, node.value, node.start_mark, node.end_mark, node.style),
            deep=True,
        )

    if isinstance(node, SequenceNode):
        return loader.construct_sequence(node, deep=True)

    if isinstance(node, MappingNode):
        return loader.construct_mapping(node, deep=True)

    raise LoadError.from_yaml_node('Unsupported node', node)  # pragma: no cover


def lookup_constructor(namespace: str, *prefix: str) -> Constructor:
    """Build a constructor producing a dotted-path context lookup.

    Args:
        namespace: Context namespace the lookup reads from.
        *prefix: Path segments prepended to the authored path.

    Returns:
        YAML constructor.
    """
    def constructor(loader: 'BaseLoader', node: 'Node') -> ContextLookup:
        try:
            return ContextLookup(namespace, str(loader.construct_scalar(node)), *prefix)  # type: ignore[arg-type]

        except MarkedYAMLError as base:
            raise LoadError.from_yaml_error(base) from base

        except Exception as base:
            raise LoadError.from_yaml_node('Invalid variable path', node, base) from base

    return constructor


def env_constructor(loader: 'BaseLoader', node: 'Node') -> EnvironmentLookup:
    """Construct an environment lookup.

    Accepts `NAME` or a mapping `{name: NAME, default: VALUE}`.
    """
    try:
        if isinstance(node, MappingNode):
            params = loader.construct_mapping(node, deep=True)
            return EnvironmentLookup(str(params['name']), params.get('default'))

        return EnvironmentLookup(str(loader.construct_scalar(node)))  # type: ignore[arg-type]

    except MarkedYAMLError as base:
        raise LoadError.from_yaml_error(base) from base

    except Exception as base:
        raise LoadError.from_yaml_node('Invalid environment variable reference', node, base) from base


def template_constructor(loader: 'BaseLoader', node: 'Node') -> TemplateLookup:
    """Construct a string template with `{{ path }}` placeholders."""
    try:
        return TemplateLookup(str(loader.construct_scalar(node)))  # type: ignore[arg-type]

    except MarkedYAMLError as base:
        raise LoadError.from_yaml_error(base) from base

    except Exception as base:
        raise LoadError.from_yaml_node('Invalid template', node, base) from base


def matcher_constructor(factory: Callable[..., matchers.BaseMatcher], *,
                        mapping_params: bool = False) -> Constructor:
    """Build a constructor producing a matcher.

    Args:
        factory: Matcher class called with the constructed value.
        mapping_params: Whether a mapping node carries keyword parameters
            (`{value: ..., ...}`) instead of being the expected value.

    Returns:
        YAML constructor.
    """
    def constructor(loader: 'BaseLoader', node: 'Node') -> matchers.BaseMatcher:
        try:
            value = construct_value(loader, node)
            if mapping_params and isinstance(value, dict):
                return factory(**value)

            return factory(value)

        except MarkedYAMLError as base:
            raise LoadError.from_yaml_error(base) from base

        except ForgeError:
            raise

        except Exception as base:
            raise LoadError.from_yaml_node('Invalid matcher arguments', node, base) from base

    return constructor


def any_constructor(loader: 'BaseLoader', node: 'Node') -> matchers.Anything:  # noqa: ARG001
    """Construct a matcher accepting any value."""
    return matchers.Anything()


#: All built-in instructions keyed by tag name.
INSTRUCTIONS: dict[str, Constructor] = {
    'var': lookup_constructor('variables'),
    'global': lookup_constructor('global', 'variables'),
    'store': lookup_constructor('store'),
    'meta': lookup_constructor('metadata'),
    'env': env_constructor,
    'fmt': template_constructor,
    'eq': matcher_constructor(matchers.Equal),
    'ne': matcher_constructor(matchers.NotEqual),
    'lt': matcher_constructor(matchers.LessThan),
    'lte': matcher_constructor(matchers.LessThanOrEqual),
    'gt': matcher_constructor(matchers.GreaterThan),
    'gte': matcher_constructor(matchers.GreaterThanOrEqual),
    'regex': matcher_constructor(matchers.Regex, mapping_params=True),
    'kind_of': matcher_constructor(matchers.KindOf),
    'any': any_constructor,
    'partial': matcher_constructor(matchers.Partial),
}
