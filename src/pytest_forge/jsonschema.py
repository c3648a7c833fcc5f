"""JSON Schema management.

The schema describes blueprint files as they are authored, which is
looser than the compiled step models: payloads are optional keys of a
step, shapes and schemas are free-form trees and every value may be a
runtime instruction.
"""

from functools import cache
from json import dumps
from typing import TYPE_CHECKING, Any, Literal

from pydantic import AliasChoices, Field, RootModel
from pydantic.json_schema import GenerateJsonSchema, JsonSchemaValue, SkipJsonSchema

from pytest_forge.models import DescribedMixin, SchemaModel
from pytest_forge.schema import (
    BlueprintHooks,
    CallbackReference,
    ExpectAction,
    RequestAction,
    SharedAttributes,
)
from pytest_forge.schema.actions import STEP_HOOK_EVENTS

if TYPE_CHECKING:
    from pydantic import BaseModel
    from pydantic_core import core_schema as core

type StepHookEvent = Literal['before_step', 'after_step', 'after_blueprint', 'after_forge']

type CallbackReferences = str | CallbackReference | list[str | CallbackReference]


class RequestDocument(RequestAction):
    """HTTP request as authored."""

    kind: SkipJsonSchema[Literal['request']] = 'request'


class JsonDocument(SchemaModel):
    """JSON body expectations as authored."""

    size: Any = Field(
        default=None,
        title='Body size',
        description='Expected length of the decoded body (literal or matcher).',
    )

    schema_: Any = Field(
        default=None,
        validation_alias=AliasChoices('schema', 'schema_'),
        title='Schema tree',
        description='Typed tree with `type`, `structure`, `pattern` and `optional` keys.',
    )

    shape: Any = Field(
        default=None,
        title='Compact shape',
        description=(
            'Type names (`?type` nullable, `a | b` union), mappings with '
            'optional `key?` entries, one-item lists for arrays and longer '
            'lists for tuples.'
        ),
    )

    content: Any = Field(
        default=None,
        title='Expected content',
        description='Tree of literal values and matchers.',
    )


class ExpectDocument(ExpectAction):
    """Response expectations as authored."""

    kind: SkipJsonSchema[Literal['expect']] = 'expect'

    json_: JsonDocument | None = Field(
        default=None,
        validation_alias=AliasChoices('json', 'json_'),
        title='JSON expectations',
    )


class StepDocument(DescribedMixin):
    """Blueprint step as authored.

    A step declaring several payloads runs them in a fixed order:
    include, hooks, call, request, debug, expect, store.
    """

    tags: list[str] | str = Field(
        default_factory=list,
        title='Step tags',
    )

    include: str | list[str] | None = Field(
        default=None,
        title='Included blueprints',
    )

    hooks: dict[StepHookEvent, CallbackReferences] | None = Field(
        default=None,
        title='Hook bindings',
        description=f'Callbacks bound to {', '.join(STEP_HOOK_EVENTS)}.',
    )

    call: CallbackReferences | None = Field(
        default=None,
        title='Callback calls',
    )

    request: RequestDocument | None = Field(
        default=None,
        title='HTTP request',
    )

    debug: bool = Field(
        default=False,
        title='Debug breakpoint',
    )

    expect: ExpectDocument | list[ExpectDocument] | None = Field(
        default=None,
        title='Response expectations',
    )

    store: dict[str, Any] | None = Field(
        default=None,
        title='Stored values',
        description='Either plain entries or `entries` with a `scope` of `file` or `spec`.',
    )

    variables: dict[str, Any] = Field(
        default_factory=dict,
        title='Variables overlay',
    )

    shared: SharedAttributes | None = Field(
        default=None,
        title='Attributes inherited by nested steps',
    )

    steps: list['StepDocument'] = Field(
        default_factory=list,
        title='Nested steps',
    )


class BlueprintDocument(SchemaModel):
    """Blueprint file written as a mapping."""

    tags: list[str] | str = Field(
        default_factory=list,
        title='Blueprint tags',
        description='Tags inherited by every step of the blueprint.',
    )

    variables: dict[str, Any] = Field(
        default_factory=dict,
        title='Blueprint variables',
    )

    hooks: BlueprintHooks = Field(
        default_factory=BlueprintHooks,
        title='Blueprint hooks',
    )

    steps: list[StepDocument] = Field(
        default_factory=list,
        title='Steps',
    )


class BlueprintFile(RootModel[BlueprintDocument | list[StepDocument]]):
    """Blueprint file: a mapping with steps or a bare list of steps."""


class SchemaGenerator(GenerateJsonSchema):
    """Custom JSON Schema generator for blueprint files.

    Overrides schema generation for callable runtime values. In
    blueprints, callables represent runtime-evaluated instructions
    (`!var`, `!store`, matchers), which do not have a fixed static type.
    For JSON Schema purposes, they are represented as unconstrained
    values.
    """

    @classmethod
    def get_model(cls) -> 'type[BaseModel]':
        """Return the root model of blueprint files."""
        return BlueprintFile

    @classmethod
    @cache
    def make_schema(cls, indent: int | str | None = 4) -> str:
        """Generate the JSON Schema for blueprint files.

        Args:
            indent: Indentation level used for JSON formatting.

        Returns:
            Serialized JSON Schema string.
        """
        model = cls.get_model()

        schema = {
            **model.model_json_schema(
                schema_generator=cls,
                union_format='primitive_type_array',
            ),
            'title': 'pytest-forge',
            'description': 'JSON Schema for pytest-forge blueprint files',
            '$schema': cls.schema_dialect,
        }

        return dumps(
            schema,
            ensure_ascii=False,
            sort_keys=True,
            indent=indent,
        )

    def callable_schema(self, schema: 'core.CallableSchema') -> JsonSchemaValue:  # noqa: ARG002
        """Generate JSON Schema for callable runtime values.

        Args:
            schema: Pydantic core schema describing a callable.

        Returns:
            A permissive JSON Schema fragment allowing arbitrary values
            to represent runtime-evaluated instructions.
        """
        return {'description': 'Runtime value'}
