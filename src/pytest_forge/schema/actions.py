"""Step action payloads.

Every compiled step carries exactly one action. Actions form a closed
union discriminated by `kind`; the runner dispatches over it with an
exhaustive `match`.

Attribute values may hold deferred lookups (resolved right before the
step runs) and, inside expectations, opaque matchers.
"""

from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import AliasChoices, Field, field_validator, model_validator

from pytest_forge.models import SchemaModel
from pytest_forge.names import HOOK_EVENTS, CallbackName, Variable  # noqa: TC001
from pytest_forge.validators import SchemaNode, parse_schema, parse_shape
from pytest_forge.values import Deferred, RuntimeValue, Value  # noqa: TC001

if TYPE_CHECKING:
    from collections.abc import Mapping

HTTP_VERBS = ('GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS')

#: Events a `hooks` step may register bindings for.
STEP_HOOK_EVENTS = ('before_step', 'after_step', 'after_blueprint', 'after_forge')

type HookEvent = Literal[
    'before_forge',
    'after_forge',
    'before_blueprint',
    'after_blueprint',
    'before_step',
    'after_step',
]

type Arguments = list[Deferred[Value]] | dict[str, Deferred[Value]]


def _coerce_reference(value: RuntimeValue) -> RuntimeValue:
    """Expand a bare callback name into a reference mapping."""
    if isinstance(value, str):
        return {'callback_name': value}

    return value


class CallbackReference(SchemaModel):
    """Reference to a registered callback with its arguments.

    A list of arguments is passed positionally, a mapping is passed as
    keyword arguments.
    """

    callback_name: CallbackName = Field(
        validation_alias=AliasChoices('callback_name', 'name', 'callback'),
        title='Callback name',
        description='Name of a registered callback.',
    )

    arguments: Arguments = Field(
        default_factory=list,
        validation_alias=AliasChoices('arguments', 'args', 'kwargs'),
        title='Callback arguments',
        description='Positional (list) or keyword (mapping) arguments.',
    )

    @model_validator(mode='before')
    @classmethod
    def _from_name(cls, value: RuntimeValue) -> RuntimeValue:
        return _coerce_reference(value)


class RequestAction(SchemaModel):
    """Issue an HTTP request through the transport."""

    kind: Literal['request'] = 'request'

    url: Deferred[str] = Field(
        default='',
        title='URL',
        description='Absolute URL or path joined onto the configured base URL.',
    )

    verb: str = Field(
        default='GET',
        validation_alias=AliasChoices('verb', 'method', 'http_verb'),
        title='HTTP verb',
        description=f'One of {', '.join(HTTP_VERBS)}.',
    )

    headers: dict[str, Deferred[Value]] = Field(
        default_factory=dict,
        title='Request headers',
    )

    query: dict[str, Deferred[Value]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices('query', 'params'),
        title='Query parameters',
    )

    body: Deferred[Value] = Field(
        default=None,
        validation_alias=AliasChoices('body', 'json'),
        title='Request body',
        description='JSON-serializable body; `json` is accepted as an alias.',
    )

    @field_validator('verb', mode='after')
    @classmethod
    def _normalize_verb(cls, value: str) -> str:
        verb = value.strip().upper()
        if verb not in HTTP_VERBS:
            raise ValueError(f'Unsupported HTTP verb {value!r}')

        return verb

    def merge_shared(self, shared: 'Mapping[str, RuntimeValue]') -> 'RequestAction':
        """Inherit attributes from a shared request mapping.

        Values declared on this request win. Headers and query parameters
        are merged key by key; mapping bodies are deep-merged.

        Args:
            shared: Raw `shared.request` mapping of an ancestor group.

        Returns:
            A new request with inherited attributes filled in.
        """
        base = type(self).model_validate(shared)
        update: dict[str, RuntimeValue] = {}

        for field in ('url', 'verb'):
            if field not in self.model_fields_set and field in base.model_fields_set:
                update[field] = getattr(base, field)

        for field in ('headers', 'query'):
            update[field] = {**getattr(base, field), **getattr(self, field)}

        if 'body' not in self.model_fields_set:
            update['body'] = base.body
        elif isinstance(self.body, dict) and isinstance(base.body, dict):
            update['body'] = deep_merge(base.body, self.body)

        return self.model_copy(update=update)


class JsonExpectation(SchemaModel):
    """Expectations against a decoded JSON body.

    Only declared checks are evaluated.
    """

    size: RuntimeValue = Field(
        default=None,
        title='Body size',
        description='Expected length of the decoded body (literal or matcher).',
    )

    schema_: SchemaNode | None = Field(
        default=None,
        validation_alias=AliasChoices('schema', 'schema_'),
        serialization_alias='schema',
        title='Schema tree',
        description='Typed tree with `type`, `structure`, `pattern` and `optional` keys.',
    )

    shape: SchemaNode | None = Field(
        default=None,
        title='Compact shape',
        description='Compact schema notation using type names, mappings and lists.',
    )

    content: RuntimeValue = Field(
        default=None,
        title='Expected content',
        description='Tree of literal values and matchers.',
    )

    @field_validator('schema_', mode='before')
    @classmethod
    def _parse_schema(cls, value: RuntimeValue) -> RuntimeValue:
        return None if value is None else parse_schema(value)

    @field_validator('shape', mode='before')
    @classmethod
    def _parse_shape(cls, value: RuntimeValue) -> RuntimeValue:
        return None if value is None else parse_shape(value)


class ExpectAction(SchemaModel):
    """Validate the most recent response."""

    kind: Literal['expect'] = 'expect'

    status: RuntimeValue = Field(
        default=None,
        title='Status code',
        description='Expected status code (integer or matcher).',
    )

    headers: dict[str, RuntimeValue] = Field(
        default_factory=dict,
        title='Expected headers',
    )

    json_: JsonExpectation | None = Field(
        default=None,
        validation_alias=AliasChoices('json', 'json_'),
        serialization_alias='json',
        title='JSON expectations',
    )

    raw: RuntimeValue = Field(
        default=None,
        title='Raw body',
        description='Expected raw response body (literal or matcher).',
    )


class StoreAction(SchemaModel):
    """Capture values into the store."""

    kind: Literal['store'] = 'store'

    entries: dict[Variable, Deferred[Value]] = Field(
        default_factory=dict,
        title='Stored entries',
    )

    scope: Literal['file', 'spec'] = Field(
        default='file',
        title='Store scope',
        description='`file` entries live for the blueprint, `spec` for the step group.',
    )

    @model_validator(mode='before')
    @classmethod
    def _from_entries(cls, value: RuntimeValue) -> RuntimeValue:
        if isinstance(value, dict) and 'entries' not in value and 'kind' not in value:
            return {'entries': value}

        return value


class CallAction(CallbackReference):
    """Invoke a named callback."""

    kind: Literal['call'] = 'call'


class HookBinding(CallbackReference):
    """Callback bound to a lifecycle event."""

    event: HookEvent = Field(
        title='Lifecycle event',
        description=f'One of {', '.join(HOOK_EVENTS)}.',
    )


class HooksAction(SchemaModel):
    """Register hook bindings for later firing."""

    kind: Literal['hooks'] = 'hooks'

    bindings: tuple[HookBinding, ...] = Field(
        default=(),
        title='Hook bindings',
    )

    @field_validator('bindings', mode='after')
    @classmethod
    def _check_events(cls, value: tuple[HookBinding, ...]) -> tuple[HookBinding, ...]:
        for binding in value:
            if binding.event not in STEP_HOOK_EVENTS:
                raise ValueError(
                    f'Event {binding.event!r} can not be bound from a step, '
                    f'expected one of {', '.join(STEP_HOOK_EVENTS)}',
                )

        return value


class DebugAction(SchemaModel):
    """Invoke the configured debug callback."""

    kind: Literal['debug'] = 'debug'


class NoticeAction(SchemaModel):
    """Informational message inserted by include expansion."""

    kind: Literal['notice'] = 'notice'

    message: str


class IncludeAction(SchemaModel):
    """Splice other blueprints' steps in place; removed by compilation."""

    kind: Literal['include'] = 'include'

    names: tuple[str, ...] = Field(
        default=(),
        title='Included blueprints',
    )


#: Closed union of step actions, discriminated by `kind`.
Action = Annotated[
    RequestAction
    | ExpectAction
    | StoreAction
    | CallAction
    | HooksAction
    | DebugAction
    | NoticeAction
    | IncludeAction,
    Field(discriminator='kind'),
]


def deep_merge(base: 'Mapping[str, RuntimeValue]',
               override: 'Mapping[str, RuntimeValue]') -> dict[str, RuntimeValue]:
    """Recursively merge two mappings, values of `override` win."""
    merged = dict(base)

    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value

    return merged
