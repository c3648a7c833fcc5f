"""Step, blueprint and raw step models.

Raw steps are validated as authored and then normalized into steps
carrying at most one action. A raw step declaring several payloads (or
nested `steps`) becomes a group whose children run in a fixed order.
"""

from pathlib import Path  # noqa: TC003
from typing import Any

from pydantic import Field, field_validator

from pytest_forge.models import DescribedMixin, SchemaModel
from pytest_forge.names import Tag, Variable  # noqa: TC001
from pytest_forge.values import RuntimeValue  # noqa: TC001

from .actions import (
    Action,
    CallAction,
    CallbackReference,
    DebugAction,
    ExpectAction,
    HookBinding,
    HooksAction,
    IncludeAction,
    RequestAction,
    StoreAction,
)


class Source(SchemaModel):
    """Location of a step declaration."""

    file_name: str
    line_number: int | None = None

    def __str__(self) -> str:
        """Render as `file_name:line_number`."""
        if self.line_number is None:
            return self.file_name

        return f'{self.file_name}:{self.line_number}'


class SharedAttributes(SchemaModel):
    """Attributes inherited by every descendant of a group step."""

    request: dict[str, RuntimeValue] = Field(
        default_factory=dict,
        title='Shared request',
        description='Request attributes deep-merged into descendant requests.',
    )


class Step(DescribedMixin, SchemaModel):
    """Single executable unit of a blueprint.

    Before flattening a step may be a group holding `children` and no
    action. After compilation every step has exactly one action, no
    children, and never an include.
    """

    tags: frozenset[Tag] = Field(
        default=frozenset(),
        title='Tags',
        description='Own and inherited tags used for selection.',
    )

    source: Source | None = Field(
        default=None,
        title='Declaration source',
    )

    included_by: tuple[Source, ...] = Field(
        default=(),
        title='Include provenance',
        description='Sources of the including steps, innermost first.',
    )

    group: int = Field(
        default=0,
        ge=0,
        title='Top-level group',
        description='Index of the top-level step the step descends from.',
    )

    variables: dict[Variable, RuntimeValue] = Field(
        default_factory=dict,
        title='Step variables',
        description='Overlay activated while the step runs.',
    )

    shared: SharedAttributes | None = Field(
        default=None,
        title='Shared attributes',
    )

    action: Action | None = Field(
        default=None,
        title='Step action',
    )

    children: tuple['Step', ...] = Field(
        default=(),
        title='Nested steps',
    )

    @property
    def kind(self) -> str | None:
        """Kind of the carried action."""
        return self.action.kind if self.action else None

    @property
    def is_empty(self) -> bool:
        """Whether the step does nothing."""
        return self.action is None and not self.children

    @property
    def display_name(self) -> str:
        """Human-readable step name used in logs and reports."""
        if self.name:
            return self.name
        if self.kind:
            return f'<{self.kind}>'

        return '<group>'


class HookCall(CallbackReference):
    """Blueprint-level hook reference."""


class BlueprintHooks(SchemaModel):
    """Callbacks fired around a whole blueprint."""

    before: tuple[HookCall, ...] = ()
    after: tuple[HookCall, ...] = ()

    @field_validator('before', 'after', mode='before')
    @classmethod
    def _listify(cls, value: RuntimeValue) -> RuntimeValue:
        if value is None:
            return ()
        if isinstance(value, (str, dict)):
            return (value,)

        return value


class Blueprint(SchemaModel):
    """Named, ordered collection of steps from one source file.

    Created by the loader with raw step data; compilation returns a new
    blueprint holding the flat executable `steps`.
    """

    name: str = Field(
        title='Blueprint name',
        description='Unique name derived from the path relative to the blueprints root.',
    )

    file_path: Path = Field(
        title='Source file',
    )

    relative_path: Path = Field(
        title='Source file relative to the blueprints root',
    )

    tags: frozenset[Tag] = Field(
        default=frozenset(),
        title='File tags',
        description='Tags inherited by every step of the blueprint.',
    )

    variables: dict[Variable, RuntimeValue] = Field(
        default_factory=dict,
        title='Base variables',
    )

    hooks: BlueprintHooks = Field(
        default_factory=BlueprintHooks,
        title='Blueprint hooks',
    )

    raw_steps: tuple[RuntimeValue, ...] = Field(
        default=(),
        exclude=True,
        title='Raw step tree',
    )

    steps: tuple[Step, ...] = Field(
        default=(),
        title='Compiled steps',
    )

    @property
    def display_name(self) -> str:
        """File name used in reports."""
        return str(self.relative_path)


#: Fixed order of payloads inside a multi-payload step.
PAYLOAD_ORDER = ('include', 'hooks', 'call', 'request', 'debug', 'expect', 'store')


def _listify(value: RuntimeValue) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value

    return [value]


class RawStep(DescribedMixin, SchemaModel):
    """Step as authored in a blueprint file."""

    tags: list[Tag] = Field(default_factory=list)
    request: dict[str, RuntimeValue] | None = None
    expect: dict[str, RuntimeValue] | list[dict[str, RuntimeValue]] | None = None
    store: dict[str, RuntimeValue] | None = None
    call: RuntimeValue = None
    hooks: dict[str, RuntimeValue] | None = None
    debug: bool = False
    include: str | list[str] | None = None
    variables: dict[Variable, RuntimeValue] = Field(default_factory=dict)
    shared: SharedAttributes | None = None
    steps: list[RuntimeValue] = Field(default_factory=list)

    @field_validator('tags', mode='before')
    @classmethod
    def _tags_listify(cls, value: RuntimeValue) -> RuntimeValue:
        if isinstance(value, str):
            return [value]

        return value

    def actions(self) -> list[Action]:
        """Build single-payload actions in the fixed payload order.

        Raises:
            pydantic.ValidationError: If a payload is malformed.
        """
        actions: list[Action] = []

        for payload in PAYLOAD_ORDER:
            match payload:
                case 'include' if self.include is not None:
                    actions.append(IncludeAction(names=tuple(_listify(self.include))))
                case 'hooks' if self.hooks:
                    actions.append(HooksAction(bindings=tuple(
                        HookBinding.model_validate(
                            {'event': event, **self._reference(reference)},
                        )
                        for event, references in self.hooks.items()
                        for reference in _listify(references)
                    )))
                case 'call':
                    actions.extend(
                        CallAction.model_validate(reference)
                        for reference in _listify(self.call)
                    )
                case 'request' if self.request is not None:
                    actions.append(RequestAction.model_validate(self.request))
                case 'debug' if self.debug:
                    actions.append(DebugAction())
                case 'expect':
                    actions.extend(
                        ExpectAction.model_validate(expectation)
                        for expectation in _listify(self.expect)
                    )
                case 'store' if self.store is not None:
                    actions.append(StoreAction.model_validate(self.store))

        return actions

    @staticmethod
    def _reference(value: RuntimeValue) -> dict[str, RuntimeValue]:
        if isinstance(value, str):
            return {'callback_name': value}
        if isinstance(value, dict):
            return value

        raise ValueError(f'Invalid callback reference {value!r}')
