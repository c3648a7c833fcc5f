"""Step compiler.

Turns the raw step tree of a blueprint into a flat, ordered list of
executable steps. The pipeline per blueprint is fixed:

1. attach the declaration source to every raw step;
2. normalize raw steps into single-action steps and groups;
3. expand includes (depth-first, innermost first, cycles rejected);
4. merge shared request attributes into descendant requests;
5. propagate tags and variables top-down (file tags are the root);
6. flatten groups in place, stamping the top-level group index;
7. re-normalize the flat result, dropping empty steps.

Compiled step lists are memoized per blueprint so nested includes are
expanded once.
"""

from logging import getLogger
from os import linesep
from typing import TYPE_CHECKING

from pydantic import ValidationError

from pytest_forge.errors import CompileError
from pytest_forge.schema import NoticeAction, RawStep, RequestAction, Source, Step
from pytest_forge.schema.actions import deep_merge

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pytest_forge.schema import Blueprint
    from pytest_forge.values import RuntimeValue

logger = getLogger(__name__)


def _summarize(error: ValidationError) -> str:
    """Render pydantic errors as short `location: message` lines."""
    return linesep.join(
        f'{'.'.join(str(part) for part in item['loc']) or 'step'}: {item['msg']}'
        for item in error.errors()
    )


class Compiler:
    """Compiles blueprints of one blueprint table.

    Attributes:
        blueprints: Uncompiled blueprints keyed by name.
    """

    def __init__(self, blueprints: 'Mapping[str, Blueprint]') -> None:
        """Initialize a compiler.

        Args:
            blueprints: Full blueprint table used to resolve includes.
        """
        self.blueprints = blueprints

        self._compiled: dict[str, tuple[Step, ...]] = {}
        self._visiting: list[str] = []

    def compile_all(self) -> dict[str, 'Blueprint']:
        """Compile every blueprint of the table, preserving order.

        Raises:
            CompileError: On the first blueprint that fails to compile.
        """
        return {
            name: self.compile(name)
            for name in self.blueprints
        }

    def compile(self, name: str) -> 'Blueprint':
        """Compile one blueprint.

        Args:
            name: Blueprint name.

        Returns:
            Copy of the blueprint holding the flat executable steps.

        Raises:
            CompileError: If a step is malformed, an include target is
                unknown or includes form a cycle.
        """
        blueprint = self.blueprints[name]
        return blueprint.model_copy(update={'steps': self.steps_for(name)})

    def steps_for(self, name: str) -> tuple[Step, ...]:
        """Compiled, memoized step list of a blueprint."""
        if (steps := self._compiled.get(name)) is not None:
            return steps

        if name in self._visiting:
            chain = ' -> '.join((*self._visiting[self._visiting.index(name):], name))
            raise CompileError(f'Include cycle detected: {chain}')

        self._visiting.append(name)
        try:
            steps = self._run_pipeline(self.blueprints[name])
        finally:
            self._visiting.pop()

        self._compiled[name] = steps
        return steps

    def _run_pipeline(self, blueprint: 'Blueprint') -> tuple[Step, ...]:
        logger.debug('Compiling blueprint %s', blueprint.name)

        tree = [self.normalize(raw, blueprint) for raw in blueprint.raw_steps]
        tree = [self.expand(step, blueprint) for step in tree]
        tree = [self.share(step, blueprint) for step in tree]
        tree = [self.propagate(step, blueprint.tags) for step in tree]

        flat = [
            item
            for index, step in enumerate(tree)
            for item in self.flatten(step, index)
        ]

        steps = self.renormalize(flat, blueprint)
        logger.debug('Compiled blueprint %s into %d step(s)', blueprint.name, len(steps))

        return steps

    def normalize(self, raw: 'RuntimeValue', blueprint: 'Blueprint') -> Step:
        """Validate a raw step and normalize it into a step tree.

        A raw step with exactly one payload and no nested steps becomes a
        single step. Any other raw step becomes a group whose children
        are its payloads (in the fixed payload order) followed by its
        nested steps.

        Raises:
            CompileError: If the raw step is malformed.
        """
        source = Source(
            file_name=str(blueprint.relative_path),
            line_number=getattr(raw, 'line_number', None),
        )

        if not isinstance(raw, dict):
            raise CompileError.from_source(
                'Step must be a mapping',
                source,
                blueprint=blueprint.name,
                element=raw,
            )

        try:
            parsed = RawStep.model_validate(raw)
            actions = parsed.actions()

        except ValidationError as base:
            raise CompileError.from_source(
                f'Invalid step{linesep}{_summarize(base)}',
                source,
                blueprint=blueprint.name,
                element=raw,
                error=base,
            ) from base

        except ValueError as base:
            raise CompileError.from_source(
                f'Invalid step{linesep}step: {base}',
                source,
                blueprint=blueprint.name,
                element=raw,
                error=base,
            ) from base

        children = [self.normalize(child, blueprint) for child in parsed.steps]

        step = Step(
            name=parsed.name,
            description=parsed.description,
            tags=frozenset(parsed.tags),
            source=source,
            variables=parsed.variables,
            shared=parsed.shared,
        )

        if len(actions) == 1 and not children:
            return step.model_copy(update={'action': actions[0]})

        payloads = [
            Step(
                name=parsed.name,
                description=parsed.description,
                source=source,
                action=action,
            )
            for action in actions
        ]

        return step.model_copy(update={'children': (*payloads, *children)})

    def expand(self, step: Step, blueprint: 'Blueprint') -> Step:
        """Replace include steps with groups of included steps.

        Each included step is a deep copy stamped with the including
        step's source. A notice step precedes every included blueprint.

        Raises:
            CompileError: If a target is unknown or includes form a cycle.
        """
        if step.children:
            return step.model_copy(update={
                'children': tuple(self.expand(child, blueprint) for child in step.children),
            })

        if step.kind != 'include':
            return step

        children: list[Step] = []
        for target in step.action.names:  # type: ignore[union-attr]
            if target not in self.blueprints:
                available = ', '.join(f'"{name}"' for name in self.blueprints)
                raise CompileError.from_source(
                    f'Unknown blueprint "{target}" included. Available blueprints: {available}',
                    step.source,
                    blueprint=blueprint.name,
                )

            logger.debug('Expanding include of %s into %s', target, blueprint.name)
            try:
                included = self.steps_for(target)
            except CompileError as error:
                if error.context is None and step.source is not None:
                    error.with_context(
                        blueprint=blueprint.name,
                        filename=step.source.file_name,
                        line_num=step.source.line_number,
                    )
                raise

            children.append(Step(
                source=step.source,
                included_by=step.included_by,
                action=NoticeAction(message=f'Including {target} ({len(included)} steps)'),
            ))
            children.extend(
                item.model_copy(
                    update={'included_by': (*item.included_by, step.source)},
                    deep=True,
                )
                for item in included
            )

        return step.model_copy(update={'action': None, 'children': tuple(children)})

    def share(self, step: Step, blueprint: 'Blueprint',
              inherited: 'Mapping[str, RuntimeValue] | None' = None) -> Step:
        """Deep-merge shared request attributes into descendant requests.

        Raises:
            CompileError: If the merged request is invalid.
        """
        shared = dict(inherited or {})
        if step.shared and step.shared.request:
            shared = deep_merge(shared, step.shared.request)

        update: dict[str, RuntimeValue] = {}

        if shared and isinstance(step.action, RequestAction):
            try:
                update['action'] = step.action.merge_shared(shared)
            except ValidationError as base:
                raise CompileError.from_source(
                    f'Invalid shared request{linesep}{_summarize(base)}',
                    step.source,
                    blueprint=blueprint.name,
                    element=shared,
                    error=base,
                ) from base

        if step.children:
            update['children'] = tuple(
                self.share(child, blueprint, shared)
                for child in step.children
            )

        return step.model_copy(update=update) if update else step

    def propagate(self, step: Step, tags: frozenset[str] = frozenset(),
                  variables: 'Mapping[str, RuntimeValue] | None' = None) -> Step:
        """Union ancestor tags and merge ancestor variables, top-down."""
        tags = tags | step.tags
        merged = {**(variables or {}), **step.variables}

        return step.model_copy(update={
            'tags': tags,
            'variables': merged,
            'children': tuple(
                self.propagate(child, tags, merged)
                for child in step.children
            ),
        })

    def flatten(self, step: Step, group: int) -> list[Step]:
        """Replace groups by their children, in order."""
        if not step.children:
            return [step.model_copy(update={'group': group, 'shared': None})]

        return [
            item
            for child in step.children
            for item in self.flatten(child, group)
        ]

    def renormalize(self, steps: list[Step], blueprint: 'Blueprint') -> tuple[Step, ...]:
        """Check flat steps and drop empty ones.

        Raises:
            CompileError: If a step still holds children or an include.
        """
        result: list[Step] = []

        for step in steps:
            if step.children or step.kind == 'include':
                raise CompileError.from_source(
                    'Step was not flattened',
                    step.source,
                    blueprint=blueprint.name,
                )
            if step.is_empty:
                continue
            result.append(step)

        return tuple(result)


def compile_blueprints(blueprints: 'Mapping[str, Blueprint]') -> dict[str, 'Blueprint']:
    """Compile a whole blueprint table.

    Raises:
        CompileError: On the first blueprint that fails to compile.
    """
    return Compiler(blueprints).compile_all()
