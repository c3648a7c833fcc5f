"""Blueprint execution.

The `Forge` drives compiled blueprints one after another. Each
blueprint walks a small state machine:

    pending -> before_hooks -> running_steps -> after_hooks -> completed

Expectation failures are recoverable and only recorded. Transport and
callback failures are not: the remaining steps of the blueprint are
skipped, but after-hooks always fire.
"""

from collections import defaultdict
from enum import StrEnum
from logging import getLogger
from time import perf_counter
from typing import TYPE_CHECKING

from pytest_forge.callbacks import DEBUG_CALLBACK, Binding, CallbackRegistry, ForgeContext
from pytest_forge.context import ContextManager
from pytest_forge.errors import CallbackError, ExpectationFailure, ForgeError, StepError
from pytest_forge.models import ForgeSettings
from pytest_forge.schema import (
    CallAction,
    DebugAction,
    ExpectAction,
    HooksAction,
    IncludeAction,
    NoticeAction,
    RequestAction,
    StoreAction,
)
from pytest_forge.transport import HttpxTransport

from .actions import build_request, check_expectation

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from pytest_forge.schema import Blueprint, HookBinding, HookCall, Step
    from pytest_forge.transport import HttpResponse, Transport

logger = getLogger(__name__)


class BlueprintState(StrEnum):
    """Execution state of a single blueprint."""

    PENDING = 'pending'
    BEFORE_HOOKS = 'before_hooks'
    RUNNING_STEPS = 'running_steps'
    AFTER_HOOKS = 'after_hooks'
    COMPLETED = 'completed'


class StepStatus(StrEnum):
    """Outcome of a single step."""

    PASSED = 'passed'
    FAILED = 'failed'
    SKIPPED = 'skipped'


class StepResult:
    """Outcome of one executed or skipped step."""

    def __init__(self, step: 'Step', status: StepStatus,
                 error: ForgeError | None = None,
                 elapsed: float = 0.0) -> None:
        self.step = step
        self.status = status
        self.error = error
        self.elapsed = elapsed

    def __repr__(self) -> str:
        return f'<StepResult {self.step.display_name!r} {self.status}>'


class BlueprintResult:
    """Outcome of one blueprint.

    Attributes:
        blueprint: Executed blueprint.
        state: Last state reached; `completed` once after-hooks ran.
        steps: Per-step results, skipped steps included.
        errors: Every failure, step and hook failures alike.
        elapsed: Wall time in seconds.
    """

    def __init__(self, blueprint: 'Blueprint') -> None:
        self.blueprint = blueprint
        self.state = BlueprintState.PENDING
        self.steps: list[StepResult] = []
        self.errors: list[ForgeError] = []
        self.elapsed = 0.0

    @property
    def passed(self) -> bool:
        return not self.errors

    @property
    def aborted(self) -> bool:
        """Whether an unrecoverable error skipped the remaining steps."""
        return any(result.status == StepStatus.SKIPPED for result in self.steps)

    def __repr__(self) -> str:
        return f'<BlueprintResult {self.blueprint.name!r} passed={self.passed}>'


class ForgeResult:
    """Outcome of a whole run."""

    def __init__(self, blueprints: 'Iterable[BlueprintResult]' = (),
                 errors: 'Iterable[ForgeError]' = (),
                 elapsed: float = 0.0) -> None:
        self.blueprints = list(blueprints)
        self.errors = list(errors)
        self.elapsed = elapsed

    @property
    def passed(self) -> bool:
        return not self.errors and all(result.passed for result in self.blueprints)

    @property
    def failed(self) -> list[BlueprintResult]:
        return [result for result in self.blueprints if not result.passed]


class Forge:
    """Runs compiled blueprints against a live endpoint.

    Attributes:
        settings: Resolved runtime settings.
        registry: Callbacks and run-wide hook bindings.
        transport: Object performing HTTP requests.
        context: Context manager shared by the whole run.
    """

    def __init__(self, settings: ForgeSettings | None = None, *,
                 registry: CallbackRegistry | None = None,
                 transport: 'Transport | None' = None,
                 context: ContextManager | None = None,
                 debug_callback: 'Callable[[ForgeContext], object] | None' = None) -> None:
        """Initialize a runner.

        Args:
            settings: Runtime settings; read from the environment if omitted.
            registry: Callback registry; an empty one if omitted.
            transport: HTTP transport; an `HttpxTransport` if omitted.
            context: Context manager; built from global settings if omitted.
            debug_callback: Handler invoked by `debug` steps.
        """
        self.settings = settings or ForgeSettings()
        self.registry = registry or CallbackRegistry(strict=self.settings.strict)
        self.transport = transport or HttpxTransport(self.settings.timeout)
        self.context = context or ContextManager(self.settings.global_variables)
        self.debug_callback = debug_callback

        self.response: HttpResponse | None = None

        self.forge_bindings: dict[str, list[Binding]] = defaultdict(list)
        self.blueprint_bindings: dict[str, list[Binding]] = defaultdict(list)
        self.pending_bindings: list[HookBinding] = []

    def make_context(self, blueprint: 'Blueprint | None' = None,
                     step: 'Step | None' = None,
                     error: Exception | None = None) -> ForgeContext:
        return ForgeContext(
            manager=self.context,
            blueprint=blueprint,
            step=step,
            error=error,
        )

    def fire(self, event: str, context: ForgeContext) -> None:
        """Fire an event: registry bindings first, then step bindings.

        Raises:
            CallbackError: On the first callback that raises.
        """
        self.registry.fire(event, context)

        scoped = self.forge_bindings if event == 'after_forge' else self.blueprint_bindings
        for binding in list(scoped.get(event, ())):
            self.registry.invoke(binding.callback_name, context, binding.arguments)

    def activate_bindings(self) -> None:
        """Make bindings registered by `hooks` steps live.

        Bindings take effect from the step after the one that registered
        them. `after_forge` bindings live for the whole run, every other
        event for the current blueprint.
        """
        for binding in self.pending_bindings:
            scoped = self.forge_bindings if binding.event == 'after_forge' else self.blueprint_bindings
            scoped[binding.event].append(Binding(
                callback_name=binding.callback_name,
                arguments=binding.arguments,
            ))

        self.pending_bindings.clear()

    def call_hooks(self, hooks: 'Iterable[HookCall]', context: ForgeContext) -> None:
        for hook in hooks:
            self.registry.invoke(hook.callback_name, context, hook.arguments)

    def run(self, blueprints: 'Iterable[Blueprint]') -> ForgeResult:
        """Run blueprints in order.

        Clears the context, fires `before_forge`, runs every blueprint and
        always fires `after_forge`. With `fail_fast` the run stops after
        the first failing blueprint.

        Returns:
            Per-blueprint results, elapsed time and overall status.
        """
        started = perf_counter()
        result = ForgeResult()

        if error := self.start():
            result.errors.append(error)

        else:
            for blueprint in blueprints:
                blueprint_result = self.run_blueprint(blueprint)
                result.blueprints.append(blueprint_result)

                if self.settings.fail_fast and not blueprint_result.passed:
                    logger.info('Stopping after %s (fail fast)', blueprint.name)
                    break

        if error := self.finish():
            result.errors.append(error)

        result.elapsed = perf_counter() - started

        return result

    def start(self) -> ForgeError | None:
        """Reset the run state and fire `before_forge`.

        Returns:
            The hook failure, if any.
        """
        self.context.clear()
        self.forge_bindings.clear()

        try:
            self.fire('before_forge', self.make_context())

        except ForgeError as error:
            logger.warning('before_forge hook failed: %s', error)
            return error

        return None

    def finish(self) -> ForgeError | None:
        """Fire `after_forge` and drop run-scoped step bindings.

        Returns:
            The hook failure, if any.
        """
        try:
            self.fire('after_forge', self.make_context())

        except ForgeError as error:
            logger.warning('after_forge hook failed: %s', error)
            return error

        finally:
            self.forge_bindings.clear()

        return None

    def run_blueprint(self, blueprint: 'Blueprint') -> BlueprintResult:
        """Run one compiled blueprint through its state machine."""
        started = perf_counter()
        result = BlueprintResult(blueprint)

        logger.info('Running blueprint %s (%d steps)', blueprint.name, len(blueprint.steps))

        self.context.start_blueprint(blueprint)
        self.blueprint_bindings.clear()
        self.pending_bindings.clear()
        self.response = None

        result.state = BlueprintState.BEFORE_HOOKS
        aborted = False

        try:
            context = self.make_context(blueprint)
            self.fire('before_blueprint', context)
            self.call_hooks(blueprint.hooks.before, context)

        except ForgeError as error:
            result.errors.append(self.locate(error, blueprint))
            aborted = True

        result.state = BlueprintState.RUNNING_STEPS
        current_group: int | None = None

        for step in blueprint.steps:
            if aborted:
                result.steps.append(StepResult(step, StepStatus.SKIPPED))
                continue

            if step.group != current_group:
                self.context.store.clear_scope('spec')
                current_group = step.group

            step_result = self.run_step(blueprint, step)
            result.steps.append(step_result)

            if step_result.error is not None:
                result.errors.append(step_result.error)
                aborted = not isinstance(step_result.error, ExpectationFailure)

        self.activate_bindings()
        result.state = BlueprintState.AFTER_HOOKS

        context = self.make_context(blueprint, error=result.errors[-1] if result.errors else None)

        try:
            self.fire('after_blueprint', context)
        except ForgeError as error:
            result.errors.append(self.locate(error, blueprint))

        try:
            self.call_hooks(blueprint.hooks.after, context)
        except ForgeError as error:
            result.errors.append(self.locate(error, blueprint))

        self.blueprint_bindings.clear()

        result.state = BlueprintState.COMPLETED
        result.elapsed = perf_counter() - started

        if result.passed:
            logger.info('Blueprint %s passed', blueprint.name)
        else:
            logger.warning('Blueprint %s failed with %d error(s)', blueprint.name, len(result.errors))

        return result

    def run_step(self, blueprint: 'Blueprint', step: 'Step') -> StepResult:
        """Run one step between its before/after step hooks.

        The step's variables are active as the overlay while it runs.
        """
        started = perf_counter()
        error: ForgeError | None = None

        self.activate_bindings()

        if step.variables:
            self.context.variables.use_overlay(step.variables)
        else:
            self.context.variables.clear_overlay()

        try:
            self.fire('before_step', self.make_context(blueprint, step))
            self.dispatch(blueprint, step)

        except ForgeError as base:
            error = self.locate(base, blueprint, step)
            logger.warning('Step %s failed: %s', step.display_name, base.message)

        except Exception as base:
            error = self.locate(StepError(base), blueprint, step)
            logger.warning('Step %s raised %r', step.display_name, base)

        try:
            self.fire('after_step', self.make_context(blueprint, step, error))

        except ForgeError as base:
            error = error or self.locate(base, blueprint, step)

        finally:
            self.context.variables.clear_overlay()

        return StepResult(
            step,
            StepStatus.FAILED if error else StepStatus.PASSED,
            error=error,
            elapsed=perf_counter() - started,
        )

    def dispatch(self, blueprint: 'Blueprint', step: 'Step') -> None:
        """Execute the single action of a step.

        Raises:
            ExpectationFailure: If an expectation does not hold.
            TransportError: If the request could not be performed.
            CallbackError: If a callback raises.
        """
        logger.info('%s: %s', step.kind, step.display_name)

        match step.action:
            case RequestAction() as action:
                request = build_request(action, self.context, self.settings)
                self.response = self.transport.perform(request)
                self.context.variables.store('request', request.to_variable())
                self.context.variables.store('response', self.response.to_variable())

            case ExpectAction() as action:
                if failures := check_expectation(action, self.response, self.context):
                    raise ExpectationFailure(failures)

            case StoreAction() as action:
                for name, value in action.entries.items():
                    self.context.store.store(name, self.context.resolve(value), action.scope)

            case CallAction() as action:
                self.registry.invoke(
                    action.callback_name,
                    self.make_context(blueprint, step),
                    action.arguments,
                )

            case HooksAction() as action:
                self.pending_bindings.extend(action.bindings)

            case DebugAction():
                self.debug(blueprint, step)

            case NoticeAction() as action:
                logger.info(action.message)

            case IncludeAction():
                raise ForgeError('Include steps must be expanded before execution')

            case None:
                pass

    def debug(self, blueprint: 'Blueprint', step: 'Step') -> None:
        """Invoke the configured or registered debug handler."""
        context = self.make_context(blueprint, step)

        if self.debug_callback is not None:
            try:
                self.debug_callback(context)
            except Exception as base:
                raise CallbackError(DEBUG_CALLBACK, base) from base
            return

        if DEBUG_CALLBACK in self.registry:
            self.registry.invoke(DEBUG_CALLBACK, context)
            return

        logger.warning(
            'Debug breakpoint reached at %s but no debug handler is configured',
            step.source or step.display_name,
        )

    @staticmethod
    def locate(error: ForgeError, blueprint: 'Blueprint',
               step: 'Step | None' = None) -> ForgeError:
        """Attach blueprint, file and line to an error."""
        if step is None or step.source is None:
            return error.with_context(
                blueprint=blueprint.name,
                filename=str(blueprint.relative_path),
            )

        return error.with_context(
            blueprint=blueprint.name,
            filename=step.source.file_name,
            line_num=step.source.line_number,
            included_by=list(step.included_by),
        )
