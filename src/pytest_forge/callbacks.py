"""Callback registry and lifecycle hook bindings.

Callbacks are plain Python callables registered under a name. They are
invoked by `call` steps, by blueprint hooks and by lifecycle events, and
always receive a `ForgeContext` as the first argument followed by the
resolved step arguments (a list is passed positionally, a mapping as
keyword arguments).

Callbacks can also be shipped by third-party packages through the
`forge_callbacks` entry point group. An entry point may expose a single
callable (registered under the entry point name) or a mapping of names
to callables.
"""

from collections import defaultdict
from collections.abc import Callable, Mapping
from logging import getLogger
from typing import TYPE_CHECKING, Any, overload
from warnings import warn

from pydantic import Field

from pytest_forge.context import ContextManager  # noqa: TC001
from pytest_forge.errors import CallbackError, ForgeError, PluginError, PluginWarning, UndefinedCallbackError
from pytest_forge.models import SchemaModel
from pytest_forge.names import HOOK_EVENTS

if TYPE_CHECKING:
    from collections.abc import Iterable
    from importlib.metadata import EntryPoint

    from pytest_forge.values import RuntimeValue

logger = getLogger(__name__)

#: Entry point group scanned for callback plugins.
ENTRYPOINT_GROUP = 'forge_callbacks'

#: Callback fired by `debug` steps when no explicit handler is configured.
DEBUG_CALLBACK = 'on_debug'

type Callback = Callable[..., Any]


class ForgeContext(SchemaModel):
    """Snapshot handed to every callback invocation."""

    manager: ContextManager = Field(
        title='Context manager',
        description='Live context of the run, used to read and write state.',
    )

    blueprint: Any = Field(
        default=None,
        title='Current blueprint',
    )

    step: Any = Field(
        default=None,
        title='Current step',
    )

    error: Exception | None = Field(
        default=None,
        title='Failure of the step or blueprint, if any',
    )


class Binding(SchemaModel):
    """Callback bound to a lifecycle event."""

    callback_name: str
    arguments: Any = Field(default_factory=list)


class CallbackRegistry:
    """Named callbacks plus per-event hook bindings.

    Attributes:
        strict_mode: If True, plugin loading issues raise `PluginError`,
            otherwise a `PluginWarning` is emitted and loading continues.
    """

    def __init__(self, strict: bool = False) -> None:
        """Initialize an empty registry.

        Args:
            strict: Whether plugin loading issues are fatal.
        """
        self.strict_mode = strict
        self.callbacks: dict[str, Callback] = {}
        self.bindings: dict[str, list[Binding]] = defaultdict(list)

    def __contains__(self, name: object) -> bool:
        return name in self.callbacks

    @property
    def names(self) -> tuple[str, ...]:
        """Registered callback names, sorted."""
        return tuple(sorted(self.callbacks))

    @overload
    def register(self, name: str) -> Callable[[Callback], Callback]:
        ...  # pragma: no cover

    @overload
    def register(self, name: str, fn: Callback) -> Callback:
        ...  # pragma: no cover

    def register(self, name: str, fn: Callback | None = None) -> Any:  # noqa: ANN401
        """Register a callback, directly or as a decorator.

        Args:
            name: Callback name referenced from blueprints.
            fn: Callable to register; omit to use as a decorator.

        Returns:
            The callable, or a decorator registering it.
        """
        if fn is None:
            def decorator(func: Callback) -> Callback:
                self.callbacks[name] = func
                return func
            return decorator

        if not callable(fn):
            raise TypeError(f'Callback {name!r} is not callable')

        self.callbacks[name] = fn
        return fn

    def bind(self, event: str, callback_name: str,
             arguments: 'RuntimeValue' = None) -> None:
        """Bind a callback to a lifecycle event.

        Bindings of one event fire in registration order.

        Raises:
            ValueError: If the event is unknown.
        """
        if event not in HOOK_EVENTS:
            raise ValueError(f'Unknown lifecycle event {event!r}')

        self.bindings[event].append(Binding(
            callback_name=callback_name,
            arguments=arguments if arguments is not None else [],
        ))

    def unbind(self, events: 'Iterable[str]') -> None:
        """Drop all bindings of the given events."""
        for event in events:
            self.bindings.pop(event, None)

    def invoke(self, name: str, context: ForgeContext,
               arguments: 'RuntimeValue' = None) -> 'RuntimeValue':
        """Invoke a registered callback.

        Arguments are resolved against the context manager first.

        Args:
            name: Callback name.
            context: Invocation context passed as the first argument.
            arguments: List of positional or mapping of keyword arguments.

        Returns:
            Whatever the callback returns.

        Raises:
            UndefinedCallbackError: If no callback has that name.
            CallbackError: If the callback raises.
        """
        if (fn := self.callbacks.get(name)) is None:
            raise UndefinedCallbackError(name, self.names)

        resolved = context.manager.resolve(arguments) if arguments else []

        logger.debug('Invoking callback %s', name)

        try:
            if isinstance(resolved, Mapping):
                return fn(context, **resolved)
            return fn(context, *resolved)

        except CallbackError:
            raise

        except Exception as base:
            raise CallbackError(name, base) from base

    def fire(self, event: str, context: ForgeContext) -> None:
        """Invoke every binding of an event, in registration order.

        Raises:
            UndefinedCallbackError: If a bound callback is not registered.
            CallbackError: On the first callback that raises.
        """
        for binding in list(self.bindings.get(event, ())):
            self.invoke(binding.callback_name, context, binding.arguments)

    def emit_plugin_issue(self, message: str,
                          entrypoint: 'EntryPoint | None' = None) -> Exception | None:
        """Emit a plugin warning or return the exception.

        Returns:
            PluginError on strict mode, otherwise `None` after emitting
            a `PluginWarning`.
        """
        if self.strict_mode:
            return PluginError(message, entrypoint=entrypoint)

        warn(message, category=PluginWarning, stacklevel=2)

        return None

    def _add_plugin_callback(self, name: str, fn: 'RuntimeValue',
                             entrypoint: 'EntryPoint') -> None:
        if not callable(fn):
            if error := self.emit_plugin_issue(
                f'Callback {name!r} from {entrypoint.value!r} is not callable',
                entrypoint,
            ):
                raise error
            return

        if name in self.callbacks and (error := self.emit_plugin_issue(
            f'Callback {name!r} from {entrypoint.value!r} is shadowing an existing',
            entrypoint,
        )):
            raise error

        self.callbacks[name] = fn

    def _load_plugin(self, entrypoint: 'EntryPoint') -> None:
        """Load and register callbacks from one entry point.

        Raises:
            PluginError: If any loading issues occur on strict mode.
        """
        try:
            plugin = entrypoint.load()

        except ForgeError:
            raise

        except Exception as base:
            if error := self.emit_plugin_issue(
                f'Failed to load entrypoint {entrypoint.name!r}',
                entrypoint,
            ):
                raise error from base
            return

        if isinstance(plugin, Mapping):
            for name, fn in plugin.items():
                self._add_plugin_callback(str(name), fn, entrypoint)
            return

        self._add_plugin_callback(entrypoint.name, plugin, entrypoint)

    def load_entrypoints(self) -> None:
        """Discover callbacks from the `forge_callbacks` entry point group.

        Raises:
            PluginError: If any loading issues occur on strict mode.
        """
        from importlib.metadata import entry_points  # noqa: PLC0415

        for entrypoint in entry_points().select(group=ENTRYPOINT_GROUP):
            self._load_plugin(entrypoint)
