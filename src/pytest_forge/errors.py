"""Core exception hierarchy.

This module defines base error and warning types used across the library
to report blueprint loading and compilation failures, expectation
mismatches, transport and callback errors in a structured way.
"""

from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from yaml import dump
from yaml.error import MarkedYAMLError

from pytest_forge.values import MAPPINGS, SCALARS, SEQUENCES

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from importlib.metadata import EntryPoint
    from typing import Self

    from yaml.nodes import Node

if TYPE_CHECKING:
    from pytest_forge.schema import Source
    from pytest_forge.validators import Failure

SNIPPET_ELLIPSIS = f' ...{linesep}'
SNIPPET_INDENT = 2

FORMAT_REPLACER = '<runtime object>'
FORMAT_FILENAME = '<unicode string>'
FORMAT_INDENT = 4


class ErrorContext(TypedDict, total=False):
    """Container describing contextual information for error formatting.

    All fields are optional; the formatter adapts output based on
    provided values.
    """

    #: Name of the blueprint being compiled or executed.
    blueprint: str | None

    #: Name of the source file where the error occurred.
    filename: str | None
    #: Line number in the source file (1-based).
    line_num: int | None
    #: Sources of the include steps that pulled the element in, innermost first.
    included_by: 'Sequence[Source] | None'

    #: Underlying exception that triggered formatting.
    error: Exception | None

    #: Element associated with the error.
    element: Any


class ErrorFormatter:
    """Utility class for formatting errors.

    Produces human-readable messages with optional source location,
    include provenance and YAML-based snippets of the failing element.
    """

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Format an error message using contextual information.

        Args:
            message: Base human-readable error message.
            context: Optional error context with location and data.

        Returns:
            A fully formatted error message suitable for display.
        """
        if not context:
            return message

        message += linesep
        message += cls.get_location_string(context, indent=FORMAT_INDENT)
        message += cls.get_snippet_string(context, indent=FORMAT_INDENT * 2)

        return message.rstrip()

    @classmethod
    def get_location_string(cls, context: ErrorContext, *,
                            indent: str | int | None = None) -> str:
        """Format source location and include provenance.

        Args:
            context: Error context containing location metadata.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted location string.
        """
        indent = cls._ensure_indent(indent)
        message = ''

        if blueprint := context.get('blueprint'):
            message += f'{indent}in blueprint "{blueprint}"{linesep}'

        filename = context.get('filename') or FORMAT_FILENAME
        message += f'{indent}in "{filename}"'
        if (line_num := context.get('line_num')) is not None:
            message += f', line {line_num}'
        message += linesep

        for source in context.get('included_by') or ():
            message += f'{indent}included from {source}{linesep}'

        return message

    @classmethod
    def get_snippet_string(cls, context: ErrorContext, *,
                           indent: str | int | None = None) -> str:
        """Generate a formatted snippet illustrating the error context.

        Args:
            context: Error context containing element or exception data.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted multi-line snippet string, or an empty string.
        """
        indent = cls._ensure_indent(indent)

        if (error := context.get('error')) and isinstance(error, MarkedYAMLError):
            if error.problem_mark is None:
                return ''
            snippet = error.problem_mark.get_snippet(indent=0) or ''
            return cls._make_indent(snippet, indent)

        if element := context.get('element'):
            snippet = f'{indent}{SNIPPET_ELLIPSIS}'
            snippet += cls._make_yaml(element, indent)
            snippet += linesep
            return snippet

        return ''

    @classmethod
    def _filter_unsafe(cls, value: Any) -> Any:  # noqa: ANN401
        """Recursively sanitize values for safe YAML serialization.

        Non-scalar and non-container objects are replaced with
        a placeholder to prevent leaking opaque data.
        """
        if value is None or isinstance(value, SCALARS):
            return value

        if isinstance(value, MAPPINGS):
            return {
                key: cls._filter_unsafe(item)
                for key, item in value.items()
            }

        if isinstance(value, SEQUENCES):
            return [
                cls._filter_unsafe(item)
                for item in value
            ]

        return FORMAT_REPLACER

    @classmethod
    def _make_yaml(cls, value: Any, indent: str = '') -> str:  # noqa: ANN401
        """Serialize a sanitized value to an indented YAML string."""
        data = dump(
            cls._filter_unsafe(value),
            indent=SNIPPET_INDENT,
            sort_keys=False,
        )

        return cls._make_indent(data, indent)

    @staticmethod
    def _make_indent(value: str, indent: str) -> str:
        """Apply indentation to a multi-line string, dropping blank lines."""
        if not indent:
            return value

        return linesep.join(
            f'{indent}{line}'
            for line in value.splitlines()
            if line.strip()
        )

    @staticmethod
    def _ensure_indent(indent: str | int | None = None) -> str:
        """Normalize indentation input."""
        if isinstance(indent, int) and indent > 0:
            return ' ' * indent

        if isinstance(indent, str):
            return indent

        return ''


class PluginWarning(UserWarning):
    """Warning emitted for non-fatal callback plugin issues.

    Used when a plugin cannot be loaded in relaxed mode.
    """


class ForgeError(Exception, ErrorFormatter):
    """Base exception for all pytest-forge errors."""

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Human-readable error description.
            context: Error context containing optional location data.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return self.format(self.message, self.context)

    def with_context(self, **context: Any) -> 'Self':  # noqa: ANN401
        """Attach additional location context, overriding existing keys."""
        self.context = ErrorContext(**{**(self.context or {}), **context})  # type: ignore[typeddict-item]
        return self


class PluginError(ForgeError):
    """Error raised for fatal callback plugin failures in strict mode."""

    def __init__(self, message: str, *,
                 entrypoint: 'EntryPoint | None' = None) -> None:
        """Initialize a plugin error.

        Args:
            message: Human-readable error description.
            entrypoint: Optional entry point associated with the error.
        """
        self.entrypoint = entrypoint

        super().__init__(message)


class LoadError(ForgeError):
    """Error raised when a blueprint file can not be read or parsed."""

    @classmethod
    def from_yaml_error(cls, error: MarkedYAMLError, filename: str | None = None) -> 'Self':
        """Create a load error from a YAML parsing failure.

        Args:
            error: Exception raised by the YAML parser.
            filename: Display name of the file being parsed.

        Returns:
            LoadError with the position of the problem.
        """
        mark = error.problem_mark
        error_context = ErrorContext(
            filename=filename or (mark.name if mark else None),
            line_num=mark.line + 1 if mark else None,
            error=error,
        )

        message = 'Invalid YAML'
        if error.problem:
            message += f'{linesep}{' ' * FORMAT_INDENT}{error.problem}'

        return cls(message, context=error_context)

    @classmethod
    def from_yaml_node(cls, message: str, node: 'Node',
                       error: Exception | None = None) -> 'Self':
        """Create a load error located at a YAML node.

        Args:
            message: Human-readable error message.
            node: YAML node associated with the error.
            error: Optional underlying exception.

        Returns:
            LoadError with the position of the node.
        """
        error_context = ErrorContext(
            filename=node.start_mark.name,
            line_num=node.start_mark.line + 1,
            error=error,
        )

        return cls(message, context=error_context)


class CompileError(ForgeError):
    """Error raised while compiling a blueprint into executable steps.

    Covers malformed step shapes, unknown include targets and include
    cycles. Always fatal to the affected blueprint.
    """

    @classmethod
    def from_source(cls, message: str, source: 'Source | None', *,
                    blueprint: str | None = None,
                    element: Any = None,  # noqa: ANN401
                    error: Exception | None = None) -> 'Self':
        """Create a compile error located at a step source.

        Args:
            message: Human-readable error message.
            source: Source of the offending step.
            blueprint: Name of the blueprint being compiled.
            element: Raw step data used for the snippet.
            error: Underlying exception.

        Returns:
            CompileError with file and line attached.
        """
        error_context = ErrorContext(
            blueprint=blueprint,
            filename=source.file_name if source else None,
            line_num=source.line_number if source else None,
            element=element,
            error=error,
        )

        return cls(message, context=error_context)


class NamespaceError(CompileError):
    """Error raised when an unknown context namespace is referenced."""

    def __init__(self, namespace: str, available: 'Iterable[str]') -> None:
        """Initialize a namespace error.

        Args:
            namespace: Requested namespace.
            available: Namespaces that are valid in this position.
        """
        self.namespace = namespace
        self.available = tuple(available)

        names = ', '.join(f'"{name}"' for name in self.available)
        super().__init__(f'Unknown namespace "{namespace}". Available: {names}')


class ValidationFailure(ForgeError):
    """Aggregate of every mismatch found by one validator run.

    Validators never stop at the first mismatch; the failure carries
    the complete list of path-tagged problems.
    """

    #: Short name of the validated aspect used in reports.
    label: str = 'Validation'

    def __init__(self, failures: 'Sequence[Failure]') -> None:
        """Initialize a validation failure.

        Args:
            failures: Path-tagged mismatches.
        """
        self.failures = tuple(failures)

        lines = [f'{self.label} failed with {len(self.failures)} mismatch(es)']
        lines.extend(
            f'{' ' * FORMAT_INDENT}{failure}'
            for failure in self.failures
        )

        super().__init__(linesep.join(lines))


class ShapeValidationFailure(ValidationFailure):
    """Mismatches between a response body and a compact shape."""

    label = 'Shape'


class SchemaValidationFailure(ValidationFailure):
    """Mismatches between a response body and a schema tree."""

    label = 'Schema'


class ContentValidationFailure(ValidationFailure):
    """Mismatches between a response body and expected content."""

    label = 'Content'


class HeaderValidationFailure(ValidationFailure):
    """Mismatches between response headers and expected headers."""

    label = 'Headers'


class ExpectationFailure(ValidationFailure):
    """All failures of a single `expect` step, aggregated into one report."""

    label = 'Expectation'


class TransportError(ForgeError):
    """Error raised when the HTTP transport fails to produce a response.

    Fatal to the remaining steps of the current blueprint; never retried.
    """


class StepError(ForgeError):
    """Unexpected exception raised while a step ran.

    Fatal to the remaining steps of the current blueprint, like a
    transport failure.
    """

    def __init__(self, error: Exception) -> None:
        """Initialize a step error.

        Args:
            error: Exception raised by the step.
        """
        self.error = error

        super().__init__(f'Step raised {error!r}')


class UndefinedVariableError(ForgeError):
    """Error raised when a template references a name nothing defines."""

    def __init__(self, name: str) -> None:
        """Initialize an undefined variable error.

        Args:
            name: Root name of the placeholder.
        """
        self.name = name

        super().__init__(f'Undefined variable "{name}"')


class CallbackError(ForgeError):
    """Error raised from inside a user callback."""

    def __init__(self, callback_name: str, error: Exception) -> None:
        """Initialize a callback error.

        Args:
            callback_name: Name of the failing callback.
            error: Exception raised by the callback.
        """
        self.callback_name = callback_name
        self.error = error

        super().__init__(f'Callback "{callback_name}" raised {error!r}')


class UndefinedCallbackError(ForgeError):
    """Error raised when a referenced callback has not been registered."""

    def __init__(self, callback_name: str, available: 'Iterable[str]' = ()) -> None:
        """Initialize an undefined callback error.

        Args:
            callback_name: Requested callback name.
            available: Names of registered callbacks.
        """
        self.callback_name = callback_name
        self.available = tuple(available)

        message = f'The callback "{callback_name}" was referenced but has not been registered.'
        if self.available:
            names = ', '.join(f'"{name}"' for name in self.available)
            message += f'{linesep}Available callbacks are: {names}'
        else:
            message += f'{linesep}No callbacks have been registered yet.'

        super().__init__(message)
