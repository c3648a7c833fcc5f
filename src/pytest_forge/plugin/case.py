"""Pytest item running a single compiled blueprint."""

from os import linesep
from typing import TYPE_CHECKING

import pytest

from pytest_forge.errors import ForgeError

if TYPE_CHECKING:
    from typing import Any

if TYPE_CHECKING:
    from _pytest._code.code import ExceptionInfo, TerminalRepr

if TYPE_CHECKING:
    from pytest_forge.forge import BlueprintResult, Forge
    from pytest_forge.schema import Blueprint


class BlueprintFailed(AssertionError):
    """Blueprint finished with at least one error."""

    def __init__(self, result: 'BlueprintResult') -> None:
        self.result = result

        lines = [f'Blueprint "{result.blueprint.name}" failed with {len(result.errors)} error(s)']
        lines.extend(str(error) for error in result.errors)

        super().__init__(f'{linesep}{linesep}'.join(lines))


class BlueprintItem(pytest.Item):
    """Pytest item executing a single blueprint.

    The first item to run fires `before_forge`; `after_forge` fires at
    session finish.
    """

    __test__ = False

    def __init__(self, *, blueprint: 'Blueprint', **kwargs: 'Any') -> None:
        """Initialize a pytest item backed by a compiled blueprint.

        Args:
            blueprint: Compiled and filtered blueprint.
            **kwargs: Keyword pytest.Item arguments.
        """
        super().__init__(**kwargs)

        self.blueprint = blueprint
        self.add_marker('forge')

    @property
    def forge(self) -> 'Forge':
        return self.config.forge  # type: ignore[attr-defined]

    def ensure_started(self) -> None:
        """Start the run on first use.

        Raises:
            ForgeError: If `before_forge` failed.
        """
        config = self.config
        if not getattr(config, 'forge_started', False):
            config.forge_start_error = self.forge.start()  # type: ignore[attr-defined]
            config.forge_started = True  # type: ignore[attr-defined]

        if (error := getattr(config, 'forge_start_error', None)) is not None:
            raise error

    def runtest(self) -> None:
        """Execute the blueprint.

        Raises:
            BlueprintFailed: If any step or hook failed.
        """
        self.ensure_started()

        result = self.forge.run_blueprint(self.blueprint)
        if not result.passed:
            raise BlueprintFailed(result)

    def repr_failure(self, excinfo: 'ExceptionInfo[BaseException]',
                     style: 'Any' = None) -> 'str | TerminalRepr':
        """Report blueprint failures without the runner traceback."""
        if isinstance(excinfo.value, (BlueprintFailed, ForgeError)):
            return str(excinfo.value)

        return super().repr_failure(excinfo, style=style)

    def reportinfo(self) -> tuple['Any', int | None, str]:
        return self.path, None, f'blueprint: {self.blueprint.name}'
