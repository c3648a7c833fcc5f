"""Tests configurations and fixtures."""

from importlib.metadata import EntryPoint, EntryPoints
from pathlib import Path
from textwrap import dedent
from typing import TYPE_CHECKING

import httpx
import pytest
import yaml

from pytest_forge.core import BlueprintLoader, compile_blueprints
from pytest_forge.transport import HttpxTransport

if TYPE_CHECKING:
    from collections.abc import Callable

if TYPE_CHECKING:
    from pytest_mock import MockerFixture, MockType

if TYPE_CHECKING:
    from pytest_forge.schema import Blueprint

BLUEPRINTS_ROOT = Path('/blueprints')


@pytest.fixture
def yaml_loader() -> type[yaml.SafeLoader]:
    """Provide an isolated YAML SafeLoader class for tests.

    Creates a dedicated subclass of `yaml.SafeLoader` to ensure that
    YAML constructors registered during a test do not leak into other
    tests or affect global loader state.

    Returns:
        A subclass of `yaml.SafeLoader` suitable for isolated parsing.
    """
    class Loader(yaml.SafeLoader):
        pass

    return Loader


@pytest.fixture
def loader(yaml_loader: type[yaml.SafeLoader]) -> BlueprintLoader:
    """Provide a blueprint loader rooted at `/blueprints`."""
    return BlueprintLoader(BLUEPRINTS_ROOT, yaml_loader)


@pytest.fixture
def parse_blueprints(loader: BlueprintLoader) -> 'Callable[..., dict[str, Blueprint]]':
    """Provide a factory parsing YAML texts into an uncompiled blueprint table.

    Texts are parsed as if they were read from `/blueprints/<name>.yml`;
    nothing touches the filesystem.
    """
    def parse(**documents: str) -> dict[str, 'Blueprint']:
        return {
            name: loader.parse(dedent(content), BLUEPRINTS_ROOT / f'{name}.yml')
            for name, content in documents.items()
        }

    return parse


@pytest.fixture
def compile_yaml(parse_blueprints: 'Callable[..., dict[str, Blueprint]]') -> 'Callable[..., dict[str, Blueprint]]':
    """Provide a factory parsing and compiling YAML texts."""
    def compile_(**documents: str) -> dict[str, 'Blueprint']:
        return compile_blueprints(parse_blueprints(**documents))

    return compile_


@pytest.fixture
def mock_transport() -> 'Callable[[Callable[[httpx.Request], httpx.Response]], HttpxTransport]':
    """Provide a factory for transports backed by `httpx.MockTransport`.

    Requests are recorded in the `requests` attribute of the returned
    transport.
    """
    def make(handler: 'Callable[[httpx.Request], httpx.Response]') -> HttpxTransport:
        requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        transport = HttpxTransport(transport=httpx.MockTransport(record))
        transport.requests = requests  # type: ignore[attr-defined]

        return transport

    return make


@pytest.fixture
def patch_entrypoints(mocker: 'MockerFixture') -> 'Callable[..., MockType]':
    """Provide a factory for mocking `importlib.metadata.entry_points`.

    Returns a callable that patches `entry_points()` to simulate
    discovery of callbacks in the `forge_callbacks` entry point group.

    The returned factory allows configuring:
    - successfully loadable plugins (a callable or a mapping of callables),
    - or an exception raised during plugin loading,
    - or an empty entry point list.
    """
    def patch(*plugins: object, raises: Exception | None = None) -> 'MockType':
        """Patch `entry_points` with a controlled plugin configuration.

        Args:
            plugins: Objects to be returned by `EntryPoint.load()`.
                If empty, no entry points are registered.
            raises: Exception to raise when `EntryPoint.load()` is called.
                Used to simulate plugin load failures.

        Returns:
            A mock patch object produced by `mocker.patch` that replaces
            `importlib.metadata.entry_points` for the duration of the test.
        """
        entrypoints = []
        for index, plugin in enumerate(plugins):
            ep = mocker.Mock(spec=EntryPoint)
            ep.group = 'forge_callbacks'
            ep.name = f'tests_{index}' if index else 'tests'
            ep.value = 'tests.callbacks:test'
            ep.load.return_value = plugin
            if raises is not None:
                ep.load.side_effect = raises
            entrypoints.append(ep)

        return mocker.patch(
            'importlib.metadata.entry_points',
            return_value=EntryPoints(entrypoints),
        )

    return patch
