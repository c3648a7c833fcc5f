"""Pytest plugin for collecting and running blueprint files.

This module integrates pytest-forge with pytest by:
- registering custom command-line options;
- configuring a shared loader, tag filter, callback registry and runner;
- collecting blueprint files as executable test items.

Files matching `*.blueprint.yml` or `*.blueprint.yaml` are collected;
every other YAML file under the blueprints root is still loaded so that
includes can reference it.
"""

from re import match
from typing import TYPE_CHECKING

from .spec import BlueprintFile

if TYPE_CHECKING:
    from pathlib import Path

if TYPE_CHECKING:
    from _pytest.config import Config
    from _pytest.config.argparsing import Parser
    from _pytest.main import Session
    from _pytest.nodes import Node


def _split(value: str | None) -> list[str]:
    """Split a comma-separated option value."""
    if not value:
        return []

    return [item.strip() for item in value.split(',') if item.strip()]


def pytest_addoption(parser: 'Parser') -> None:
    """Register pytest command-line options for pytest-forge.

    Args:
        parser: Pytest argument parser.
    """
    parser.addoption(
        '--forge-base-url',
        action='store',
        dest='forge_base_url',
        default=None,
        help='Base URL joined with relative request URLs (overrides FORGE_BASE_URL).',
    )
    parser.addoption(
        '--forge-blueprints',
        action='store',
        dest='forge_blueprints',
        default=None,
        help=(
            'Blueprints root directory. Blueprint names and include '
            'references are relative to it (overrides FORGE_BLUEPRINTS_PATH).'
        ),
    )
    parser.addoption(
        '--forge-tags',
        action='store',
        dest='forge_tags',
        default=None,
        help='Comma-separated tags; only steps carrying one of them run.',
    )
    parser.addoption(
        '--forge-skip-tags',
        action='store',
        dest='forge_skip_tags',
        default=None,
        help='Comma-separated tags; steps carrying any of them are skipped.',
    )
    parser.addoption(
        '--forge-relaxed',
        action='store_true',
        dest='forge_relaxed',
        default=False,
        help=(
            'Disable strict callback plugin loading. '
            'Third-party plugin loading errors will only emit warnings.'
        ),
    )


def pytest_configure(config: 'Config') -> None:
    """Configure pytest-forge integration.

    Resolves settings from the environment and command-line options
    and attaches a shared loader (`config.forge_loader`), step filter
    (`config.forge_filter`) and runner (`config.forge`).

    Args:
        config: Pytest configuration object.
    """
    from pytest_forge.callbacks import CallbackRegistry  # noqa: PLC0415
    from pytest_forge.core import BlueprintLoader, Filter  # noqa: PLC0415
    from pytest_forge.forge import Forge  # noqa: PLC0415
    from pytest_forge.models import ForgeSettings  # noqa: PLC0415

    overrides: dict[str, object] = {}
    if base_url := config.getoption('--forge-base-url', default=None):
        overrides['base_url'] = base_url
    if blueprints := config.getoption('--forge-blueprints', default=None):
        overrides['blueprints_path'] = blueprints
    if config.getoption('--forge-relaxed', default=False):
        overrides['strict'] = False

    config.addinivalue_line('markers', 'forge: blueprint collected by pytest-forge')

    settings = ForgeSettings().model_copy(update=overrides)

    registry = CallbackRegistry(strict=settings.strict)
    registry.load_entrypoints()

    config.forge_loader = BlueprintLoader(settings.blueprints_path)  # type: ignore[attr-defined]
    config.forge_filter = Filter(  # type: ignore[attr-defined]
        tags=_split(config.getoption('--forge-tags', default=None)),
        skip_tags=_split(config.getoption('--forge-skip-tags', default=None)),
    )
    config.forge = Forge(settings, registry=registry)  # type: ignore[attr-defined]
    config.forge_started = False  # type: ignore[attr-defined]
    config.forge_start_error = None  # type: ignore[attr-defined]


def pytest_collect_file(parent: 'Node', file_path: 'Path') -> BlueprintFile | None:
    """Collect blueprint files.

    Args:
        parent: Parent pytest collection node.
        file_path: Path to the file being considered.

    Returns:
        A `BlueprintFile` collector if the file is a blueprint, otherwise ``None``.
    """
    if match(r'^.+\.blueprint\.ya?ml$', file_path.name):
        return BlueprintFile.from_parent(
            parent,
            path=file_path,
        )

    return None


def pytest_sessionfinish(session: 'Session') -> None:
    """Fire `after_forge` once, if any blueprint ran."""
    config = session.config
    if getattr(config, 'forge_started', False):
        config.forge.finish()  # type: ignore[attr-defined]
        config.forge_started = False  # type: ignore[attr-defined]
