"""Command-line interface of pytest-forge.

`run` loads, compiles, filters and executes blueprints against a live
endpoint; `schema` prints the JSON Schema of blueprint files.
"""

import logging
from os import linesep
from pathlib import Path
from typing import TYPE_CHECKING

from click import Choice, ClickException, argument, echo, group, option, pass_context, secho
from click import Path as PathParam

from pytest_forge.callbacks import CallbackRegistry
from pytest_forge.core import BlueprintLoader, select_blueprints
from pytest_forge.errors import ForgeError
from pytest_forge.forge import Forge
from pytest_forge.jsonschema import SchemaGenerator
from pytest_forge.models import ForgeSettings

if TYPE_CHECKING:
    from click import Context

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')
LOG_FORMAT = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'

BlueprintsPath = PathParam(
    exists=True,
    file_okay=False,
    path_type=Path,
)


def _split(values: tuple[str, ...]) -> list[str]:
    """Flatten repeated and comma-separated option values."""
    return [
        item.strip()
        for value in values
        for item in value.split(',')
        if item.strip()
    ]


@group(help='Declarative HTTP API testing with YAML blueprints.')
def cli() -> None:
    """Root CLI group for pytest-forge tools."""
    return None


@cli.command(
    name='run',
    help=(
        'Run blueprints. PATH narrows the run to blueprints whose name '
        'starts with it (a file, a directory or a name prefix).'
    ),
)
@argument('path', required=False)
@option(
    '-b', '--blueprints',
    type=BlueprintsPath,
    default=None,
    help='Blueprints root directory (overrides FORGE_BLUEPRINTS_PATH).',
)
@option(
    '-t', '--tags',
    multiple=True,
    help='Run only steps carrying one of these tags. Repeatable or comma-separated.',
)
@option(
    '-s', '--skip-tags',
    multiple=True,
    help='Skip steps carrying any of these tags. Repeatable or comma-separated.',
)
@option(
    '--base-url',
    default=None,
    help='Base URL joined with relative request URLs (overrides FORGE_BASE_URL).',
)
@option(
    '--fail-fast/--no-fail-fast',
    default=None,
    help='Stop after the first failing blueprint.',
)
@option(
    '--relaxed',
    is_flag=True,
    default=False,
    help='Only warn when a callback plugin can not be loaded.',
)
@option(
    '--log-level',
    type=Choice(LOG_LEVELS, case_sensitive=False),
    default='WARNING',
    show_default=True,
    help='Logging level.',
)
@pass_context
def run_blueprints(ctx: 'Context', path: str | None, blueprints: Path | None,  # noqa: PLR0913
                   tags: tuple[str, ...], skip_tags: tuple[str, ...],
                   base_url: str | None, fail_fast: bool | None,
                   relaxed: bool, log_level: str) -> None:
    """Load, compile, filter and run blueprints."""
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)

    overrides: dict[str, object] = {}
    if blueprints is not None:
        overrides['blueprints_path'] = blueprints
    if base_url is not None:
        overrides['base_url'] = base_url
    if fail_fast is not None:
        overrides['fail_fast'] = fail_fast
    if relaxed:
        overrides['strict'] = False

    settings = ForgeSettings().model_copy(update=overrides)

    try:
        registry = CallbackRegistry(strict=settings.strict)
        registry.load_entrypoints()

        selected = select_blueprints(
            BlueprintLoader(settings.blueprints_path),
            path=path,
            tags=_split(tags),
            skip_tags=_split(skip_tags),
        )

    except ForgeError as error:
        raise ClickException(str(error)) from error

    if not selected:
        echo('No blueprints selected.')
        return

    forge = Forge(settings, registry=registry)
    try:
        result = forge.run(selected)
    finally:
        close = getattr(forge.transport, 'close', None)
        if callable(close):
            close()

    for blueprint_result in result.blueprints:
        name = blueprint_result.blueprint.name
        steps = len(blueprint_result.steps)
        if blueprint_result.passed:
            secho(f'PASS {name} ({steps} steps, {blueprint_result.elapsed:.2f}s)', fg='green')
            continue

        secho(f'FAIL {name} ({steps} steps, {blueprint_result.elapsed:.2f}s)', fg='red')
        for error in blueprint_result.errors:
            echo(f'{error}{linesep}')

    for error in result.errors:
        secho(f'{error}{linesep}', fg='red')

    failed = len(result.failed)
    echo(f'{len(result.blueprints)} blueprint(s), {failed} failed in {result.elapsed:.2f}s')

    if not result.passed:
        ctx.exit(1)


@cli.command(
    name='schema',
    help='Print the blueprint JSON Schema to standard output.',
)
def print_schema() -> None:
    """Generate and print the JSON Schema."""
    echo(SchemaGenerator.make_schema())


if __name__ == '__main__':
    cli()
