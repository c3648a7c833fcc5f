"""Blueprint file discovery and YAML loading.

Blueprints are YAML files below a blueprints root. The unique blueprint
name is the path relative to that root with the YAML extension removed.
Every mapping produced by the loader remembers the line it was declared
on so compiled steps can point back to their source.
"""

from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import Field, ValidationError, field_validator
from yaml import SafeLoader, add_constructor, load
from yaml.error import MarkedYAMLError

from pytest_forge.builtins.instructions import INSTRUCTIONS
from pytest_forge.errors import ErrorContext, ForgeError, LoadError
from pytest_forge.models import SchemaModel
from pytest_forge.names import Tag, Variable  # noqa: TC001
from pytest_forge.schema import Blueprint, BlueprintHooks
from pytest_forge.values import RuntimeValue  # noqa: TC001

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from yaml import BaseLoader
    from yaml.nodes import MappingNode

logger = getLogger(__name__)

YAML_SUFFIXES = ('.yml', '.yaml')

#: Optional marker before the YAML extension, e.g. `users.blueprint.yaml`.
BLUEPRINT_MARKER = '.blueprint'


class LineDict(dict[str, RuntimeValue]):
    """Mapping remembering the 1-based line it was declared on."""

    line_number: int | None = None


def mapping_constructor(loader: 'BaseLoader', node: 'MappingNode') -> 'Iterator[LineDict]':
    """Construct a mapping annotated with its declaration line."""
    mapping = LineDict()
    mapping.line_number = node.start_mark.line + 1
    yield mapping
    mapping.update(loader.construct_mapping(node))  # type: ignore[arg-type]


class BlueprintDocument(SchemaModel):
    """Top-level structure of a blueprint file written as a mapping."""

    tags: list[Tag] = Field(default_factory=list)
    variables: dict[Variable, RuntimeValue] = Field(default_factory=dict)
    hooks: BlueprintHooks = Field(default_factory=BlueprintHooks)
    steps: list[RuntimeValue] = Field(default_factory=list)

    @field_validator('tags', mode='before')
    @classmethod
    def _tags_listify(cls, value: RuntimeValue) -> RuntimeValue:
        if isinstance(value, str):
            return [value]

        return value


def strip_suffix(name: str) -> str:
    """Remove a trailing YAML extension and the blueprint marker before it."""
    for suffix in YAML_SUFFIXES:
        if name.endswith(suffix):
            return name[:-len(suffix)].removesuffix(BLUEPRINT_MARKER)

    return name


class BlueprintLoader:
    """Reads blueprint files into uncompiled blueprints.

    Attributes:
        base_path: Blueprints root used to derive names.
        yaml_loader: YAML loader class with blueprint constructors attached.
    """

    def __init__(self, base_path: Path | str, yaml_loader: type['BaseLoader'] | None = None,
                 auto_attach: bool = True) -> None:
        """Initialize a loader.

        Args:
            base_path: Blueprints root directory.
            yaml_loader: YAML loader class to extend; a fresh `SafeLoader`
                subclass is created when omitted.
            auto_attach: Whether to attach constructors immediately.
        """
        self.base_path = Path(base_path)
        self.yaml_loader = yaml_loader or type('BlueprintYamlLoader', (SafeLoader,), {})

        if auto_attach:
            self.attach()

    def attach(self) -> None:
        """Attach the line-aware mapping and instruction constructors.

        Mutates the YAML loader class in-place.
        """
        add_constructor('tag:yaml.org,2002:map', mapping_constructor, Loader=self.yaml_loader)

        for name, constructor in INSTRUCTIONS.items():
            add_constructor(f'!{name}', constructor, Loader=self.yaml_loader)

    def discover(self, paths: 'Iterable[Path | str] | None' = None) -> list[Path]:
        """Find blueprint files.

        Directories are searched recursively; files are taken as is.
        Paths are resolved, so the result is sorted and free of
        duplicates even when a file is reached twice.

        Args:
            paths: Files or directories; the blueprints root when omitted.

        Returns:
            Blueprint file paths.
        """
        found: set[Path] = set()

        for item in (paths or [self.base_path]):
            path = Path(item)
            if path.is_dir():
                found.update(
                    file_.resolve()
                    for file_ in path.rglob('*')
                    if file_.is_file() and file_.suffix in YAML_SUFFIXES
                )
            elif path.is_file():
                found.add(path.resolve())
            else:
                raise LoadError(f'Blueprint path "{path}" does not exist')

        return sorted(found)

    def relative_path(self, path: Path) -> Path:
        """Path of a file relative to the blueprints root when possible."""
        try:
            return path.resolve().relative_to(self.base_path.resolve())
        except ValueError:
            return Path(path.name)

    def name_for(self, path: Path) -> str:
        """Unique blueprint name of a file."""
        return strip_suffix(self.relative_path(path).as_posix())

    def parse(self, content: str, path: Path) -> Blueprint:
        """Parse YAML text into an uncompiled blueprint.

        Args:
            content: YAML text.
            path: File the text was read from.

        Returns:
            Blueprint holding raw steps.

        Raises:
            LoadError: If YAML parsing fails or the structure is invalid.
        """
        relative_path = self.relative_path(path)

        try:
            data = load(content, Loader=self.yaml_loader)  # noqa: S506

        except MarkedYAMLError as base:
            raise LoadError.from_yaml_error(base, str(relative_path)) from base

        except ForgeError as error:
            error.with_context(filename=str(relative_path))
            raise

        except Exception as base:
            raise LoadError(
                'Unexpected error',
                context=ErrorContext(filename=str(relative_path), error=base),
            ) from base

        if data is None:
            data = []
        if isinstance(data, list):
            data = {'steps': data}

        try:
            document = BlueprintDocument.model_validate(data)

        except ValidationError as base:
            raise LoadError(
                f'Invalid blueprint structure: {base.errors()[0]['msg']}',
                context=ErrorContext(
                    filename=str(relative_path),
                    line_num=getattr(data, 'line_number', None),
                ),
            ) from base

        return Blueprint(
            name=strip_suffix(relative_path.as_posix()),
            file_path=path,
            relative_path=relative_path,
            tags=frozenset(document.tags),
            variables=document.variables,
            hooks=document.hooks,
            raw_steps=tuple(document.steps),
        )

    def load_file(self, path: Path | str) -> Blueprint:
        """Read and parse one blueprint file.

        Raises:
            LoadError: If the file can not be read or parsed.
        """
        path = Path(path)
        logger.debug('Loading blueprint file %s', path)

        try:
            content = path.read_text(encoding='utf-8')
        except OSError as base:
            raise LoadError(f'Can not read blueprint file "{path}"') from base

        return self.parse(content, path)

    def load(self, paths: 'Iterable[Path | str] | None' = None) -> dict[str, Blueprint]:
        """Load every blueprint reachable from the given paths.

        Args:
            paths: Files or directories; the blueprints root when omitted.

        Returns:
            Blueprint table keyed by blueprint name, in path order.

        Raises:
            LoadError: If a file can not be loaded or two files map to
                the same blueprint name.
        """
        blueprints: dict[str, Blueprint] = {}

        for path in self.discover(paths):
            blueprint = self.load_file(path)
            if blueprint.name in blueprints:
                raise LoadError(
                    f'Duplicate blueprint name "{blueprint.name}"',
                    context=ErrorContext(filename=str(blueprint.relative_path)),
                )
            blueprints[blueprint.name] = blueprint

        logger.debug('Loaded %d blueprint(s)', len(blueprints))

        return blueprints
