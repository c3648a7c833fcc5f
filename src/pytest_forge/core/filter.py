"""Selection of compiled blueprints and steps to run.

Filtering happens after compilation, so every step already carries its
own and inherited tags. Order is always preserved.
"""

from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from .compiler import compile_blueprints
from .loader import strip_suffix

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from pytest_forge.schema import Blueprint, Step

    from .loader import BlueprintLoader

logger = getLogger(__name__)


class Filter:
    """Path and tag filter over compiled blueprints.

    Attributes:
        path: Blueprint name prefix, `None` keeps every blueprint.
        tags: Steps must carry at least one of these tags (when given).
        skip_tags: Steps carrying any of these tags are dropped. Applied
            after `tags`, so a step matching both is dropped.
    """

    def __init__(self, path: Path | str | None = None,
                 tags: 'Iterable[str] | None' = None,
                 skip_tags: 'Iterable[str] | None' = None,
                 base_path: Path | str | None = None) -> None:
        """Initialize a filter.

        Args:
            path: Blueprint path or name prefix.
            tags: Include tags.
            skip_tags: Exclude tags.
            base_path: Blueprints root used to make `path` relative.
        """
        self.path = self.normalize_path(path, base_path)
        self.tags = frozenset(tags or ())
        self.skip_tags = frozenset(skip_tags or ())

    @staticmethod
    def normalize_path(path: Path | str | None, base_path: Path | str | None = None) -> str | None:
        """Turn a path filter into a blueprint name prefix.

        The YAML extension is stripped and, when possible, the path is
        made relative to the blueprints root.
        """
        if path is None or not str(path).strip():
            return None

        candidate = Path(path)
        if base_path is not None:
            try:
                candidate = candidate.resolve().relative_to(Path(base_path).resolve())
            except ValueError:
                pass

        return strip_suffix(candidate.as_posix())

    def accepts_blueprint(self, blueprint: 'Blueprint') -> bool:
        """Check the blueprint name against the path prefix."""
        if self.path is None or self.path == '.':
            return True

        return blueprint.name.startswith(self.path)

    def accepts_step(self, step: 'Step') -> bool:
        """Check step tags against the include and exclude sets."""
        if self.tags and not step.tags & self.tags:
            return False

        return not (self.skip_tags and step.tags & self.skip_tags)

    def apply(self, blueprints: 'Mapping[str, Blueprint] | Iterable[Blueprint]') -> list['Blueprint']:
        """Reduce blueprints to exactly the steps that should run.

        Blueprints left without steps are removed.

        Args:
            blueprints: Compiled blueprints, as a table or sequence.

        Returns:
            Filtered blueprints in their original order.
        """
        items = blueprints.values() if isinstance(blueprints, dict) else blueprints
        result: list[Blueprint] = []

        for blueprint in items:
            if not self.accepts_blueprint(blueprint):
                continue

            steps = tuple(step for step in blueprint.steps if self.accepts_step(step))
            if not steps:
                logger.debug('Blueprint %s has no selected steps', blueprint.name)
                continue

            result.append(blueprint.model_copy(update={'steps': steps}))

        return result


def select_blueprints(loader: 'BlueprintLoader',
                      paths: 'Iterable[Path | str] | None' = None, *,
                      path: Path | str | None = None,
                      tags: 'Iterable[str] | None' = None,
                      skip_tags: 'Iterable[str] | None' = None) -> list['Blueprint']:
    """Load, compile and filter blueprints in one go.

    Every blueprint reachable from `paths` is compiled, so includes can
    name blueprints that the path filter later drops.

    Raises:
        LoadError: If a blueprint file can not be loaded.
        CompileError: If a blueprint fails to compile.
    """
    blueprints = compile_blueprints(loader.load(paths))

    return Filter(path, tags, skip_tags, base_path=loader.base_path).apply(blueprints)
