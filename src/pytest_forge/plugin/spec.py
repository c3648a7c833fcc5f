"""Pytest collector for blueprint files.

Each collected file is compiled together with every blueprint under
the blueprints root (so includes resolve), filtered by the configured
tags and turned into a single `BlueprintItem`.
"""

from typing import TYPE_CHECKING

import pytest

from pytest_forge.core import Compiler

from .case import BlueprintItem

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from pytest_forge.schema import Blueprint


class BlueprintFile(pytest.File):
    """Pytest file collector for blueprint files.

    Blueprints whose steps are all filtered out produce no item.
    """

    __test__ = False

    def load_table(self) -> dict[str, 'Blueprint']:
        """Load the blueprints root plus this file.

        The root table is loaded once per session and cached on the
        pytest configuration.

        Returns:
            Uncompiled blueprints keyed by name.

        Raises:
            LoadError: If a blueprint file can not be loaded.
        """
        loader = self.config.forge_loader  # type: ignore[attr-defined]

        table = getattr(self.config, 'forge_table', None)
        if table is None:
            table = loader.load() if loader.base_path.is_dir() else {}
            self.config.forge_table = table  # type: ignore[attr-defined]

        name = loader.name_for(self.path)
        if name not in table:
            table = {**table, name: loader.load_file(self.path)}

        return table

    def collect(self) -> 'Iterable[BlueprintItem]':
        """Collect the pytest item of a blueprint file.

        Returns:
            Iterable with zero or one `BlueprintItem`.

        Raises:
            LoadError: If the blueprint can not be loaded.
            CompileError: If the blueprint fails to compile.
        """
        loader = self.config.forge_loader  # type: ignore[attr-defined]
        table = self.load_table()

        compiled = Compiler(table).compile(loader.name_for(self.path))

        for blueprint in self.config.forge_filter.apply([compiled]):  # type: ignore[attr-defined]
            yield BlueprintItem.from_parent(
                self,
                name=blueprint.name,
                blueprint=blueprint,
            )
