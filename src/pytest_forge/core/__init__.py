"""Blueprint loading, compilation and selection.

This package turns blueprint files into executable step lists:

- `BlueprintLoader` reads YAML files with line-aware mappings and the
  built-in instructions attached;
- `Compiler` expands includes, propagates tags and flattens step trees;
- `Filter` selects blueprints and steps by path and tags.
"""

from .compiler import Compiler, compile_blueprints
from .filter import Filter, select_blueprints
from .loader import BlueprintLoader

__all__ = (
    'BlueprintLoader',
    'Compiler',
    'Filter',
    'compile_blueprints',
    'select_blueprints',
)
