"""Declarative HTTP API testing with composable YAML blueprints.

The `pytest_forge` package compiles blueprint files into flat, ordered,
tag-annotated step lists and runs them against a live endpoint.

Key features:
- blueprint includes with provenance, shared request attributes and
  tag selection;
- scoped run state (global variables, metadata, store, variables);
- path-precise schema, shape, content and header validation;
- lifecycle hooks and named callbacks, extensible through entry points;
- a command-line runner and a pytest collection plugin.
"""
