"""Test suite for the pytest-forge package.

This package contains unit and integration tests validating blueprint
loading and compilation, context resolution, response validation,
callbacks, execution semantics and the pytest and command-line
integrations.
"""
