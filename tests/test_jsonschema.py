"""Tests for the blueprint JSON Schema."""

import json
from collections.abc import Callable

import pydantic
import pytest

from pytest_forge.jsonschema import BlueprintFile, SchemaGenerator
from pytest_forge.models import SchemaModel


def test_make_schema() -> None:
    """The schema describes authored blueprint files."""
    schema = json.loads(SchemaGenerator.make_schema())

    assert schema['title'] == 'pytest-forge'
    assert schema['$schema'] == SchemaGenerator.schema_dialect

    step = schema['$defs']['StepDocument']['properties']

    assert {'include', 'hooks', 'call', 'request', 'debug', 'expect', 'store', 'steps'} <= set(step)
    assert 'kind' not in schema['$defs']['RequestDocument']['properties']
    assert 'kind' not in schema['$defs']['ExpectDocument']['properties']


def test_callable_schema() -> None:
    """Runtime values are unconstrained."""
    class Model(SchemaModel):
        value: Callable[[], int]

    schema = Model.model_json_schema(schema_generator=SchemaGenerator)

    assert schema['properties']['value']['description'] == 'Runtime value'


@pytest.mark.parametrize('document', (
    pytest.param([{'store': {'a': 1}}], id='list'),
    pytest.param({'tags': 'smoke', 'steps': [{'include': ['auth', 'seed']}]}, id='mapping'),
    pytest.param({
        'hooks': {'before': 'seed', 'after': [{'name': 'cleanup', 'args': [1]}]},
        'steps': [{
            'hooks': {'after_step': 'record'},
            'request': {'url': '/users', 'method': 'post', 'json': {'name': 'Ann'}},
            'expect': [{'status': 201}, {'json': {'shape': {'id': 'integer'}}}],
        }],
    }, id='hooks and payloads'),
))
def test_valid_documents(document: object) -> None:
    """Authored blueprints validate against the document models."""
    BlueprintFile.model_validate(document)


@pytest.mark.parametrize('document', (
    pytest.param([{'hooks': {'before_forge': 'seed'}}], id='forge hook from step'),
    pytest.param([{'requests': {'url': '/'}}], id='unknown payload'),
    pytest.param({'steps': [], 'title': 'x'}, id='unknown blueprint key'),
))
def test_invalid_documents(document: object) -> None:
    """Typos and unsupported hooks are rejected."""
    with pytest.raises(pydantic.ValidationError):
        BlueprintFile.model_validate(document)
