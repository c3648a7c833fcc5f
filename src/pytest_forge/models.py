"""Base Pydantic models for blueprint elements and runtime settings.

This module defines the foundational model classes used by all blueprint
structures. It enforces immutability and strict schema validation to
guarantee that compiled steps are deterministic, explicit, and safe to
execute.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Base immutable model for all blueprint elements.

    Design principles enforced by this model:
        - Immutability: compiled elements cannot be modified after creation.
          Transformations produce copies via `model_copy`.
        - Strict schema validation: unknown or extra fields are rejected
          to avoid silent errors caused by typos in blueprint files.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
        populate_by_name=True,
    )


class DescribedMixin(SchemaModel):
    """Mixin providing element self-documentation.

    The fields defined in this model do not affect execution semantics
    and are used purely for reporting.
    """

    name: str | None = Field(
        default=None,
        title='Name',
        description='Short human-readable name of the element.',
    )

    description: str | None = Field(
        default=None,
        title='Description',
        description='Detailed human-readable description of the element.',
    )


class SettingsModel(BaseSettings):
    """Base immutable model for runtime settings.

    Design principles enforced by this model:
        - Immutability: resolved settings cannot be modified after creation.
        - Tolerant schema handling: unknown or extra fields are ignored so
          unrelated environment variables never break configuration.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )


class ForgeSettings(SettingsModel):
    """Runtime configuration resolved from `FORGE_*` environment variables.

    Command-line and pytest options override these values through
    `model_copy(update=...)`.
    """

    model_config = SettingsConfigDict(
        env_prefix='FORGE_',
        frozen=True,
        extra='ignore',
    )

    base_url: str = Field(
        default='',
        title='Base URL',
        description='Prefix joined with relative request URLs.',
    )

    headers: dict[str, str] = Field(
        default_factory=dict,
        title='Default headers',
        description='Headers sent with every request unless a step overrides them.',
    )

    timeout: float = Field(
        default=30.0,
        gt=0,
        title='Request timeout',
        description='Timeout in seconds for a single HTTP request.',
    )

    blueprints_path: Path = Field(
        default=Path('forge/blueprints'),
        title='Blueprints directory',
        description='Root directory that blueprint names are derived from.',
    )

    fail_fast: bool = Field(
        default=False,
        title='Stop on first failure',
        description='Stop the run after the first blueprint that fails.',
    )

    strict: bool = Field(
        default=True,
        title='Strict plugin loading',
        description='Raise instead of warning when a callback plugin cannot be loaded.',
    )

    global_variables: dict[str, object] = Field(
        default_factory=dict,
        title='Global variables',
        description='Initial values of the run-wide global variables.',
    )
