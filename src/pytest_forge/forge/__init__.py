"""Execution of compiled blueprints.

The `Forge` runs blueprints sequentially against a transport, fires
lifecycle hooks through the callback registry and collects per-step
and per-blueprint results.
"""

from .runner import (
    BlueprintResult,
    BlueprintState,
    Forge,
    ForgeResult,
    StepResult,
    StepStatus,
)

__all__ = (
    'BlueprintResult',
    'BlueprintState',
    'Forge',
    'ForgeResult',
    'StepResult',
    'StepStatus',
)
