"""Declarative blueprint schema.

Defines immutable Pydantic models describing blueprints, their steps
and the closed union of step actions. The models are produced by the
loader and compiler and consumed by the runner and tooling.
"""

from .actions import (
    Action,
    CallAction,
    CallbackReference,
    DebugAction,
    ExpectAction,
    HookBinding,
    HooksAction,
    IncludeAction,
    JsonExpectation,
    NoticeAction,
    RequestAction,
    StoreAction,
)
from .steps import Blueprint, BlueprintHooks, HookCall, RawStep, SharedAttributes, Source, Step

__all__ = (
    'Action',
    'Blueprint',
    'BlueprintHooks',
    'CallAction',
    'CallbackReference',
    'DebugAction',
    'ExpectAction',
    'HookBinding',
    'HookCall',
    'HooksAction',
    'IncludeAction',
    'JsonExpectation',
    'NoticeAction',
    'RawStep',
    'RequestAction',
    'SharedAttributes',
    'Source',
    'Step',
    'StoreAction',
)
