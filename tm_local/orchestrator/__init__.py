"""Orchestrator for tm-local.

This module provides the lifecycle orchestration of components in a broker
context, including the deletion cascade and per-component results.
"""

from .cascade import DeletionCascade, Finalizer
from .orchestrator import Orchestrator
from .state import ContextState
from .status import Action, ComponentResult, ComponentStatus

__all__ = [
    "Orchestrator",
    "ContextState",
    "DeletionCascade",
    "Finalizer",
    "Action",
    "ComponentResult",
    "ComponentStatus",
]
