"""
Processing Engine Package.

This package provides the queue orchestrator, its periodic scheduler and
the wiring that builds them from configuration.
"""

from .components import EngineComponents, build_components
from .orchestrator import LoginManagementOrchestrator
from .scheduler import Scheduler

__all__ = [
    "LoginManagementOrchestrator",
    "Scheduler",
    "EngineComponents",
    "build_components",
]
