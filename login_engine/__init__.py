"""
Login Management Engine

Reconciles a persisted queue of partner login requests (create, block,
unblock and password reset) against the partner identity API.

Pending items are drained one at a time; every outcome is written back to
the item store so the front-end can show it.
"""

__version__ = "1.0.0"
__author__ = "Login Engine Team"
__email__ = "team@example.com"

from .auth.token_cache import TokenCache
from .config import Settings
from .engine.orchestrator import LoginManagementOrchestrator
from .workflows.block import BlockWorkflow, UnblockWorkflow
from .workflows.create import CreateWorkflow
from .workflows.reset import ResetWorkflow

__all__ = [
    "Settings",
    "TokenCache",
    "LoginManagementOrchestrator",
    "CreateWorkflow",
    "BlockWorkflow",
    "UnblockWorkflow",
    "ResetWorkflow",
]
