"""
Workflows Package for the Login Management Engine.

This package provides the per-type workflows that drive a queued item
to its terminal status.
"""

from typing import Dict, Type

from ..models import ManagementType
from .base_workflow import BaseWorkflow, Pacer, UnsupportedWorkflow, WorkflowStep
from .block import BlockWorkflow, UnblockWorkflow
from .create import CreateWorkflow
from .helpers import ChangeLog, classify_error, merge_supplemental, truncate_log
from .reset import ResetWorkflow

WORKFLOWS: Dict[ManagementType, Type[BaseWorkflow]] = {
    ManagementType.CREATE: CreateWorkflow,
    ManagementType.BLOCK: BlockWorkflow,
    ManagementType.UNBLOCK: UnblockWorkflow,
    ManagementType.RESET: ResetWorkflow,
}

__all__ = [
    "BaseWorkflow",
    "WorkflowStep",
    "Pacer",
    "CreateWorkflow",
    "BlockWorkflow",
    "UnblockWorkflow",
    "ResetWorkflow",
    "UnsupportedWorkflow",
    "WORKFLOWS",
    "ChangeLog",
    "classify_error",
    "merge_supplemental",
    "truncate_log",
]
