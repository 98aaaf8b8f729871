"""
Base Workflow Classes for the Login Management Engine.

This module provides the foundation for the CREATE, BLOCK, UNBLOCK and
RESET workflows: partner step execution, cancellable pacing and status
persistence with its single fallback write.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..audit.audit_logger import AuditLogger
from ..connectors import BasePartnerConnector, ConnectorResult
from ..exceptions import ItemValidationError, ProcessingInterrupted
from ..models import ManagementStatus, QueueItem, parse_supplemental
from ..store.base_store import BaseItemStore
from .helpers import LOG_MAX_LENGTH, ChangeLog, classify_error, has_text, truncate_log

logger = logging.getLogger(__name__)


class Pacer:
    """
    Cancellable fixed delay used to throttle partner API calls.

    Waiting on the cancel event means a shutdown request ends the wait
    immediately instead of after the full delay.
    """

    def __init__(self, delay_seconds: float = 0.5):
        self.delay_seconds = delay_seconds

    def wait(self, cancel_event: Optional[threading.Event] = None) -> None:
        """
        Sleep for the pacing delay.

        Raises:
            ProcessingInterrupted: if cancel_event is (or becomes) set
        """
        if cancel_event is None:
            cancel_event = threading.Event()
        if cancel_event.wait(self.delay_seconds):
            raise ProcessingInterrupted("Pacing wait cancelled")


class WorkflowStep:
    """Represents a single partner call in a workflow execution."""

    def __init__(self, operation: str, resource: str = "", parameters: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.resource = resource
        self.parameters = parameters or {}
        self.executed_at: Optional[datetime] = None
        self.success: bool = False
        self.error: Optional[str] = None

    def mark_success(self):
        """Mark step as successful."""
        self.executed_at = datetime.now(timezone.utc)
        self.success = True

    def mark_failure(self, error: str):
        """Mark step as failed."""
        self.executed_at = datetime.now(timezone.utc)
        self.success = False
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        """Convert step to dictionary for serialization."""
        return {
            "operation": self.operation,
            "resource": self.resource,
            "parameters": self.parameters,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "success": self.success,
            "error": self.error,
        }


class BaseWorkflow(ABC):
    """
    Abstract base class for login management workflows.

    A workflow instance handles exactly one queue item. execute() drives the
    item to a terminal status and reports whether it ended in SUCCESS.
    """

    def __init__(
        self,
        store: BaseItemStore,
        connector: BasePartnerConnector,
        pacer: Optional[Pacer] = None,
        audit_logger: Optional[AuditLogger] = None,
        cancel_event: Optional[threading.Event] = None,
        log_max_length: int = LOG_MAX_LENGTH,
    ):
        """
        Initialize the workflow.

        Args:
            store: Item store receiving status updates
            connector: Partner API connector
            pacer: Delay between dependent partner calls
            audit_logger: Optional audit trail for persisted transitions
            cancel_event: Shutdown signal; cuts pacing waits short
            log_max_length: Storage limit of the change log column
        """
        self.store = store
        self.connector = connector
        self.pacer = pacer or Pacer()
        self.audit_logger = audit_logger
        self.cancel_event = cancel_event
        self.log_max_length = log_max_length

        self.workflow_id = str(uuid.uuid4())
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self.steps: List[WorkflowStep] = []
        self.errors: List[str] = []

    @abstractmethod
    def execute(self, item: QueueItem) -> bool:
        """
        Run the workflow for one item.

        Args:
            item: The queue item to process

        Returns:
            True if the item ended in SUCCESS, False otherwise

        Raises:
            ItemValidationError: if the item lacks a required field
        """
        pass

    def run(self, item: QueueItem) -> bool:
        """Execute the workflow, turning validation failures into an ERROR transition."""
        self.started_at = datetime.now(timezone.utc)
        try:
            return self.execute(item)
        except ItemValidationError as e:
            logger.warning(f"Item {item.id}: {e.change_log}")
            self.errors.append(e.change_log)
            self.persist_status(item, ManagementStatus.ERROR, e.change_log)
            return False
        finally:
            self.completed_at = datetime.now(timezone.utc)

    def _execute_step(self, operation: str, resource: str, call: Callable[[], ConnectorResult]) -> ConnectorResult:
        """
        Run one partner call and record it as a step.

        Args:
            operation: Connector operation name
            resource: Identifier the call acts on
            call: Zero-argument callable performing the connector call

        Returns:
            ConnectorResult from the call
        """
        step = WorkflowStep(operation=operation, resource=resource)
        self.steps.append(step)

        result = call()
        if result.success:
            step.mark_success()
            logger.info(f"Step completed: {operation}({resource})")
        else:
            step.mark_failure(result.message or "Unknown error")
            self.errors.append(f"{operation}: {result.message}")
        return result

    def _pause(self) -> None:
        """Pacing wait between two dependent calls of the same item."""
        try:
            self.pacer.wait(self.cancel_event)
        except ProcessingInterrupted:
            logger.info("Shutdown requested; finishing the current item before stopping")

    def _require_user_code(self, item: QueueItem) -> str:
        if not has_text(item.user_code):
            raise ItemValidationError(item.id, ChangeLog.EMPTY_USER_CODE)
        return item.user_code.strip()

    def _require_external_key(self, item: QueueItem) -> str:
        if not has_text(item.external_key):
            raise ItemValidationError(item.id, ChangeLog.EMPTY_EXTERNAL_KEY)
        return item.external_key.strip()

    def fail_with(self, item: QueueItem, result: ConnectorResult, prefix: Optional[str] = None) -> bool:
        """Persist an ERROR transition carrying the classified failure."""
        code = classify_error(result.message, self.log_max_length)
        change_log = f"{prefix}: {code}" if prefix else code
        logger.error(f"Item {item.id} failed: {result.message}")
        self.persist_status(item, ManagementStatus.ERROR, change_log)
        return False

    def persist_status(
        self,
        item: QueueItem,
        status: ManagementStatus,
        change_log: str,
        supplemental_data: Optional[str] = None,
        external_key: Optional[str] = None,
    ) -> bool:
        """
        Write a transition, retrying once with a minimal log on failure.

        Never raises: a write that fails twice is logged at CRITICAL level.

        Args:
            item: Item being transitioned
            status: New status
            change_log: Trace of the transition (truncated here)
            supplemental_data: Serialized supplemental data to store, if any
            external_key: Newly learned partner user id, if any

        Returns:
            True if one of the two writes succeeded
        """
        truncated = truncate_log(change_log, self.log_max_length)
        try:
            self._write_status(item.id, status, truncated, supplemental_data, external_key)
            logger.debug(f"Item {item.id} set to {status.value}: {truncated}")
        except Exception as e:
            logger.error(f"Failed to update status of item {item.id}: {e}")
            try:
                self._write_status(item.id, status, ChangeLog.MINIMAL, supplemental_data, external_key)
                logger.info(f"Status of item {item.id} saved with minimal log")
            except Exception as e:
                logger.critical(f"Critical failure updating item {item.id}: {e}", exc_info=True)
                return False
            truncated = ChangeLog.MINIMAL

        self._audit(item, status, truncated, supplemental_data, external_key)
        return True

    def _write_status(
        self,
        item_id: int,
        status: ManagementStatus,
        change_log: str,
        supplemental_data: Optional[str],
        external_key: Optional[str],
    ) -> None:
        timestamp = datetime.now(timezone.utc)
        if has_text(external_key):
            self.store.update_status_with_data_and_key(
                item_id, status, timestamp, change_log, supplemental_data, external_key
            )
        elif has_text(supplemental_data):
            self.store.update_status_with_data(item_id, status, timestamp, change_log, supplemental_data)
        else:
            self.store.update_status(item_id, status, timestamp, change_log)

    def _audit(
        self,
        item: QueueItem,
        status: ManagementStatus,
        change_log: str,
        supplemental_data: Optional[str],
        external_key: Optional[str],
    ) -> None:
        if self.audit_logger is None:
            return
        try:
            self.audit_logger.record_transition(
                item_id=item.id,
                management_type=item.management_type,
                status=status,
                change_log=change_log,
                external_key=external_key or item.external_key,
                metadata={
                    "workflow_id": self.workflow_id,
                    "workflow": self.__class__.__name__,
                    "steps": [step.to_dict() for step in self.steps],
                    **parse_supplemental(supplemental_data),
                },
            )
        except Exception as e:
            logger.error(f"Failed to audit transition of item {item.id}: {e}", exc_info=True)

    def get_execution_summary(self) -> Dict[str, Any]:
        """Get summary of workflow execution."""
        successful_steps = len([s for s in self.steps if s.success])
        total_steps = len(self.steps)

        return {
            "workflow_id": self.workflow_id,
            "workflow_type": self.__class__.__name__,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_steps": total_steps,
            "successful_steps": successful_steps,
            "failed_steps": total_steps - successful_steps,
            "errors": self.errors.copy(),
        }


class UnsupportedWorkflow(BaseWorkflow):
    """Fallback for items whose management type is not recognized."""

    def execute(self, item: QueueItem) -> bool:
        logger.warning(f"Item {item.id}: unknown management type, marking as error")
        self.persist_status(item, ManagementStatus.ERROR, ChangeLog.UNKNOWN_TYPE)
        return False
