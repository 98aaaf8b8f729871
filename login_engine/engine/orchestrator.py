"""
Login Management Orchestrator.

Drains the pending queue: every QUEUED or ERROR item is dispatched to the
workflow for its management type, one at a time, with a cancellable pacing
wait between items. Only one drain runs at a time.
"""

import logging
import threading
from typing import Any, Dict, Optional

from ..audit.audit_logger import AuditLogger
from ..connectors import BasePartnerConnector
from ..exceptions import ProcessingInterrupted
from ..models import BatchResult, ManagementStatus, QueueItem, utc_now
from ..store.base_store import BaseItemStore
from ..workflows import WORKFLOWS, BaseWorkflow, ChangeLog, Pacer, UnsupportedWorkflow
from ..workflows.helpers import LOG_MAX_LENGTH, describe_item

logger = logging.getLogger(__name__)


class LoginManagementOrchestrator:
    """
    Processes pending login management items against the partner API.

    Results are written back to the item store by the workflows; the
    orchestrator only reports counts to whoever triggered the drain.
    """

    def __init__(
        self,
        store: BaseItemStore,
        connector: BasePartnerConnector,
        pacer: Optional[Pacer] = None,
        audit_logger: Optional[AuditLogger] = None,
        log_max_length: int = LOG_MAX_LENGTH,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Item store holding the queue
            connector: Partner API connector
            pacer: Delay applied between items and between dependent calls
            audit_logger: Optional audit trail for persisted transitions
            log_max_length: Storage limit of the change log column
        """
        self.store = store
        self.connector = connector
        self.pacer = pacer or Pacer()
        self.audit_logger = audit_logger
        self.log_max_length = log_max_length

        self._run_lock = threading.Lock()
        self.last_result: Optional[BatchResult] = None
        self.total_runs = 0

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run(self, cancel_event: Optional[threading.Event] = None) -> BatchResult:
        """
        Drain the pending queue once.

        Args:
            cancel_event: Shutdown signal; stops the drain between items

        Returns:
            BatchResult with the counts of this drain, or a skipped result
            when another drain is already in progress
        """
        if not self._run_lock.acquire(blocking=False):
            logger.info("Processing already in progress, skipping this run")
            return BatchResult(skipped=True, completed_at=utc_now())

        try:
            return self._drain(cancel_event or threading.Event())
        finally:
            self._run_lock.release()

    def _drain(self, cancel_event: threading.Event) -> BatchResult:
        result = BatchResult()

        items = self.store.find_pending()
        result.total_items = len(items)
        if not items:
            logger.debug("No pending items to process")
            result.completed_at = utc_now()
            self._record(result)
            return result

        logger.info(f"Processing {len(items)} pending login management items")

        for item in items:
            if self.process_item(item, cancel_event):
                result.success_count += 1
            else:
                result.error_count += 1
                result.failed_item_ids.append(item.id)
            result.processed += 1
            if result.processed == result.total_items:
                break

            try:
                self.pacer.wait(cancel_event)
            except ProcessingInterrupted:
                logger.warning(
                    f"Processing interrupted after {result.processed} of {result.total_items} items"
                )
                result.interrupted = True
                break

        result.completed_at = utc_now()
        logger.info(
            f"Processing finished: {result.success_count} success, {result.error_count} errors "
            f"({result.processed}/{result.total_items} items)"
        )
        self._record(result)
        return result

    def process_item(self, item: QueueItem, cancel_event: Optional[threading.Event] = None) -> bool:
        """
        Drive one item to a terminal status.

        Never raises: an unexpected failure is recorded on the item as an
        ERROR transition.

        Args:
            item: Pending queue item
            cancel_event: Shutdown signal; cuts pacing waits inside the item short

        Returns:
            True if the item ended in SUCCESS
        """
        logger.debug(f"Processing item {describe_item(item)}")
        workflow = self._build_workflow(item, cancel_event)

        try:
            success = workflow.run(item)
        except Exception as e:
            logger.error(f"Unexpected error processing item {item.id}: {e}", exc_info=True)
            workflow.persist_status(item, ManagementStatus.ERROR, ChangeLog.UNEXPECTED_ERROR)
            return False

        summary = workflow.get_execution_summary()
        logger.info(
            f"Item {item.id} ({item.management_type.value}) finished: success={success}, "
            f"steps={summary['successful_steps']}/{summary['total_steps']}"
        )
        return success

    def _build_workflow(self, item: QueueItem, cancel_event: Optional[threading.Event]) -> BaseWorkflow:
        workflow_class = WORKFLOWS.get(item.management_type, UnsupportedWorkflow)
        return workflow_class(
            store=self.store,
            connector=self.connector,
            pacer=self.pacer,
            audit_logger=self.audit_logger,
            cancel_event=cancel_event,
            log_max_length=self.log_max_length,
        )

    def _record(self, result: BatchResult) -> None:
        self.last_result = result
        self.total_runs += 1

    def get_pending_count(self) -> int:
        """Number of items a drain would currently pick up."""
        return self.store.count_pending()

    def get_stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics."""
        last = self.last_result
        return {
            "running": self.is_running,
            "total_runs": self.total_runs,
            "last_run": last.model_dump(mode="json") if last else None,
        }
