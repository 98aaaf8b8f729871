"""
Block and Unblock Workflows for the Login Management Engine.

Single partner call each, keyed by the item's external key.
"""

import logging

from ..models import ManagementStatus, QueueItem
from .base_workflow import BaseWorkflow
from .helpers import ChangeLog, merge_supplemental

logger = logging.getLogger(__name__)


class BlockWorkflow(BaseWorkflow):
    """Workflow for BLOCK items."""

    def execute(self, item: QueueItem) -> bool:
        external_key = self._require_external_key(item)

        result = self._execute_step("block_user", external_key, lambda: self.connector.block_user(external_key))
        if not result.success:
            return self.fail_with(item, result)

        self.persist_status(item, ManagementStatus.SUCCESS, ChangeLog.BLOCKED)
        logger.info(f"Item {item.id}: user {external_key} blocked")
        return True


class UnblockWorkflow(BaseWorkflow):
    """Workflow for UNBLOCK items. A generated password is kept as newPassword."""

    def execute(self, item: QueueItem) -> bool:
        external_key = self._require_external_key(item)

        result = self._execute_step(
            "unblock_user", external_key, lambda: self.connector.unblock_user(external_key)
        )
        if not result.success:
            return self.fail_with(item, result)

        if result.data:
            logger.info(f"Item {item.id}: user {external_key} unblocked, new password generated")
            self.persist_status(
                item, ManagementStatus.SUCCESS, ChangeLog.UNBLOCKED,
                supplemental_data=merge_supplemental(item.supplemental_data, newPassword=result.data),
            )
        else:
            logger.info(f"Item {item.id}: user {external_key} unblocked")
            self.persist_status(item, ManagementStatus.SUCCESS, ChangeLog.UNBLOCKED)
        return True
