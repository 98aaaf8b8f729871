"""
Reset Workflow for the Login Management Engine.

Resets a partner user's password by blocking and then unblocking it.
Unlike the activation step of CREATE, both calls must succeed.
"""

import logging

from ..models import ManagementStatus, QueueItem
from .base_workflow import BaseWorkflow
from .helpers import PASSWORD_NOT_RETURNED, ChangeLog, merge_supplemental

logger = logging.getLogger(__name__)


class ResetWorkflow(BaseWorkflow):
    """Workflow for RESET items."""

    def execute(self, item: QueueItem) -> bool:
        """
        Execute the reset workflow.

        Args:
            item: RESET queue item

        Returns:
            True if both the block and the unblock succeeded
        """
        external_key = self._require_external_key(item)

        blocked = self._execute_step("block_user", external_key, lambda: self.connector.block_user(external_key))
        if not blocked.success:
            return self.fail_with(item, blocked, prefix=ChangeLog.BLOCK_FAILED)

        self._pause()

        unblocked = self._execute_step(
            "unblock_user", external_key, lambda: self.connector.unblock_user(external_key)
        )
        if not unblocked.success:
            return self.fail_with(item, unblocked, prefix=ChangeLog.UNBLOCK_FAILED)

        new_password = unblocked.data or PASSWORD_NOT_RETURNED
        self.persist_status(
            item, ManagementStatus.SUCCESS, ChangeLog.RESET,
            supplemental_data=merge_supplemental(item.supplemental_data, newPassword=new_password),
        )
        logger.info(f"Item {item.id}: password of user {external_key} reset")
        return True
