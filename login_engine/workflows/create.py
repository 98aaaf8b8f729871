"""
Create Workflow for the Login Management Engine.

Creates the partner user for a queued item, links it to a partner group
(existing, newly created, or none), then activates it with a
block/unblock cycle that yields the user's first password.
"""

import logging
from typing import Optional, Tuple

from pydantic import ValidationError

from ..models import Group, ManagementStatus, QueueItem, SupplementalInput
from .base_workflow import BaseWorkflow
from .helpers import ChangeLog, GroupWarning, merge_supplemental

logger = logging.getLogger(__name__)


class CreateWorkflow(BaseWorkflow):
    """
    Workflow for CREATE items.

    The user creation is the only load-bearing step. Group linkage and
    activation are best effort: their failures are recorded as warnings or
    logged, and the item still ends in SUCCESS with its external key.
    """

    def execute(self, item: QueueItem) -> bool:
        """
        Execute the create workflow.

        Args:
            item: CREATE queue item

        Returns:
            True if the partner user was created
        """
        user_code = self._require_user_code(item)
        inputs = self._parse_inputs(item)

        if inputs.group_uuid:
            logger.info(f"Item {item.id}: create user and link to group {inputs.group_uuid}")
        elif inputs.group_name:
            logger.info(f"Item {item.id}: create user and new group {inputs.group_name}")
        else:
            logger.info(f"Item {item.id}: create user without group")

        result = self._execute_step("create_user", user_code, lambda: self.connector.create_user(user_code))
        if not result.success:
            return self.fail_with(item, result)

        user_uuid = result.data
        logger.info(f"Item {item.id}: partner user created with uuid {user_uuid}")

        if inputs.group_uuid:
            change_log, group_uuid, group_name, warning = self._link_existing_group(
                item, user_uuid, inputs.group_uuid, inputs.group_name
            )
        elif inputs.group_name:
            change_log, group_uuid, group_name, warning = self._create_and_link_group(
                item, user_uuid, user_code, inputs.group_name
            )
        else:
            change_log, group_uuid, group_name, warning = ChangeLog.CREATED, None, None, None

        supplemental_data = merge_supplemental(
            item.supplemental_data,
            userUuid=user_uuid,
            groupUuid=group_uuid,
            groupNome=group_name,
            warning=warning,
        )
        self.persist_status(
            item, ManagementStatus.SUCCESS, change_log,
            supplemental_data=supplemental_data, external_key=user_uuid,
        )

        try:
            self._activate(item, user_uuid, change_log, supplemental_data)
        except Exception as e:
            logger.error(f"Item {item.id}: activation failed, user {user_uuid} kept as created: {e}", exc_info=True)
            self.errors.append(f"activation: {e}")
        return True

    def _parse_inputs(self, item: QueueItem) -> SupplementalInput:
        """Read group inputs; unparseable data means no group."""
        try:
            return SupplementalInput.model_validate(item.supplemental_dict())
        except ValidationError as e:
            logger.warning(f"Item {item.id}: invalid supplemental data, creating user without group: {e}")
            return SupplementalInput()

    def _link_existing_group(
        self, item: QueueItem, user_uuid: str, group_uuid: str, group_name: Optional[str]
    ) -> Tuple[str, Optional[str], Optional[str], Optional[str]]:
        """Link the new user to an existing group."""
        result = self._execute_step(
            "add_user_to_group", group_uuid, lambda: self.connector.add_user_to_group(group_uuid, user_uuid)
        )
        if not result.success:
            logger.warning(f"Item {item.id}: user created but linking to group failed: {result.message}")
            return ChangeLog.CREATED_WITHOUT_GROUP, None, None, GroupWarning.LINK_FAILED

        logger.info(f"Item {item.id}: user linked to group {group_uuid}")
        return ChangeLog.CREATED_WITH_GROUP, group_uuid, group_name, None

    def _create_and_link_group(
        self, item: QueueItem, user_uuid: str, user_code: str, group_name: str
    ) -> Tuple[str, Optional[str], Optional[str], Optional[str]]:
        """Create a partner group named group_name, mirror it locally, link the user."""
        result = self._execute_step(
            "create_group", group_name, lambda: self.connector.create_group(group_name, user_code)
        )
        if not result.success:
            logger.warning(f"Item {item.id}: user created but group creation failed: {result.message}")
            return ChangeLog.CREATED_WITHOUT_GROUP, None, None, GroupWarning.GROUP_CREATE_FAILED

        group_uuid = result.data
        logger.info(f"Item {item.id}: group created with uuid {group_uuid}")

        try:
            saved = self.store.save_group(Group(uuid=group_uuid, name=group_name, originating_key=user_code))
            logger.info(f"Item {item.id}: group saved with id {saved.id}")
        except Exception as e:
            logger.error(f"Item {item.id}: failed to save group {group_uuid}: {e}")

        link = self._execute_step(
            "add_user_to_group", group_uuid, lambda: self.connector.add_user_to_group(group_uuid, user_uuid)
        )
        if not link.success:
            logger.warning(f"Item {item.id}: group created but linking the user failed: {link.message}")
            return ChangeLog.CREATED_WITHOUT_LINK, group_uuid, group_name, GroupWarning.GROUP_NOT_LINKED

        logger.info(f"Item {item.id}: user linked to new group")
        return ChangeLog.CREATED_WITH_NEW_GROUP, group_uuid, group_name, None

    def _activate(self, item: QueueItem, user_uuid: str, change_log: str, supplemental_data: str) -> None:
        """
        Block then unblock the new user.

        Failures are only logged; the item stays in SUCCESS. A password
        returned by the unblock is added to the supplemental data.
        """
        blocked = self._execute_step("block_user", user_uuid, lambda: self.connector.block_user(user_uuid))
        if not blocked.success:
            logger.warning(f"Item {item.id}: activation block failed: {blocked.message}")
            return

        self._pause()

        unblocked = self._execute_step("unblock_user", user_uuid, lambda: self.connector.unblock_user(user_uuid))
        if not unblocked.success:
            logger.warning(f"Item {item.id}: activation unblock failed: {unblocked.message}")
            return

        if not unblocked.data:
            logger.info(f"Item {item.id}: user activated, no password returned")
            return

        logger.info(f"Item {item.id}: user activated, new password stored")
        self.persist_status(
            item, ManagementStatus.SUCCESS, change_log,
            supplemental_data=merge_supplemental(supplemental_data, newPassword=unblocked.data),
            external_key=user_uuid,
        )
