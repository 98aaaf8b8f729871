"""
Tests for the login management workflows.

Covers the CREATE branches and activation, BLOCK, UNBLOCK and RESET,
required-field validation and status persistence with its fallback write.
"""

import json
import threading
from unittest.mock import Mock

import pytest

from login_engine.connectors import ConnectorResult
from login_engine.exceptions import PersistenceError
from login_engine.models import ManagementStatus, ManagementType, QueueItem
from login_engine.workflows import (
    BlockWorkflow,
    CreateWorkflow,
    ResetWorkflow,
    UnblockWorkflow,
)


def call_names(connector):
    return [c[0] for c in connector.method_calls]


def supplemental(item):
    return json.loads(item.supplemental_data)


class TestBlockWorkflow:
    """Test cases for BlockWorkflow."""

    def test_block_success(self, store, connector, pacer, add_item):
        """BLOCK of a known key ends in SUCCESS with the block log."""
        item = add_item(ManagementType.BLOCK, external_key="abc")

        assert BlockWorkflow(store, connector, pacer).run(item) is True

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.SUCCESS
        assert saved.last_change_log == "Bloqueio OK"
        assert saved.changed_at is not None
        connector.block_user.assert_called_once_with("abc")

    def test_block_failure_is_classified(self, store, connector, pacer, add_item):
        connector.block_user.return_value = ConnectorResult(False, "API call failed: 404 Not Found: {}")
        item = add_item(ManagementType.BLOCK, external_key="abc")

        assert BlockWorkflow(store, connector, pacer).run(item) is False

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.ERROR
        assert saved.last_change_log == "not found"

    @pytest.mark.parametrize("key", [None, "", "   "])
    def test_block_requires_external_key(self, store, connector, pacer, add_item, key):
        """Blank external key fails without any partner call."""
        item = add_item(ManagementType.BLOCK, external_key=key)

        assert BlockWorkflow(store, connector, pacer).run(item) is False

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.ERROR
        assert saved.last_change_log == "empty external key"
        assert connector.method_calls == []


class TestUnblockWorkflow:
    """Test cases for UnblockWorkflow."""

    def test_unblock_stores_new_password(self, store, connector, pacer, add_item):
        connector.unblock_user.return_value = ConnectorResult(True, "User unblocked", "X1")
        item = add_item(ManagementType.UNBLOCK, external_key="abc")

        assert UnblockWorkflow(store, connector, pacer).run(item) is True

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.SUCCESS
        assert saved.last_change_log == "Desbloqueio OK"
        assert supplemental(saved) == {"newPassword": "X1"}

    def test_unblock_keeps_existing_supplemental_keys(self, store, connector, pacer, add_item):
        connector.unblock_user.return_value = ConnectorResult(True, "User unblocked", "X1")
        item = add_item(ManagementType.UNBLOCK, external_key="abc", supplemental_data='{"telefonePIN": "1234"}')

        UnblockWorkflow(store, connector, pacer).run(item)

        assert supplemental(store.find_by_id(item.id)) == {"telefonePIN": "1234", "newPassword": "X1"}

    def test_unblock_without_password_leaves_data_untouched(self, store, connector, pacer, add_item):
        item = add_item(ManagementType.UNBLOCK, external_key="abc", supplemental_data='{"a": 1}')

        UnblockWorkflow(store, connector, pacer).run(item)

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.SUCCESS
        assert saved.supplemental_data == '{"a": 1}'

    def test_unblock_already_active(self, store, connector, pacer, add_item):
        connector.unblock_user.return_value = ConnectorResult(
            False, 'API call failed: 422 Unprocessable Entity: {"code":"ALREADY_ACTIVE"}'
        )
        item = add_item(ManagementType.UNBLOCK, external_key="abc")

        UnblockWorkflow(store, connector, pacer).run(item)

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.ERROR
        assert saved.last_change_log == "already active"


class TestCreateWorkflow:
    """Test cases for CreateWorkflow."""

    def test_create_with_existing_group(self, store, connector, pacer, add_item):
        """CREATE with a group uuid links the user and keeps the group data."""
        item = add_item(ManagementType.CREATE, user_code="111", supplemental_data='{"groupUuid": "g1"}')

        assert CreateWorkflow(store, connector, pacer).run(item) is True

        saved = store.find_by_id(item.id)
        assert saved.external_key == "u1"
        assert saved.management_status == ManagementStatus.SUCCESS
        assert saved.last_change_log == "Criado com grupo"
        assert supplemental(saved) == {"groupUuid": "g1", "userUuid": "u1"}

        connector.create_user.assert_called_once_with("111")
        connector.add_user_to_group.assert_called_once_with("g1", "u1")
        connector.create_group.assert_not_called()
        assert call_names(connector) == ["create_user", "add_user_to_group", "block_user", "unblock_user"]

    def test_create_with_group_name_from_front_end_keys(self, store, connector, pacer, add_item):
        """Only a group name: the group is created and saved before the user is linked."""
        item = add_item(
            ManagementType.CREATE,
            user_code="111",
            supplemental_data='{"managementGroups_nome": "Store 7", "telefonePIN": "9876"}',
        )

        assert CreateWorkflow(store, connector, pacer).run(item) is True

        assert call_names(connector) == [
            "create_user", "create_group", "add_user_to_group", "block_user", "unblock_user"
        ]
        connector.create_group.assert_called_once_with("Store 7", "111")
        connector.add_user_to_group.assert_called_once_with("g2", "u1")

        group = store.find_group_by_uuid("g2")
        assert group is not None
        assert group.name == "Store 7"
        assert group.originating_key == "111"

        saved = store.find_by_id(item.id)
        assert saved.last_change_log == "Criado com novo grupo"
        data = supplemental(saved)
        assert data["groupUuid"] == "g2"
        assert data["groupNome"] == "Store 7"
        assert data["telefonePIN"] == "9876"

    def test_create_without_group(self, store, connector, pacer, add_item):
        item = add_item(ManagementType.CREATE, user_code="111")

        CreateWorkflow(store, connector, pacer).run(item)

        saved = store.find_by_id(item.id)
        assert saved.last_change_log == "Criado OK"
        assert saved.external_key == "u1"
        assert supplemental(saved) == {"userUuid": "u1"}
        connector.create_group.assert_not_called()
        connector.add_user_to_group.assert_not_called()

    def test_create_with_unparseable_supplemental_data(self, store, connector, pacer, add_item):
        item = add_item(ManagementType.CREATE, user_code="111", supplemental_data="not json")

        assert CreateWorkflow(store, connector, pacer).run(item) is True

        saved = store.find_by_id(item.id)
        assert saved.last_change_log == "Criado OK"
        connector.create_group.assert_not_called()

    def test_create_link_failure_degrades_to_warning(self, store, connector, pacer, add_item):
        connector.add_user_to_group.return_value = ConnectorResult(False, "API call failed: 500 Server Error: x")
        item = add_item(ManagementType.CREATE, user_code="111", supplemental_data='{"groupUuid": "g1"}')

        assert CreateWorkflow(store, connector, pacer).run(item) is True

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.SUCCESS
        assert saved.external_key == "u1"
        assert saved.last_change_log == "Criado sem grupo"
        assert supplemental(saved)["warning"] == "Erro ao vincular"

    def test_create_group_creation_failure(self, store, connector, pacer, add_item):
        connector.create_group.return_value = ConnectorResult(False, "API call failed: 500 Server Error: x")
        item = add_item(ManagementType.CREATE, user_code="111", supplemental_data='{"groupNome": "Store 7"}')

        CreateWorkflow(store, connector, pacer).run(item)

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.SUCCESS
        assert saved.last_change_log == "Criado sem grupo"
        assert supplemental(saved)["warning"] == "Erro ao criar grupo"
        connector.add_user_to_group.assert_not_called()
        assert store.find_group_by_uuid("g2") is None

    def test_create_new_group_link_failure(self, store, connector, pacer, add_item):
        connector.add_user_to_group.return_value = ConnectorResult(False, "API call failed: 404 Not Found: x")
        item = add_item(ManagementType.CREATE, user_code="111", supplemental_data='{"groupNome": "Store 7"}')

        CreateWorkflow(store, connector, pacer).run(item)

        saved = store.find_by_id(item.id)
        assert saved.last_change_log == "Criado sem vinculo"
        data = supplemental(saved)
        assert data["warning"] == "Grupo criado mas nao vinculado"
        assert data["groupUuid"] == "g2"

    def test_create_group_save_failure_is_not_fatal(self, connector, pacer, add_item, store):
        store.save_group = Mock(side_effect=PersistenceError("db down"))
        item = add_item(ManagementType.CREATE, user_code="111", supplemental_data='{"groupNome": "Store 7"}')

        assert CreateWorkflow(store, connector, pacer).run(item) is True
        assert store.find_by_id(item.id).last_change_log == "Criado com novo grupo"

    def test_create_user_failure(self, store, connector, pacer, add_item):
        connector.create_user.return_value = ConnectorResult(
            False, 'API call failed: 422 Unprocessable Entity: {"code":"ALREADY_EXISTS"}'
        )
        item = add_item(ManagementType.CREATE, user_code="111", supplemental_data='{"groupUuid": "g1"}')

        assert CreateWorkflow(store, connector, pacer).run(item) is False

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.ERROR
        assert saved.last_change_log == "already exists"
        assert saved.external_key is None
        assert call_names(connector) == ["create_user"]

    def test_create_requires_user_code(self, store, connector, pacer, add_item):
        item = add_item(ManagementType.CREATE, user_code="  ")

        assert CreateWorkflow(store, connector, pacer).run(item) is False

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.ERROR
        assert saved.last_change_log == "empty user code"
        assert connector.method_calls == []

    @pytest.mark.parametrize("failing_step", ["block_user", "unblock_user"])
    def test_activation_failure_keeps_success(self, store, connector, pacer, add_item, failing_step):
        getattr(connector, failing_step).return_value = ConnectorResult(False, "API call failed: 500 x")
        item = add_item(ManagementType.CREATE, user_code="111")

        assert CreateWorkflow(store, connector, pacer).run(item) is True

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.SUCCESS
        assert saved.last_change_log == "Criado OK"
        assert saved.external_key == "u1"
        assert "newPassword" not in supplemental(saved)

    def test_activation_block_failure_skips_unblock(self, store, connector, pacer, add_item):
        connector.block_user.return_value = ConnectorResult(False, "API call failed: 500 x")
        item = add_item(ManagementType.CREATE, user_code="111")

        CreateWorkflow(store, connector, pacer).run(item)

        connector.unblock_user.assert_not_called()

    def test_activation_password_is_merged(self, store, connector, pacer, add_item):
        connector.unblock_user.return_value = ConnectorResult(True, "User unblocked", "Pw9")
        item = add_item(ManagementType.CREATE, user_code="111", supplemental_data='{"groupUuid": "g1"}')

        CreateWorkflow(store, connector, pacer).run(item)

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.SUCCESS
        assert saved.last_change_log == "Criado com grupo"
        assert saved.external_key == "u1"
        assert supplemental(saved) == {"groupUuid": "g1", "userUuid": "u1", "newPassword": "Pw9"}

    def test_cancelled_pause_still_finishes_item(self, store, connector, pacer, add_item):
        cancel_event = threading.Event()
        cancel_event.set()
        connector.unblock_user.return_value = ConnectorResult(True, "User unblocked", "Pw9")
        item = add_item(ManagementType.CREATE, user_code="111")

        assert CreateWorkflow(store, connector, pacer, cancel_event=cancel_event).run(item) is True

        connector.unblock_user.assert_called_once_with("u1")
        assert supplemental(store.find_by_id(item.id))["newPassword"] == "Pw9"


class TestResetWorkflow:
    """Test cases for ResetWorkflow."""

    def test_reset_success(self, store, connector, pacer, add_item):
        connector.unblock_user.return_value = ConnectorResult(True, "User unblocked", "N3w")
        item = add_item(ManagementType.RESET, external_key="abc")

        assert ResetWorkflow(store, connector, pacer).run(item) is True

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.SUCCESS
        assert saved.last_change_log == "Reset OK"
        assert supplemental(saved) == {"newPassword": "N3w"}
        assert call_names(connector) == ["block_user", "unblock_user"]

    def test_reset_without_returned_password(self, store, connector, pacer, add_item):
        item = add_item(ManagementType.RESET, external_key="abc")

        ResetWorkflow(store, connector, pacer).run(item)

        assert supplemental(store.find_by_id(item.id)) == {"newPassword": "password not returned"}

    def test_reset_block_failure_skips_unblock(self, store, connector, pacer, add_item):
        connector.block_user.return_value = ConnectorResult(False, "API call failed: 404 Not Found: x")
        item = add_item(ManagementType.RESET, external_key="abc")

        assert ResetWorkflow(store, connector, pacer).run(item) is False

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.ERROR
        assert saved.last_change_log == "block failed: not found"
        connector.unblock_user.assert_not_called()

    def test_reset_unblock_failure_after_block(self, store, connector, pacer, add_item):
        connector.unblock_user.return_value = ConnectorResult(False, "API call failed: 500 Server Error: x")
        item = add_item(ManagementType.RESET, external_key="abc")

        assert ResetWorkflow(store, connector, pacer).run(item) is False

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.ERROR
        assert saved.last_change_log == "unblock failed: server error"

    def test_reset_requires_external_key(self, store, connector, pacer, add_item):
        item = add_item(ManagementType.RESET)

        ResetWorkflow(store, connector, pacer).run(item)

        assert store.find_by_id(item.id).last_change_log == "empty external key"
        assert connector.method_calls == []


class TestStatusPersistence:
    """Tests for the status write and its single fallback."""

    @pytest.fixture
    def item(self):
        return QueueItem(id=7, external_key="abc", management_type=ManagementType.BLOCK)

    def test_long_change_log_is_truncated(self, store, connector, pacer, add_item):
        connector.block_user.return_value = ConnectorResult(False, "Transport error: " + "x" * 200)
        item = add_item(ManagementType.BLOCK, external_key="abc")

        BlockWorkflow(store, connector, pacer).run(item)

        log = store.find_by_id(item.id).last_change_log
        assert len(log) == 50
        assert log.endswith("...")

    def test_failed_write_is_retried_with_minimal_log(self, connector, pacer, item):
        store = Mock()
        store.update_status.side_effect = [PersistenceError("value too long"), None]

        assert BlockWorkflow(store, connector, pacer).run(item) is True

        assert store.update_status.call_count == 2
        first, second = store.update_status.call_args_list
        assert first[0][3] == "Bloqueio OK"
        assert second[0][3] == "error"
        assert second[0][1] == ManagementStatus.SUCCESS

    def test_double_write_failure_does_not_raise(self, connector, pacer, item):
        store = Mock()
        store.update_status.side_effect = PersistenceError("db down")
        workflow = BlockWorkflow(store, connector, pacer)

        assert workflow.persist_status(item, ManagementStatus.SUCCESS, "Bloqueio OK") is False
        assert store.update_status.call_count == 2

    def test_audit_failure_keeps_change_log(self, store, connector, pacer, add_item):
        audit_logger = Mock()
        audit_logger.record_transition.side_effect = TypeError("not serializable")
        item = add_item(ManagementType.BLOCK, external_key="abc")

        assert BlockWorkflow(store, connector, pacer, audit_logger=audit_logger).run(item) is True

        saved = store.find_by_id(item.id)
        assert saved.management_status == ManagementStatus.SUCCESS
        assert saved.last_change_log == "Bloqueio OK"
        audit_logger.record_transition.assert_called_once()

    def test_fallback_write_is_audited_with_minimal_log(self, connector, pacer, item):
        store = Mock()
        store.update_status.side_effect = [PersistenceError("value too long"), None]
        audit_logger = Mock()

        BlockWorkflow(store, connector, pacer, audit_logger=audit_logger).run(item)

        audit_logger.record_transition.assert_called_once()
        assert audit_logger.record_transition.call_args.kwargs["change_log"] == "error"

    def test_successful_writes_are_audited(self, store, connector, pacer, add_item):
        audit_logger = Mock()
        connector.unblock_user.return_value = ConnectorResult(True, "User unblocked", "X1")
        item = add_item(ManagementType.UNBLOCK, external_key="abc")

        UnblockWorkflow(store, connector, pacer, audit_logger=audit_logger).run(item)

        audit_logger.record_transition.assert_called_once()
        kwargs = audit_logger.record_transition.call_args.kwargs
        assert kwargs["item_id"] == item.id
        assert kwargs["status"] == ManagementStatus.SUCCESS
        assert kwargs["change_log"] == "Desbloqueio OK"
        assert kwargs["metadata"]["workflow"] == "UnblockWorkflow"

    def test_execution_summary(self, store, connector, pacer, add_item):
        connector.unblock_user.return_value = ConnectorResult(False, "API call failed: 500 x")
        item = add_item(ManagementType.RESET, external_key="abc")
        workflow = ResetWorkflow(store, connector, pacer)

        workflow.run(item)
        summary = workflow.get_execution_summary()

        assert summary["workflow_type"] == "ResetWorkflow"
        assert summary["total_steps"] == 2
        assert summary["successful_steps"] == 1
        assert summary["failed_steps"] == 1
        assert summary["completed_at"] is not None
        assert len(summary["errors"]) == 1
