"""
Shared fixtures for the Login Engine test suite.
"""

from unittest.mock import Mock

import pytest

from login_engine.connectors import BasePartnerConnector, ConnectorResult
from login_engine.engine import LoginManagementOrchestrator
from login_engine.models import ManagementStatus, QueueItem
from login_engine.store import InMemoryItemStore
from login_engine.workflows import Pacer


@pytest.fixture
def store():
    """Empty in-memory item store."""
    return InMemoryItemStore()


@pytest.fixture
def connector():
    """Partner connector mock; every call succeeds unless a test says otherwise."""
    mock = Mock(spec=BasePartnerConnector)
    mock.create_user.return_value = ConnectorResult(True, "User created", "u1")
    mock.block_user.return_value = ConnectorResult(True, "User blocked", {})
    mock.unblock_user.return_value = ConnectorResult(True, "User unblocked", None)
    mock.create_group.return_value = ConnectorResult(True, "Group created", "g2")
    mock.add_user_to_group.return_value = ConnectorResult(True, "User added to group", {})
    return mock


@pytest.fixture
def pacer():
    """Pacer without delay."""
    return Pacer(0)


@pytest.fixture
def orchestrator(store, connector, pacer):
    """Orchestrator over the in-memory store and the connector mock."""
    return LoginManagementOrchestrator(store=store, connector=connector, pacer=pacer)


@pytest.fixture
def add_item(store):
    """Factory that seeds the store with a queued item."""
    counter = {"next_id": 1}

    def _add(management_type, user_code=None, external_key=None, supplemental_data=None,
             status=ManagementStatus.QUEUED, deleted=False):
        item = QueueItem(
            id=counter["next_id"],
            user_code=user_code,
            external_key=external_key,
            management_type=management_type,
            management_status=status,
            supplemental_data=supplemental_data,
            deleted=deleted,
        )
        counter["next_id"] += 1
        return store.add_item(item)

    return _add
