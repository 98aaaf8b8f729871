"""
Base Connector Classes for the Login Management Engine.

This module provides the contract for the partner identity API connector,
with both a real HTTP implementation and an in-memory mock backend.
"""

import logging
import secrets
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class ConnectorResult:
    """Result of a connector operation."""

    def __init__(self, success: bool, message: str = "", data: Optional[Any] = None):
        self.success = success
        self.message = message
        self.data = data

    def __bool__(self):
        return self.success

    def __str__(self):
        return f"{'✓' if self.success else '✗'} {self.message}"

    def __repr__(self):
        return f"ConnectorResult(success={self.success!r}, message={self.message!r})"

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message, "data": self.data}


class BasePartnerConnector(ABC):
    """
    Abstract base class for partner identity API connectors.

    Every operation returns a ConnectorResult; failures are reported through
    the result, never raised, so callers decide how much a failure matters.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = False):
        """
        Initialize the connector.

        Args:
            config: Configuration dictionary (base URL, partner UUID, etc.)
            mock_mode: If True, the connector talks to an in-memory backend
        """
        self.config = config or {}
        self.mock_mode = mock_mode

        logger.info(f"Initialized {self.__class__.__name__} (mock_mode={mock_mode})")

    @abstractmethod
    def create_user(self, user_code: str) -> ConnectorResult:
        """
        Create a partner user for a domain user code.

        Args:
            user_code: Domain user identifier (person code)

        Returns:
            ConnectorResult whose data is the new user UUID
        """
        pass

    @abstractmethod
    def block_user(self, external_key: str) -> ConnectorResult:
        """
        Block a partner user.

        Args:
            external_key: Partner user identifier

        Returns:
            ConnectorResult whose data is the raw response body
        """
        pass

    @abstractmethod
    def unblock_user(self, external_key: str) -> ConnectorResult:
        """
        Unblock a partner user.

        Args:
            external_key: Partner user identifier

        Returns:
            ConnectorResult whose data is the generated password, if any
        """
        pass

    @abstractmethod
    def create_group(self, name: str, partner_external_key: str) -> ConnectorResult:
        """
        Create a partner user group.

        Args:
            name: Group name (also used as label)
            partner_external_key: Key the group is created for

        Returns:
            ConnectorResult whose data is the new group UUID
        """
        pass

    @abstractmethod
    def add_user_to_group(self, group_uuid: str, user_uuid: str) -> ConnectorResult:
        """
        Link a partner user to a group.

        Args:
            group_uuid: Partner group identifier
            user_uuid: Partner user identifier

        Returns:
            ConnectorResult whose data is the raw response body
        """
        pass

    def is_mock_mode(self) -> bool:
        """Check if this connector is running in mock mode."""
        return self.mock_mode


class MockPartnerConnector(BasePartnerConnector):
    """
    In-memory partner backend.

    Mirrors the partner's observable behaviour closely enough for local runs:
    duplicate creation yields a 422 ALREADY_EXISTS error, unknown keys 404.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config, mock_mode=True)

        self.users: Dict[str, Dict[str, Any]] = {}  # user_uuid -> user record
        self.groups: Dict[str, Dict[str, Any]] = {}  # group_uuid -> group record
        self.calls: List[str] = []

    def create_user(self, user_code: str) -> ConnectorResult:
        """Mock user creation."""
        self.calls.append("create_user")
        for user in self.users.values():
            if user["person_code"] == user_code:
                return ConnectorResult(False, '422 Unprocessable Entity: {"code":"ALREADY_EXISTS"}')

        user_uuid = str(uuid.uuid4())
        self.users[user_uuid] = {
            "person_code": user_code,
            "blocked": False,
            "groups": [],
            "created_at": datetime.now(timezone.utc),
        }
        logger.info(f"Mock created user {user_uuid} for {user_code}")
        return ConnectorResult(True, "User created", user_uuid)

    def block_user(self, external_key: str) -> ConnectorResult:
        """Mock block."""
        self.calls.append("block_user")
        user = self.users.get(external_key)
        if user is None:
            return ConnectorResult(False, "404 Not Found: user not found")
        user["blocked"] = True
        return ConnectorResult(True, "User blocked", {"uuid": external_key, "blocked": True})

    def unblock_user(self, external_key: str) -> ConnectorResult:
        """Mock unblock; generates a fresh password."""
        self.calls.append("unblock_user")
        user = self.users.get(external_key)
        if user is None:
            return ConnectorResult(False, "404 Not Found: user not found")
        if not user["blocked"]:
            return ConnectorResult(False, '422 Unprocessable Entity: {"code":"ALREADY_ACTIVE"}')
        user["blocked"] = False
        return ConnectorResult(True, "User unblocked", secrets.token_urlsafe(9))

    def create_group(self, name: str, partner_external_key: str) -> ConnectorResult:
        """Mock group creation."""
        self.calls.append("create_group")
        group_uuid = str(uuid.uuid4())
        self.groups[group_uuid] = {"name": name, "partner_external_key": partner_external_key, "members": []}
        logger.info(f"Mock created group {name} ({group_uuid})")
        return ConnectorResult(True, "Group created", group_uuid)

    def add_user_to_group(self, group_uuid: str, user_uuid: str) -> ConnectorResult:
        """Mock group membership."""
        self.calls.append("add_user_to_group")
        group = self.groups.get(group_uuid)
        if group is None:
            return ConnectorResult(False, "404 Not Found: group not found")
        if user_uuid not in self.users:
            return ConnectorResult(False, "404 Not Found: user not found")

        if user_uuid not in group["members"]:
            group["members"].append(user_uuid)
            self.users[user_uuid]["groups"].append(group_uuid)
        return ConnectorResult(True, "User added to group", {"groupUuid": group_uuid, "userUuid": user_uuid})

    def get_mock_state(self) -> Dict[str, Any]:
        """Get current mock state for inspection."""
        return {
            "users": self.users,
            "groups": self.groups,
        }
