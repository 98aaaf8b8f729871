"""
Partner API Connector for the Login Management Engine.

Talks to the partner's user-management REST API over HTTPS with bearer
authentication. Credentials come from the shared TokenCache; an HTTP 401
or 403 invalidates the cached token so the next call fetches a fresh one.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..auth.token_cache import TokenCache
from ..exceptions import AuthError, PartnerApiError
from .base_connector import BasePartnerConnector, ConnectorResult

logger = logging.getLogger(__name__)

USERS_PATH = "/partner-management/v1/users"
GROUPS_PATH = "/partner-management/v1/groups"


class PartnerConnector(BasePartnerConnector):
    """HTTP connector for the partner identity API."""

    def __init__(
        self,
        token_cache: TokenCache,
        config: Optional[Dict[str, Any]] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the connector.

        Args:
            token_cache: Source of bearer tokens
            config: Keys base_url, partner_uuid, user_profile_id,
                block_history and request_timeout
            session: Optional requests session
        """
        super().__init__(config, mock_mode=False)

        self.token_cache = token_cache
        self.base_url = self.config.get("base_url", "").rstrip("/")
        if not self.base_url:
            raise ValueError("Partner API base_url is required")

        self.partner_uuid = self.config.get("partner_uuid", "")
        self.user_profile_id = self.config.get("user_profile_id")
        self.block_history = self.config.get("block_history", "Login management block")
        self.timeout = self.config.get("request_timeout", 30.0)
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def create_user(self, user_code: str) -> ConnectorResult:
        """Create a partner user; data is the new user UUID."""
        payload = {
            "personCode": user_code,
            "userProfileId": self.user_profile_id,
            "partnerUuid": self.partner_uuid,
        }
        logger.info(f"Creating partner user for {user_code}")
        result = self._call("create user", "POST", USERS_PATH, payload)
        if not result.success:
            return result

        user_uuid = self._extract_uuid(result.data)
        if not user_uuid:
            return ConnectorResult(False, f"User created but response had no uuid: {result.data}")
        logger.info(f"Partner user {user_uuid} created for {user_code}")
        return ConnectorResult(True, "User created", user_uuid)

    def block_user(self, external_key: str) -> ConnectorResult:
        """Block a partner user; data is the raw response body."""
        payload = {"partnerUuid": self.partner_uuid, "history": self.block_history}
        logger.info(f"Blocking partner user {external_key}")
        result = self._call("block user", "POST", f"{USERS_PATH}/{external_key}/block", payload)
        if result.success:
            return ConnectorResult(True, "User blocked", result.data)
        return result

    def unblock_user(self, external_key: str) -> ConnectorResult:
        """Unblock a partner user; data is the generated password or None."""
        payload = {"partnerUuid": self.partner_uuid, "history": self.block_history}
        logger.info(f"Unblocking partner user {external_key}")
        result = self._call("unblock user", "POST", f"{USERS_PATH}/{external_key}/unblock", payload)
        if not result.success:
            return result

        new_password = None
        if isinstance(result.data, dict) and result.data.get("newPassword"):
            new_password = result.data["newPassword"]
            logger.info(f"New password generated for partner user {external_key}")
        return ConnectorResult(True, "User unblocked", new_password)

    def create_group(self, name: str, partner_external_key: str) -> ConnectorResult:
        """Create a partner group; data is the new group UUID."""
        payload = {
            "name": name,
            "label": name,
            "partnerExternalKey": partner_external_key,
            "partnerUuid": self.partner_uuid,
        }
        logger.info(f"Creating partner group {name}")
        result = self._call("create group", "POST", GROUPS_PATH, payload)
        if not result.success:
            return result

        group_uuid = self._extract_uuid(result.data)
        if not group_uuid:
            return ConnectorResult(False, f"Group created but response had no uuid: {result.data}")
        return ConnectorResult(True, "Group created", group_uuid)

    def add_user_to_group(self, group_uuid: str, user_uuid: str) -> ConnectorResult:
        """Link a user to a group; data is the raw response body."""
        payload = {"userUuid": user_uuid, "partnerUuid": self.partner_uuid}
        logger.info(f"Adding partner user {user_uuid} to group {group_uuid}")
        result = self._call("add user to group", "POST", f"{GROUPS_PATH}/{group_uuid}/users", payload)
        if result.success:
            return ConnectorResult(True, "User added to group", result.data)
        return result

    def _call(self, operation: str, method: str, path: str, payload: Dict[str, Any]) -> ConnectorResult:
        """Run one request and fold any failure into a ConnectorResult."""
        try:
            body = self._request(method, path, payload)
            return ConnectorResult(True, f"{operation} OK", body)
        except AuthError as e:
            logger.error(f"Cannot {operation}: token unavailable: {e}")
            return ConnectorResult(False, f"Authentication failed: {e}")
        except PartnerApiError as e:
            if e.is_auth_failure:
                logger.warning(f"Partner rejected the token ({e.status_code}), invalidating it")
                self.token_cache.invalidate()
            logger.error(f"Partner API call '{operation}' failed: {e}")
            return ConnectorResult(False, f"API call failed: {e}")

    def _request(self, method: str, path: str, payload: Dict[str, Any]) -> Any:
        """
        Send an authenticated JSON request.

        Returns:
            Decoded JSON body, raw text for non-JSON bodies, or None when empty

        Raises:
            AuthError: if no token can be obtained
            PartnerApiError: on transport failure or non-2xx status
        """
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {self.token_cache.get_valid_token()}"}

        try:
            response = self.session.request(method, url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise PartnerApiError(f"Transport error: {e}") from e

        if not 200 <= response.status_code < 300:
            text = response.text or ""
            logger.debug(f"{method} {path} returned {response.status_code}")
            raise PartnerApiError(
                f"{response.status_code} {response.reason or ''}: {text[:500]}",
                status_code=response.status_code,
                body=text,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _extract_uuid(body: Any) -> Optional[str]:
        """Pull the created resource's identifier out of a response body."""
        if isinstance(body, str):
            return body.strip() or None
        if isinstance(body, dict):
            for key in ("uuid", "userUuid", "groupUuid", "id"):
                if body.get(key):
                    return str(body[key])
            data = body.get("data")
            if isinstance(data, dict):
                return PartnerConnector._extract_uuid(data)
        return None
