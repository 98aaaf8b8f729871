"""
Exception hierarchy for the Login Management Engine.

AuthError leaves the token cache and is turned into a failed result by
the connector. The others are contained inside the connector, the store or
the orchestrator.
"""

from typing import Optional


class LoginEngineError(Exception):
    """Base class for all engine errors."""


class ItemValidationError(LoginEngineError):
    """A queued item is missing a field its workflow requires."""

    def __init__(self, item_id: int, change_log: str):
        super().__init__(f"Item {item_id}: {change_log}")
        self.item_id = item_id
        self.change_log = change_log


class AuthError(LoginEngineError):
    """The client-credentials token exchange failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PartnerApiError(LoginEngineError):
    """Non-2xx response or transport failure from the partner API."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)


class PersistenceError(LoginEngineError):
    """The item store rejected a read or write."""


class ProcessingInterrupted(LoginEngineError):
    """A pacing wait was cancelled by a shutdown request."""
