"""
Workflow Helper Functions for the Login Management Engine.

Change-log texts, error classification, truncation and supplemental-data
merging shared by every workflow.
"""

import logging
from typing import Any, Dict, Optional

from ..models import QueueItem, dump_supplemental, parse_supplemental

logger = logging.getLogger(__name__)

LOG_MAX_LENGTH = 50
ELLIPSIS = "..."


class ChangeLog:
    """Change-log texts persisted on items."""
    EMPTY_USER_CODE = "empty user code"
    EMPTY_EXTERNAL_KEY = "empty external key"
    UNKNOWN_TYPE = "unknown management type"
    UNEXPECTED_ERROR = "unexpected error"
    MINIMAL = "error"

    CREATED = "Criado OK"
    CREATED_WITH_GROUP = "Criado com grupo"
    CREATED_WITH_NEW_GROUP = "Criado com novo grupo"
    CREATED_WITHOUT_GROUP = "Criado sem grupo"
    CREATED_WITHOUT_LINK = "Criado sem vinculo"
    BLOCKED = "Bloqueio OK"
    UNBLOCKED = "Desbloqueio OK"
    RESET = "Reset OK"

    BLOCK_FAILED = "block failed"
    UNBLOCK_FAILED = "unblock failed"


class GroupWarning:
    """Warnings recorded in supplemental data when a CREATE degrades."""
    LINK_FAILED = "Erro ao vincular"
    GROUP_CREATE_FAILED = "Erro ao criar grupo"
    GROUP_NOT_LINKED = "Grupo criado mas nao vinculado"


PASSWORD_NOT_RETURNED = "password not returned"


def truncate_log(message: Optional[str], max_length: int = LOG_MAX_LENGTH) -> str:
    """
    Bound a change-log message to the storage limit.

    Args:
        message: Message to truncate (None becomes an empty string)
        max_length: Storage limit in characters

    Returns:
        The message, or its prefix followed by an ellipsis when too long
    """
    if message is None:
        return ""
    if len(message) <= max_length:
        return message
    if max_length <= len(ELLIPSIS):
        return message[:max_length]
    return message[:max_length - len(ELLIPSIS)] + ELLIPSIS


def classify_error(message: Optional[str], max_length: int = LOG_MAX_LENGTH) -> str:
    """
    Map a raw partner API failure message to a short audit code.

    Args:
        message: Failure message from a ConnectorResult
        max_length: Storage limit applied to unclassified messages

    Returns:
        Short error code suitable for the change log
    """
    if not message:
        return "unknown error"

    if "422" in message:
        if "ALREADY_ACTIVE" in message:
            return "already active"
        if "ALREADY_EXISTS" in message:
            return "already exists"
        return "422 error"

    if "401" in message or "403" in message:
        return "auth error"

    if "404" in message:
        return "not found"

    if "500" in message:
        return "server error"

    return truncate_log(message, max_length)


def merge_supplemental(raw: Optional[str], **updates: Any) -> str:
    """
    Add keys to stored supplemental data without disturbing existing ones.

    Keys whose value is None are skipped.

    Args:
        raw: Current supplemental data as stored
        **updates: Keys to add or overwrite

    Returns:
        Serialized JSON object
    """
    data = parse_supplemental(raw)
    for key, value in updates.items():
        if value is not None:
            data[key] = value
    return dump_supplemental(data)


def has_text(value: Optional[str]) -> bool:
    """True when value holds something other than whitespace."""
    return bool(value and value.strip())


def describe_item(item: QueueItem) -> Dict[str, Any]:
    """Loggable summary of an item, without secrets."""
    return {
        "id": item.id,
        "type": item.management_type.value,
        "status": item.management_status.value,
        "user_code": item.user_code,
        "external_key": item.external_key,
    }
