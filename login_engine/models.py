"""
Core data models for the Login Management Engine.

This module defines the Pydantic models used throughout the system
for queued login management requests, partner groups, supplemental
payloads, audit records and batch results.
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class ManagementType(str, Enum):
    """Workflow selector of a queued login management request."""
    CREATE = "CREATE"
    BLOCK = "BLOCK"
    UNBLOCK = "UNBLOCK"
    RESET = "RESET"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> "ManagementType":
        """Map any stored value to a member, falling back to UNKNOWN."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.UNKNOWN


class ManagementStatus(str, Enum):
    """Lifecycle state of a queued request."""
    QUEUED = "QUEUED"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


# Statuses selected by a drain. Failed items are retried by re-selection.
PENDING_STATUSES = (ManagementStatus.QUEUED, ManagementStatus.ERROR)


class QueueItem(BaseModel):
    """A persisted login management request."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Unique item identifier")
    user_code: Optional[str] = Field(None, description="Domain user code (e.g. tax ID)")
    external_key: Optional[str] = Field(None, description="Partner-assigned user identifier")
    management_type: ManagementType = Field(ManagementType.UNKNOWN, description="Workflow selector")
    management_status: ManagementStatus = Field(ManagementStatus.QUEUED, description="Lifecycle state")
    supplemental_data: Optional[str] = Field(None, description="JSON object with workflow inputs/outputs")
    last_change_log: Optional[str] = Field(None, description="Trace of the last transition")
    deleted: bool = Field(False, description="Soft-delete flag")
    login_id: Optional[int] = None
    tool_id: Optional[int] = None
    accreditor_id: Optional[int] = None
    log_origin_id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    changed_by: Optional[int] = None
    changed_at: Optional[datetime] = None

    @field_validator("management_type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> ManagementType:
        return ManagementType.parse(value)

    def supplemental_dict(self) -> Dict[str, Any]:
        """Supplemental data as a dict; empty when absent or not a JSON object."""
        return parse_supplemental(self.supplemental_data)


class SupplementalInput(BaseModel):
    """Workflow inputs carried in the supplemental data of a CREATE item."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    group_uuid: Optional[str] = Field(
        None, validation_alias=AliasChoices("managementGroups_uuid", "groupUuid", "group_uuid")
    )
    group_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("managementGroups_nome", "groupNome", "group_name")
    )
    phone_pin: Optional[str] = Field(None, validation_alias=AliasChoices("telefonePIN", "phone_pin"))

    @field_validator("group_uuid", "group_name", "phone_pin", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None


class Group(BaseModel):
    """A partner-side user group, mirrored locally after creation."""
    id: Optional[int] = None
    uuid: str
    name: str
    originating_key: Optional[str] = Field(None, description="User code the group was created for")


class AuditRecord(BaseModel):
    """Audit record of a persisted item transition."""
    id: str = Field(..., description="Unique audit record ID")
    timestamp: datetime = Field(default_factory=utc_now)
    item_id: int
    management_type: ManagementType
    status: ManagementStatus
    change_log: str
    external_key: Optional[str] = None
    success: bool
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BatchResult(BaseModel):
    """Outcome of a single drain of the pending queue."""
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    total_items: int = 0
    processed: int = 0
    success_count: int = 0
    error_count: int = 0
    interrupted: bool = False
    skipped: bool = Field(False, description="True when another drain was already running")
    failed_item_ids: List[int] = Field(default_factory=list)


def parse_supplemental(raw: Optional[str]) -> Dict[str, Any]:
    """
    Parse stored supplemental data.

    Args:
        raw: JSON text as stored on the item

    Returns:
        The decoded object, or an empty dict when the text is blank,
        malformed or not a JSON object
    """
    if raw is None or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.warning(f"Unparseable supplemental data: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Supplemental data is not a JSON object: {type(data).__name__}")
        return {}
    return data


def dump_supplemental(data: Dict[str, Any]) -> str:
    """Serialize supplemental data for storage."""
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))
