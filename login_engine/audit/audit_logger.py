"""
Audit Logging Module.

Keeps an append-only trail of every persisted queue item transition,
one JSON line per record in a daily file.
"""

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models import AuditRecord, ManagementStatus, ManagementType

logger = logging.getLogger(__name__)

# Never copied into audit metadata.
SECRET_KEYS = {"newPassword", "telefonePIN"}


class AuditLogger:
    """
    Append-only logger for item transitions.

    Writes to the local file system; a failed write is logged and never
    interrupts item processing.
    """

    def __init__(self, audit_dir: str = "audit_logs"):
        """
        Initialize the audit logger.

        Args:
            audit_dir: Directory to store audit logs
        """
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def record_transition(
        self,
        item_id: int,
        management_type: ManagementType,
        status: ManagementStatus,
        change_log: str,
        external_key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """
        Record a persisted status transition.

        Returns:
            The record ID, or None when the record could not be written
        """
        record = AuditRecord(
            id=str(uuid.uuid4()),
            item_id=item_id,
            management_type=management_type,
            status=status,
            change_log=change_log,
            external_key=external_key,
            success=status == ManagementStatus.SUCCESS,
            metadata={k: v for k, v in (metadata or {}).items() if k not in SECRET_KEYS},
        )
        try:
            return self.log_event(record)
        except OSError as e:
            logger.error(f"Failed to write audit record for item {item_id}: {e}")
            return None

    def log_event(self, record: AuditRecord) -> str:
        """
        Log an audit event.

        Args:
            record: The audit record to log

        Returns:
            The record ID
        """
        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = self.audit_dir / f"audit_{date_str}.jsonl"

        with self._lock:
            with open(log_file, "a", encoding="utf-8") as f:
                data = record.model_dump(mode="json")
                f.write(json.dumps(data) + "\n")

        logger.debug(f"Logged audit event {record.id} for item {record.item_id}")
        return record.id

    def get_events(
        self,
        item_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditRecord]:
        """
        Retrieve audit events, most recent first.

        Args:
            item_id: Filter by queue item ID
            start_date: Ignore records older than this
            limit: Maximum number of records to return

        Returns:
            List of matching AuditRecords
        """
        results = []
        if start_date is not None and start_date.tzinfo is None:
            start_date = start_date.replace(tzinfo=timezone.utc)

        log_files = sorted(self.audit_dir.glob("audit_*.jsonl"), reverse=True)

        for log_file in log_files:
            if len(results) >= limit:
                break

            try:
                with open(log_file, encoding="utf-8") as f:
                    lines = f.readlines()
            except OSError as e:
                logger.error(f"Failed to read log file {log_file}: {e}")
                continue

            for line in reversed(lines):
                if len(results) >= limit:
                    break

                try:
                    record = AuditRecord(**json.loads(line))
                except ValueError as e:
                    logger.warning(f"Failed to parse audit record: {e}")
                    continue

                if item_id is not None and record.item_id != item_id:
                    continue

                if start_date and record.timestamp < start_date:
                    continue

                results.append(record)

        return results
