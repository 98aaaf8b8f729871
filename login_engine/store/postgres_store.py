"""
PostgreSQL Item Store.

Reads and updates the login management queue table with psycopg2. Status
and type columns hold the front-end's integer dropdown codes.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

from ..config import DEFAULT_STATUS_CODES, DEFAULT_TYPE_CODES
from ..exceptions import PersistenceError
from ..models import PENDING_STATUSES, Group, ManagementStatus, ManagementType, QueueItem
from .base_store import BaseItemStore

logger = logging.getLogger(__name__)

ITEM_COLUMNS = """
    crm_login_management_id AS id,
    crm_login_id AS login_id,
    crm_login_management_user_code AS user_code,
    crm_login_management_external_key AS external_key,
    crm_ferramenta_id AS tool_id,
    crm_credenciador_id AS accreditor_id,
    gpa_dropdown_loginmanagementtype AS management_type,
    gpa_dropdown_managementloginstatus AS management_status,
    crm_login_management_idusuariocriacao AS created_by,
    crm_login_management_datacriacao AS created_at,
    crm_login_management_idusuarioalteracao AS changed_by,
    crm_login_management_dataalteracao AS changed_at,
    crm_login_management_registroexcluido AS deleted,
    log_alteracao_rastro AS last_change_log,
    log_origemrastro_id AS log_origin_id,
    crm_login_management_dadoscomplementares AS supplemental_data
"""

PENDING_FILTER = """
    gpa_dropdown_managementloginstatus = ANY(%s)
    AND COALESCE(crm_login_management_registroexcluido, FALSE) = FALSE
"""


class PostgresItemStore(BaseItemStore):
    """Item store backed by the crm_login_management tables."""

    def __init__(
        self,
        database_url: str,
        status_codes: Optional[Dict[str, int]] = None,
        type_codes: Optional[Dict[str, int]] = None,
    ):
        """
        Initialize the store.

        Args:
            database_url: libpq connection string
            status_codes: ManagementStatus name -> dropdown code
            type_codes: ManagementType name -> dropdown code
        """
        if not database_url:
            raise ValueError("database_url is required")
        self.database_url = database_url
        self.status_codes = dict(status_codes or DEFAULT_STATUS_CODES)
        self.type_codes = dict(type_codes or DEFAULT_TYPE_CODES)
        self._types_by_code = {code: name for name, code in self.type_codes.items()}
        self._statuses_by_code = {code: name for name, code in self.status_codes.items()}
        self._conn = None

    @property
    def conn(self):
        """Get or create database connection."""
        if self._conn is None or self._conn.closed:
            self._conn = psycopg2.connect(self.database_url)
        return self._conn

    def close(self) -> None:
        """Close database connection."""
        if self._conn and not self._conn.closed:
            self._conn.close()
            self._conn = None

    @contextmanager
    def cursor(self):
        """Cursor with commit on success, rollback on failure, errors as PersistenceError."""
        try:
            conn = self.conn
        except psycopg2.Error as e:
            raise PersistenceError(f"Database connection failed: {e}") from e

        cur = conn.cursor(cursor_factory=RealDictCursor)
        try:
            yield cur
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise PersistenceError(str(e).strip()) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            cur.close()

    def find_pending(self) -> List[QueueItem]:
        with self.cursor() as cur:
            cur.execute(
                f"SELECT {ITEM_COLUMNS} FROM crm_login_management WHERE {PENDING_FILTER} "
                "ORDER BY crm_login_management_id ASC",
                (self._pending_codes(),),
            )
            return [self._row_to_item(row) for row in cur.fetchall()]

    def count_pending(self) -> int:
        with self.cursor() as cur:
            cur.execute(
                f"SELECT COUNT(*) AS pending FROM crm_login_management WHERE {PENDING_FILTER}",
                (self._pending_codes(),),
            )
            row = cur.fetchone()
            return int(row["pending"]) if row else 0

    def find_by_id(self, item_id: int) -> Optional[QueueItem]:
        with self.cursor() as cur:
            cur.execute(
                f"SELECT {ITEM_COLUMNS} FROM crm_login_management WHERE crm_login_management_id = %s",
                (item_id,),
            )
            row = cur.fetchone()
            return self._row_to_item(row) if row else None

    def update_status(self, item_id, status, timestamp, change_log):
        with self.cursor() as cur:
            cur.execute("""
                UPDATE crm_login_management
                SET gpa_dropdown_managementloginstatus = %s,
                    crm_login_management_dataalteracao = %s,
                    log_alteracao_rastro = %s
                WHERE crm_login_management_id = %s
            """, (self._status_code(status), timestamp, change_log, item_id))
            self._require_row(cur, item_id)

    def update_status_with_data(self, item_id, status, timestamp, change_log, supplemental_data):
        with self.cursor() as cur:
            cur.execute("""
                UPDATE crm_login_management
                SET gpa_dropdown_managementloginstatus = %s,
                    crm_login_management_dataalteracao = %s,
                    log_alteracao_rastro = %s,
                    crm_login_management_dadoscomplementares = %s
                WHERE crm_login_management_id = %s
            """, (self._status_code(status), timestamp, change_log, supplemental_data, item_id))
            self._require_row(cur, item_id)

    def update_status_with_data_and_key(
        self, item_id, status, timestamp, change_log, supplemental_data, external_key
    ):
        with self.cursor() as cur:
            cur.execute("""
                UPDATE crm_login_management
                SET gpa_dropdown_managementloginstatus = %s,
                    crm_login_management_dataalteracao = %s,
                    log_alteracao_rastro = %s,
                    crm_login_management_dadoscomplementares = %s,
                    crm_login_management_external_key = %s
                WHERE crm_login_management_id = %s
            """, (self._status_code(status), timestamp, change_log, supplemental_data, external_key, item_id))
            self._require_row(cur, item_id)

    def save_group(self, group: Group) -> Group:
        with self.cursor() as cur:
            cur.execute("""
                INSERT INTO crm_login_management_groups (
                    crm_login_managementgroups_uuid,
                    crm_login_managementgroups_nome,
                    crm_login_managementgroups_partner_external_key
                )
                VALUES (%s, %s, %s)
                RETURNING crm_login_managementgroups_id AS id
            """, (group.uuid, group.name, group.originating_key))
            row = cur.fetchone()
        saved = group.model_copy(update={"id": row["id"] if row else None})
        logger.info(f"Saved group {saved.name} ({saved.uuid}) with id {saved.id}")
        return saved

    def find_group_by_uuid(self, group_uuid: str) -> Optional[Group]:
        with self.cursor() as cur:
            cur.execute("""
                SELECT crm_login_managementgroups_id AS id,
                       crm_login_managementgroups_uuid AS uuid,
                       crm_login_managementgroups_nome AS name,
                       crm_login_managementgroups_partner_external_key AS originating_key
                FROM crm_login_management_groups
                WHERE crm_login_managementgroups_uuid = %s
            """, (group_uuid,))
            row = cur.fetchone()
            return Group.model_validate(dict(row)) if row else None

    def ping(self) -> bool:
        with self.cursor() as cur:
            cur.execute("SELECT 1")
        return True

    def _pending_codes(self) -> List[int]:
        return [self._status_code(status) for status in PENDING_STATUSES]

    def _status_code(self, status: ManagementStatus) -> int:
        try:
            return self.status_codes[ManagementStatus(status).value]
        except (KeyError, ValueError) as e:
            raise PersistenceError(f"No dropdown code configured for status {status!r}") from e

    def _row_to_item(self, row: Dict[str, Any]) -> QueueItem:
        data = dict(row)
        data["management_type"] = self._types_by_code.get(data.get("management_type"), ManagementType.UNKNOWN)
        status_name = self._statuses_by_code.get(data.get("management_status"))
        if status_name is None:
            raise PersistenceError(
                f"Item {data.get('id')} has unknown status code {data.get('management_status')!r}"
            )
        data["management_status"] = status_name
        data["deleted"] = bool(data.get("deleted"))
        return QueueItem.model_validate(data)

    @staticmethod
    def _require_row(cur, item_id: int) -> None:
        if cur.rowcount == 0:
            raise PersistenceError(f"Item {item_id} not found")
