"""
In-memory Item Store.

Keeps items and groups in dictionaries, with optional JSON file
persistence. Used for local runs, demos and tests.
"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..exceptions import PersistenceError
from ..models import PENDING_STATUSES, Group, ManagementStatus, QueueItem
from .base_store import BaseItemStore

logger = logging.getLogger(__name__)


class InMemoryItemStore(BaseItemStore):
    """
    Thread-safe dictionary-backed item store.

    Items are returned in insertion order, the way a relational store
    returns them ordered by primary key.
    """

    def __init__(self, storage_path: Optional[Union[str, Path]] = None):
        """
        Initialize the store.

        Args:
            storage_path: Path to store state as JSON.
                         If None, state is kept in memory only.
        """
        self.storage_path = Path(storage_path) if storage_path else None
        self.items: Dict[int, QueueItem] = {}
        self.groups: Dict[int, Group] = {}
        self._lock = threading.RLock()

        if self.storage_path:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_state()

        logger.info(
            f"Initialized InMemoryItemStore with {'persistent' if self.storage_path else 'in-memory'} storage"
        )

    def add_item(self, item: QueueItem) -> QueueItem:
        """Insert or replace an item (stands in for the external producer)."""
        with self._lock:
            self.items[item.id] = item
            self._save_state()
        return item

    def find_pending(self) -> List[QueueItem]:
        with self._lock:
            return [
                item for item in self.items.values()
                if item.management_status in PENDING_STATUSES and not item.deleted
            ]

    def count_pending(self) -> int:
        return len(self.find_pending())

    def find_by_id(self, item_id: int) -> Optional[QueueItem]:
        with self._lock:
            return self.items.get(item_id)

    def update_status(self, item_id, status, timestamp, change_log):
        self._update(item_id, management_status=status, changed_at=timestamp, last_change_log=change_log)

    def update_status_with_data(self, item_id, status, timestamp, change_log, supplemental_data):
        self._update(
            item_id,
            management_status=status,
            changed_at=timestamp,
            last_change_log=change_log,
            supplemental_data=supplemental_data,
        )

    def update_status_with_data_and_key(
        self, item_id, status, timestamp, change_log, supplemental_data, external_key
    ):
        self._update(
            item_id,
            management_status=status,
            changed_at=timestamp,
            last_change_log=change_log,
            supplemental_data=supplemental_data,
            external_key=external_key,
        )

    def save_group(self, group: Group) -> Group:
        with self._lock:
            group_id = group.id if group.id is not None else max(self.groups, default=0) + 1
            saved = group.model_copy(update={"id": group_id})
            self.groups[group_id] = saved
            self._save_state()
        logger.info(f"Saved group {saved.name} ({saved.uuid}) with id {group_id}")
        return saved

    def find_group_by_uuid(self, group_uuid: str) -> Optional[Group]:
        with self._lock:
            for group in self.groups.values():
                if group.uuid == group_uuid:
                    return group
        return None

    def _update(self, item_id: int, **changes: Any) -> None:
        with self._lock:
            item = self.items.get(item_id)
            if item is None:
                raise PersistenceError(f"Item {item_id} not found")
            if not isinstance(changes.get("management_status"), ManagementStatus):
                raise PersistenceError(f"Invalid status for item {item_id}: {changes.get('management_status')!r}")
            self.items[item_id] = item.model_copy(update=changes)
            self._save_state()

    def _load_state(self) -> None:
        """Load state from the JSON file if it exists."""
        if not self.storage_path or not self.storage_path.exists():
            return
        try:
            with open(self.storage_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self.items = {
                int(raw["id"]): QueueItem.model_validate(raw) for raw in data.get("items", [])
            }
            self.groups = {
                int(raw["id"]): Group.model_validate(raw) for raw in data.get("groups", [])
            }
            logger.info(f"Loaded {len(self.items)} items and {len(self.groups)} groups from {self.storage_path}")
        except (OSError, ValueError, KeyError) as e:
            raise PersistenceError(f"Failed to load state from {self.storage_path}: {e}") from e

    def _save_state(self) -> None:
        """Write state to the JSON file, when persistence is enabled."""
        if not self.storage_path:
            return
        data = {
            "items": [item.model_dump(mode="json") for item in self.items.values()],
            "groups": [group.model_dump(mode="json") for group in self.groups.values()],
            "saved_at": datetime.now().isoformat(),
        }
        try:
            with open(self.storage_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise PersistenceError(f"Failed to save state to {self.storage_path}: {e}") from e
