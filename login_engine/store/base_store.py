"""
Item Store contract for the Login Management Engine.

The store owns the persisted queue of login management requests and the
local mirror of partner groups.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..models import Group, ManagementStatus, QueueItem


class BaseItemStore(ABC):
    """
    Abstract base class for item stores.

    Implementations raise PersistenceError when the backend fails.
    """

    @abstractmethod
    def find_pending(self) -> List[QueueItem]:
        """Items in QUEUED or ERROR state that are not deleted, in processing order."""
        pass

    @abstractmethod
    def count_pending(self) -> int:
        """Number of items find_pending() would return."""
        pass

    @abstractmethod
    def find_by_id(self, item_id: int) -> Optional[QueueItem]:
        """Look up a single item."""
        pass

    @abstractmethod
    def update_status(
        self, item_id: int, status: ManagementStatus, timestamp: datetime, change_log: str
    ) -> None:
        """Set status, change timestamp and change log."""
        pass

    @abstractmethod
    def update_status_with_data(
        self,
        item_id: int,
        status: ManagementStatus,
        timestamp: datetime,
        change_log: str,
        supplemental_data: str,
    ) -> None:
        """Set status, timestamp, change log and supplemental data."""
        pass

    @abstractmethod
    def update_status_with_data_and_key(
        self,
        item_id: int,
        status: ManagementStatus,
        timestamp: datetime,
        change_log: str,
        supplemental_data: str,
        external_key: str,
    ) -> None:
        """Set status, timestamp, change log, supplemental data and external key."""
        pass

    @abstractmethod
    def save_group(self, group: Group) -> Group:
        """Persist a partner group; returns it with its store id."""
        pass

    @abstractmethod
    def find_group_by_uuid(self, group_uuid: str) -> Optional[Group]:
        """Look up a mirrored group by partner UUID."""
        pass

    def ping(self) -> bool:
        """Check that the backend is reachable."""
        self.count_pending()
        return True

    def close(self) -> None:
        """Release backend resources."""
        pass
