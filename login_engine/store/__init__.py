"""
Item Store Package.

Persistence of the login management queue and the partner group mirror.
"""

from .base_store import BaseItemStore
from .memory_store import InMemoryItemStore
from .postgres_store import PostgresItemStore


def build_store(settings) -> BaseItemStore:
    """Build the store selected by settings.store_backend."""
    if settings.store_backend == "postgres":
        return PostgresItemStore(
            settings.database_url,
            status_codes=settings.status_codes,
            type_codes=settings.type_codes,
        )
    return InMemoryItemStore(settings.state_file)


__all__ = [
    "BaseItemStore",
    "InMemoryItemStore",
    "PostgresItemStore",
    "build_store",
]
