"""
GraftWatch - Document Store Module
Real-time document store contract and its implementations.
"""

from typing import Optional

from graftwatch.core.config import settings
from graftwatch.store.base import (
    DocumentStore,
    DocumentSnapshot,
    Query,
    Subscription,
    Increment,
    SERVER_TIMESTAMP,
    timestamp_seconds,
)
from graftwatch.store.memory import MemoryDocumentStore


def create_store(database_url: Optional[str] = None) -> DocumentStore:
    """
    Build the store selected by configuration.

    Firebase credentials select Cloud Firestore, a database URL selects the
    SQL store, and otherwise everything stays in process memory.
    """
    if database_url is None and settings.firebase_credentials_path:
        from graftwatch.store.firestore import FirestoreDocumentStore

        return FirestoreDocumentStore()

    url = database_url or settings.database_url
    if not url:
        return MemoryDocumentStore()

    from graftwatch.database.connection import DatabaseConnection
    from graftwatch.store.sql import SqlDocumentStore

    return SqlDocumentStore(
        DatabaseConnection(database_url=url),
        poll_interval=settings.store_poll_interval_seconds,
    )


__all__ = [
    "DocumentStore",
    "DocumentSnapshot",
    "Query",
    "Subscription",
    "Increment",
    "SERVER_TIMESTAMP",
    "timestamp_seconds",
    "MemoryDocumentStore",
    "create_store",
]
