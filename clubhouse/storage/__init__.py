"""
Storage abstractions.

Integration Points:
- MetadataStorage -> MongoDB (motor) in production, in-memory locally
"""

from __future__ import annotations

from clubhouse.storage.base import (
    Collections,
    ConcurrentUpdateError,
    DuplicateDocumentError,
    MetadataStorage,
    StorageError,
    StorageProvider,
)
from clubhouse.storage.local import InMemoryMetadataStorage, create_local_storage


def create_storage(settings) -> StorageProvider:
    """Pick the backend from settings: MongoDB when DATABASE_URL is set."""
    if settings.use_mongo:
        from clubhouse.storage.mongo import create_mongo_storage

        return create_mongo_storage(
            settings.database_url,
            settings.database_name,
            settings.store_timeout_seconds,
        )
    return create_local_storage()


__all__ = [
    "Collections",
    "ConcurrentUpdateError",
    "DuplicateDocumentError",
    "InMemoryMetadataStorage",
    "MetadataStorage",
    "StorageError",
    "StorageProvider",
    "create_local_storage",
    "create_storage",
]
