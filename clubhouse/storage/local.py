"""
Local storage implementation for development and tests.

An in-memory document store with the same semantics as the MongoDB
backend: unique fields, list-membership filters and versioned
conditional writes.
"""

from __future__ import annotations

import copy
from typing import Any

from clubhouse.storage.base import (
    VERSION_FIELD,
    DuplicateDocumentError,
    MetadataStorage,
    StorageProvider,
)


def _matches(doc: dict[str, Any], filters: dict[str, Any]) -> bool:
    for key, value in filters.items():
        current = doc.get(key)
        if isinstance(current, list) and not isinstance(value, list):
            if value not in current:
                return False
        elif current != value:
            return False
    return True


# =============================================================================
# In-Memory Metadata Storage
# =============================================================================


class InMemoryMetadataStorage(MetadataStorage):
    """In-memory document storage for development."""

    def __init__(self):
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._unique: dict[str, set[str]] = {}

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._data.setdefault(collection, {})

    def _check_unique(self, collection: str, id: str, candidate: dict[str, Any]) -> None:
        for field in self._unique.get(collection, ()):
            value = candidate.get(field)
            if value is None:
                continue
            for other_id, other in self._collection(collection).items():
                if other_id != id and other.get(field) == value:
                    raise DuplicateDocumentError(collection, field, value)

    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        docs = self._collection(collection)
        previous = docs.get(id)
        document = {**copy.deepcopy(data), "_id": id}
        self._check_unique(collection, id, document)
        document[VERSION_FIELD] = (previous or {}).get(VERSION_FIELD, 0) + 1
        docs[id] = document

    async def insert(self, collection: str, id: str, data: dict[str, Any]) -> None:
        if id in self._collection(collection):
            raise DuplicateDocumentError(collection, "_id", id)
        await self.save(collection, id, data)

    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        doc = self._collection(collection).get(id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find_one(self, collection: str, filters: dict[str, Any]) -> dict[str, Any] | None:
        for doc in self._collection(collection).values():
            if _matches(doc, filters):
                return copy.deepcopy(doc)
        return None

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        results = [
            copy.deepcopy(doc)
            for doc in self._collection(collection).values()
            if not filters or _matches(doc, filters)
        ]
        return results[offset:offset + limit]

    async def update(self, collection: str, id: str, updates: dict[str, Any]) -> bool:
        docs = self._collection(collection)
        if id not in docs:
            return False
        merged = {**docs[id], **copy.deepcopy(updates)}
        self._check_unique(collection, id, merged)
        merged[VERSION_FIELD] = docs[id].get(VERSION_FIELD, 0) + 1
        docs[id] = merged
        return True

    async def compare_and_set(
        self,
        collection: str,
        id: str,
        expected_version: int,
        updates: dict[str, Any],
    ) -> bool:
        # update() never suspends, so the check and the write cannot interleave
        doc = self._collection(collection).get(id)
        if doc is None or doc.get(VERSION_FIELD, 0) != expected_version:
            return False
        return await self.update(collection, id, updates)

    async def delete(self, collection: str, id: str) -> bool:
        return self._collection(collection).pop(id, None) is not None

    async def delete_where(self, collection: str, filters: dict[str, Any]) -> int:
        docs = self._collection(collection)
        doomed = [id for id, doc in docs.items() if _matches(doc, filters)]
        for id in doomed:
            del docs[id]
        return len(doomed)

    async def ensure_unique(self, collection: str, field: str) -> None:
        self._unique.setdefault(collection, set()).add(field)


# =============================================================================
# Factory
# =============================================================================


def create_local_storage() -> StorageProvider:
    """Create a StorageProvider with the in-memory implementation."""
    return StorageProvider(metadata=InMemoryMetadataStorage())
