"""
Storage abstraction layer.

All persistence goes through these interfaces. This allows swapping
implementations (in-memory -> MongoDB) without changing application code.

Every document carries a `_version` counter that is bumped on each write.
`compare_and_set` is the single-document conditional write that
`atomic_update` builds on; roster changes only ever go through it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

VERSION_FIELD = "_version"


# =============================================================================
# Errors
# =============================================================================


class StorageError(Exception):
    """The store failed (connection, timeout, driver error)."""
    pass


class DuplicateDocumentError(StorageError):
    """A write would duplicate an id or a unique field."""

    def __init__(self, collection: str, field: str, value: Any = None):
        self.collection = collection
        self.field = field
        self.value = value
        super().__init__(f"Duplicate {field} in {collection}")


class ConcurrentUpdateError(StorageError):
    """A conditional update kept losing to concurrent writers."""
    pass


# =============================================================================
# Storage Interfaces
# =============================================================================


class MetadataStorage(ABC):
    """
    Storage for structured documents (users, sessions, classes).

    Production Implementation: MongoDB
    Local Implementation: In-memory
    """

    @abstractmethod
    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        """Save (upsert) a document to a collection."""
        pass

    @abstractmethod
    async def insert(self, collection: str, id: str, data: dict[str, Any]) -> None:
        """
        Insert a new document.

        Raises:
            DuplicateDocumentError: id or a unique field already taken
        """
        pass

    @abstractmethod
    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        """Get a document by ID."""
        pass

    @abstractmethod
    async def find_one(self, collection: str, filters: dict[str, Any]) -> dict[str, Any] | None:
        """Get the first document matching equality filters."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """
        Query documents with optional equality filters.

        A scalar filter value matches a list field when the list contains it.
        """
        pass

    @abstractmethod
    async def update(self, collection: str, id: str, updates: dict[str, Any]) -> bool:
        """Partial update of a document."""
        pass

    @abstractmethod
    async def compare_and_set(
        self,
        collection: str,
        id: str,
        expected_version: int,
        updates: dict[str, Any],
    ) -> bool:
        """
        Apply `updates` only if the document is still at `expected_version`.

        Returns False when the document is missing or was modified meanwhile.
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, id: str) -> bool:
        """Delete a document."""
        pass

    @abstractmethod
    async def delete_where(self, collection: str, filters: dict[str, Any]) -> int:
        """Delete every document matching the filters, return how many."""
        pass

    @abstractmethod
    async def ensure_unique(self, collection: str, field: str) -> None:
        """Declare a field whose values must be unique within a collection."""
        pass

    async def connect(self) -> None:
        """Open connections. Failures here are fatal at startup."""
        pass

    async def close(self) -> None:
        """Release connections."""
        pass

    async def atomic_update(
        self,
        collection: str,
        id: str,
        mutate: Callable[[dict[str, Any]], dict[str, Any] | None],
        max_attempts: int = 5,
    ) -> dict[str, Any] | None:
        """
        Read, compute updates with `mutate`, and write them conditionally.

        `mutate` receives the current document and returns the fields to
        change (or None/{} for no change). It may raise to abort. It must be
        pure: it is re-run against a fresh read after a version conflict.

        Returns the updated document, or None if it does not exist.
        """
        for attempt in range(1, max_attempts + 1):
            doc = await self.get(collection, id)
            if doc is None:
                return None

            updates = mutate(dict(doc))
            if not updates:
                return doc

            version = doc.get(VERSION_FIELD, 0)
            if await self.compare_and_set(collection, id, version, updates):
                return {**doc, **updates, VERSION_FIELD: version + 1}

            logger.warning(
                f"Version conflict on {collection}/{id} (attempt {attempt}/{max_attempts})"
            )

        raise ConcurrentUpdateError(f"Could not update {collection}/{id}: too much contention")


# =============================================================================
# Storage Provider (dependency injection container)
# =============================================================================


class StorageProvider(BaseModel):
    """
    Container for storage backends.

    Initialize once at app startup with appropriate implementations.
    Services receive this and use the interfaces without knowing
    the underlying implementation.
    """

    model_config = {"arbitrary_types_allowed": True}

    metadata: MetadataStorage

    async def connect(self) -> None:
        await self.metadata.connect()
        for collection, field in Collections.UNIQUE_FIELDS:
            await self.metadata.ensure_unique(collection, field)

    async def close(self) -> None:
        await self.metadata.close()


# =============================================================================
# Collection Names (for MetadataStorage)
# =============================================================================


class Collections:
    """Standard collection names."""

    USERS = "users"
    SESSIONS = "sessions"
    REFRESH_TOKENS = "refresh_tokens"
    CLASSES = "classes"

    UNIQUE_FIELDS = (
        (USERS, "email"),
        (SESSIONS, "token"),
        (REFRESH_TOKENS, "token"),
    )
