"""
MongoDB storage implementation.

Uses motor (async driver). Every operation is bounded by the client-side
operation timeout (`timeoutMS`); driver errors surface as StorageError so
request handlers can turn them into a 500 without crashing the process.
"""

from __future__ import annotations

import logging
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from clubhouse.storage.base import (
    VERSION_FIELD,
    DuplicateDocumentError,
    MetadataStorage,
    StorageError,
    StorageProvider,
)

logger = logging.getLogger(__name__)


def _duplicate_from(collection: str, error: DuplicateKeyError) -> DuplicateDocumentError:
    key_value = (error.details or {}).get("keyValue") or {}
    field = next(iter(key_value), "_id")
    return DuplicateDocumentError(collection, field, key_value.get(field))


def _version_filter(id: str, expected_version: int) -> dict[str, Any]:
    if expected_version == 0:
        return {
            "_id": id,
            "$or": [{VERSION_FIELD: 0}, {VERSION_FIELD: {"$exists": False}}],
        }
    return {"_id": id, VERSION_FIELD: expected_version}


def _without_meta(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in ("_id", VERSION_FIELD)}


class MongoMetadataStorage(MetadataStorage):
    """Document storage backed by a MongoDB database."""

    def __init__(self, url: str, database: str, timeout_seconds: float = 10.0):
        timeout_ms = int(timeout_seconds * 1000)
        self._client = AsyncIOMotorClient(
            url,
            tz_aware=True,
            timeoutMS=timeout_ms,
            serverSelectionTimeoutMS=timeout_ms,
        )
        self._db = self._client[database]
        self._database_name = database

    async def connect(self) -> None:
        # Let connection failures propagate: startup must abort
        await self._client.admin.command("ping")
        logger.info(f"Connected to MongoDB database '{self._database_name}'")

    async def close(self) -> None:
        self._client.close()
        logger.info("MongoDB connection closed")

    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        try:
            await self._db[collection].update_one(
                {"_id": id},
                {"$set": _without_meta(data), "$inc": {VERSION_FIELD: 1}},
                upsert=True,
            )
        except DuplicateKeyError as e:
            raise _duplicate_from(collection, e) from e
        except PyMongoError as e:
            raise StorageError(f"save {collection}/{id} failed: {e}") from e

    async def insert(self, collection: str, id: str, data: dict[str, Any]) -> None:
        document = {**_without_meta(data), "_id": id, VERSION_FIELD: 1}
        try:
            await self._db[collection].insert_one(document)
        except DuplicateKeyError as e:
            raise _duplicate_from(collection, e) from e
        except PyMongoError as e:
            raise StorageError(f"insert {collection}/{id} failed: {e}") from e

    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        try:
            return await self._db[collection].find_one({"_id": id})
        except PyMongoError as e:
            raise StorageError(f"get {collection}/{id} failed: {e}") from e

    async def find_one(self, collection: str, filters: dict[str, Any]) -> dict[str, Any] | None:
        try:
            return await self._db[collection].find_one(filters)
        except PyMongoError as e:
            raise StorageError(f"find_one on {collection} failed: {e}") from e

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        try:
            cursor = self._db[collection].find(filters or {}).skip(offset).limit(limit)
            return await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise StorageError(f"query on {collection} failed: {e}") from e

    async def update(self, collection: str, id: str, updates: dict[str, Any]) -> bool:
        try:
            result = await self._db[collection].update_one(
                {"_id": id},
                {"$set": _without_meta(updates), "$inc": {VERSION_FIELD: 1}},
            )
        except DuplicateKeyError as e:
            raise _duplicate_from(collection, e) from e
        except PyMongoError as e:
            raise StorageError(f"update {collection}/{id} failed: {e}") from e
        return result.matched_count > 0

    async def compare_and_set(
        self,
        collection: str,
        id: str,
        expected_version: int,
        updates: dict[str, Any],
    ) -> bool:
        try:
            result = await self._db[collection].update_one(
                _version_filter(id, expected_version),
                {"$set": _without_meta(updates), "$inc": {VERSION_FIELD: 1}},
            )
        except DuplicateKeyError as e:
            raise _duplicate_from(collection, e) from e
        except PyMongoError as e:
            raise StorageError(f"conditional update {collection}/{id} failed: {e}") from e
        return result.modified_count == 1

    async def delete(self, collection: str, id: str) -> bool:
        try:
            result = await self._db[collection].delete_one({"_id": id})
        except PyMongoError as e:
            raise StorageError(f"delete {collection}/{id} failed: {e}") from e
        return result.deleted_count > 0

    async def delete_where(self, collection: str, filters: dict[str, Any]) -> int:
        try:
            result = await self._db[collection].delete_many(filters)
        except PyMongoError as e:
            raise StorageError(f"delete_many on {collection} failed: {e}") from e
        return result.deleted_count

    async def ensure_unique(self, collection: str, field: str) -> None:
        try:
            await self._db[collection].create_index(field, unique=True, sparse=True)
        except PyMongoError as e:
            raise StorageError(f"index on {collection}.{field} failed: {e}") from e


def create_mongo_storage(url: str, database: str, timeout_seconds: float = 10.0) -> StorageProvider:
    """Create a StorageProvider backed by MongoDB."""
    return StorageProvider(metadata=MongoMetadataStorage(url, database, timeout_seconds))
