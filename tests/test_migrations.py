"""Tests for the legacy-name backfill."""

import pytest

from clubhouse.core.models import Principal
from clubhouse.services.migrations import backfill_split_names
from clubhouse.storage import Collections


async def _legacy(storage, id, **fields):
    doc = {"id": id, "email": f"{id}@example.com", "first_name": "", "last_name": "", **fields}
    await storage.metadata.insert(Collections.USERS, id, doc)


class TestBackfillSplitNames:
    @pytest.mark.asyncio
    async def test_splits_on_first_space(self, storage):
        await _legacy(storage, "u1", name="Mary Ann Smith")
        await _legacy(storage, "u2", name="Cher")

        assert await backfill_split_names(storage) == 2

        mary = await storage.metadata.get(Collections.USERS, "u1")
        cher = await storage.metadata.get(Collections.USERS, "u2")
        assert (mary["first_name"], mary["last_name"]) == ("Mary", "Ann Smith")
        assert (cher["first_name"], cher["last_name"]) == ("Cher", "")

    @pytest.mark.asyncio
    async def test_leaves_split_and_nameless_principals(self, storage):
        await _legacy(storage, "u1", name="Old Name", first_name="New")
        await _legacy(storage, "u2", name="   ")
        await _legacy(storage, "u3")

        assert await backfill_split_names(storage) == 0
        assert (await storage.metadata.get(Collections.USERS, "u1"))["first_name"] == "New"

    @pytest.mark.asyncio
    async def test_idempotent_across_batches(self, storage):
        for i in range(5):
            await _legacy(storage, f"u{i}", name=f"Person Number{i}")

        assert await backfill_split_names(storage, batch_size=2) == 5
        assert await backfill_split_names(storage, batch_size=2) == 0

        doc = await storage.metadata.get(Collections.USERS, "u4")
        assert doc["last_name"] == "Number4"

    @pytest.mark.asyncio
    async def test_documents_keyed_only_by_store_id(self, storage):
        await storage.metadata.insert(
            Collections.USERS, "legacy1", {"email": "old@example.com", "name": "Mary Smith"}
        )

        assert await backfill_split_names(storage) == 1

        doc = await storage.metadata.get(Collections.USERS, "legacy1")
        assert (doc["first_name"], doc["last_name"]) == ("Mary", "Smith")


class TestDisplayName:
    def test_built_from_first_and_last(self):
        principal = Principal(email="mary@example.com", first_name="Mary", last_name="Smith")

        assert principal.display_name == "Mary Smith"

    def test_legacy_name_is_not_consulted(self):
        principal = Principal(email="old@example.com", name="Mary Smith")

        assert principal.display_name == "old@example.com"
