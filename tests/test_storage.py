"""Tests for the in-memory document store and the credential store on top of it."""

from datetime import timedelta

import pytest

from clubhouse.auth import CredentialStore
from clubhouse.core.models import Principal
from clubhouse.core.utils import utc_now
from clubhouse.errors import ConflictError
from clubhouse.storage import (
    ConcurrentUpdateError,
    DuplicateDocumentError,
    InMemoryMetadataStorage,
)


@pytest.fixture
def metadata(storage):
    return storage.metadata


class InterferingStorage(InMemoryMetadataStorage):
    """Simulates another writer landing between every read and write."""

    def __init__(self, interfere_times: int):
        super().__init__()
        self.interfere_times = interfere_times

    async def compare_and_set(self, collection, id, expected_version, updates):
        if self.interfere_times > 0:
            self.interfere_times -= 1
            await self.update(collection, id, {"touched_by": "someone-else"})
        return await super().compare_and_set(collection, id, expected_version, updates)


# =============================================================================
# InMemoryMetadataStorage
# =============================================================================


class TestInMemoryStorage:
    @pytest.mark.asyncio
    async def test_reads_are_copies(self, metadata):
        await metadata.save("things", "t1", {"id": "t1", "tags": ["a"]})

        doc = await metadata.get("things", "t1")
        doc["tags"].append("b")

        assert (await metadata.get("things", "t1"))["tags"] == ["a"]

    @pytest.mark.asyncio
    async def test_version_bumps_on_write(self, metadata):
        await metadata.insert("things", "t1", {"id": "t1"})
        assert (await metadata.get("things", "t1"))["_version"] == 1

        await metadata.update("things", "t1", {"x": 1})
        assert (await metadata.get("things", "t1"))["_version"] == 2

    @pytest.mark.asyncio
    async def test_insert_duplicate_id(self, metadata):
        await metadata.insert("things", "t1", {"id": "t1"})

        with pytest.raises(DuplicateDocumentError):
            await metadata.insert("things", "t1", {"id": "t1"})

    @pytest.mark.asyncio
    async def test_unique_field(self, metadata):
        await metadata.insert("users", "u1", {"id": "u1", "email": "a@example.com"})

        with pytest.raises(DuplicateDocumentError) as exc:
            await metadata.insert("users", "u2", {"id": "u2", "email": "a@example.com"})
        assert exc.value.field == "email"

        await metadata.insert("users", "u3", {"id": "u3", "email": "b@example.com"})
        with pytest.raises(DuplicateDocumentError):
            await metadata.update("users", "u3", {"email": "a@example.com"})

    @pytest.mark.asyncio
    async def test_query_list_membership_and_paging(self, metadata):
        for i in range(5):
            clubs = ["c1"] if i % 2 == 0 else ["c2"]
            await metadata.insert("staff", f"s{i}", {"id": f"s{i}", "clubs": clubs})

        in_c1 = await metadata.query("staff", {"clubs": "c1"})
        page = await metadata.query("staff", limit=2, offset=1)

        assert [d["id"] for d in in_c1] == ["s0", "s2", "s4"]
        assert [d["id"] for d in page] == ["s1", "s2"]

    @pytest.mark.asyncio
    async def test_compare_and_set(self, metadata):
        await metadata.insert("things", "t1", {"id": "t1", "n": 0})

        assert await metadata.compare_and_set("things", "t1", 1, {"n": 1})
        assert not await metadata.compare_and_set("things", "t1", 1, {"n": 2})
        assert not await metadata.compare_and_set("things", "missing", 1, {"n": 2})
        assert (await metadata.get("things", "t1"))["n"] == 1

    @pytest.mark.asyncio
    async def test_delete_where(self, metadata):
        await metadata.insert("sessions", "a", {"id": "a", "token": "x"})
        await metadata.insert("sessions", "b", {"id": "b", "token": "y"})

        assert await metadata.delete_where("sessions", {"token": "x"}) == 1
        assert await metadata.get("sessions", "a") is None
        assert await metadata.get("sessions", "b") is not None


class TestAtomicUpdate:
    @pytest.mark.asyncio
    async def test_retries_after_conflict(self):
        metadata = InterferingStorage(interfere_times=2)
        await metadata.insert("counters", "c", {"id": "c", "n": 0})

        result = await metadata.atomic_update("counters", "c", lambda doc: {"n": doc["n"] + 1})

        assert result["n"] == 1
        assert (await metadata.get("counters", "c"))["touched_by"] == "someone-else"

    @pytest.mark.asyncio
    async def test_gives_up_under_contention(self):
        metadata = InterferingStorage(interfere_times=100)
        await metadata.insert("counters", "c", {"id": "c", "n": 0})

        with pytest.raises(ConcurrentUpdateError):
            await metadata.atomic_update("counters", "c", lambda doc: {"n": 1}, max_attempts=3)

    @pytest.mark.asyncio
    async def test_missing_document(self, metadata):
        assert await metadata.atomic_update("counters", "nope", lambda doc: {"n": 1}) is None

    @pytest.mark.asyncio
    async def test_no_change_skips_write(self, metadata):
        await metadata.insert("counters", "c", {"id": "c", "n": 0})

        await metadata.atomic_update("counters", "c", lambda doc: None)

        assert (await metadata.get("counters", "c"))["_version"] == 1


# =============================================================================
# CredentialStore
# =============================================================================


class TestCredentialStore:
    @pytest.mark.asyncio
    async def test_email_normalized_and_unique(self, credentials):
        await credentials.create_principal(Principal(email="  Mixed@Example.COM "))

        found = await credentials.find_principal_by_email("mixed@example.com")
        assert found is not None
        with pytest.raises(ConflictError):
            await credentials.create_principal(Principal(email="mixed@example.com"))

    @pytest.mark.asyncio
    async def test_find_by_provider(self, credentials):
        created = await credentials.create_principal(
            Principal(email="gh@example.com", provider="github", provider_id="42")
        )

        found = await credentials.find_principal_by_provider("github", "42")
        assert found.id == created.id
        assert await credentials.find_principal_by_provider("google", "42") is None

    @pytest.mark.asyncio
    async def test_expired_session_purged_on_lookup(self, metadata):
        now = utc_now()
        clock = lambda: now  # noqa: E731
        store = CredentialStore(metadata, clock=clock)
        session = await store.create_session("user_1", timedelta(minutes=5))

        assert (await store.resolve_session(session.token)).user_id == "user_1"

        now += timedelta(minutes=6)
        assert await store.resolve_session(session.token) is None
        assert await metadata.get("sessions", session.id) is None

    @pytest.mark.asyncio
    async def test_update_missing_principal(self, credentials):
        assert await credentials.update_principal("user_nope", {"first_name": "X"}) is None
