"""Tests for the in-memory document store's versioned writes."""
import pytest

from recipe_acquisition.adapters.document_store import MemoryDocumentStore, create_document_store
from recipe_acquisition.config import config


class TestMemoryDocumentStore:

    @pytest.mark.asyncio
    async def test_put_bumps_version(self, store):
        await store.put("things", "a", {"n": 1})
        await store.put("things", "a", {"n": 2})
        document = await store.get("things", "a")
        assert document.data == {"n": 2}
        assert document.version == 2

    @pytest.mark.asyncio
    async def test_create_only_once(self, store):
        assert await store.compare_and_set("things", "a", {"n": 1}, None)
        assert not await store.compare_and_set("things", "a", {"n": 2}, None)
        assert (await store.get("things", "a")).data == {"n": 1}

    @pytest.mark.asyncio
    async def test_stale_version_is_rejected(self, store):
        await store.compare_and_set("things", "a", {"n": 1}, None)
        document = await store.get("things", "a")
        assert await store.compare_and_set("things", "a", {"n": 2}, document.version)
        assert not await store.compare_and_set("things", "a", {"n": 3}, document.version)
        assert (await store.get("things", "a")).data == {"n": 2}

    @pytest.mark.asyncio
    async def test_reads_are_copies(self, store):
        await store.put("things", "a", {"items": [1]})
        document = await store.get("things", "a")
        document.data["items"].append(2)
        assert (await store.get("things", "a")).data == {"items": [1]}

    def test_memory_backend_by_default(self, monkeypatch):
        monkeypatch.setattr(config, "STORE_BACKEND", "memory")
        assert isinstance(create_document_store(), MemoryDocumentStore)
