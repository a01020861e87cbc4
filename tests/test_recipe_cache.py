"""Tests for the URL-keyed recipe cache."""
from datetime import datetime, timedelta, timezone

import pytest

from recipe_acquisition.adapters.document_store import MemoryDocumentStore
from recipe_acquisition.layers.recipe_cache import CACHE_COLLECTION, RecipeCache
from recipe_acquisition.models.recipe import CacheProvider, ScrapedRecipe
from recipe_acquisition.utils.urls import cache_key_for_url

URL = "https://example.com/recipes/stew"
T0 = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class BrokenStore(MemoryDocumentStore):

    async def get(self, collection, doc_id):
        raise ConnectionError("store offline")

    async def put(self, collection, doc_id, data):
        raise ConnectionError("store offline")


@pytest.fixture
def cache(store):
    return RecipeCache(store)


@pytest.fixture
def stew():
    return ScrapedRecipe(
        title="Beef Stew",
        ingredients=["1 lb beef", "3 carrots"],
        instructions=["Brown the beef.", "Simmer for two hours."],
        servings=4,
        source_url=URL,
    )


class TestRecipeCache:

    @pytest.mark.asyncio
    async def test_miss(self, cache):
        assert await cache.get(URL) is None

    @pytest.mark.asyncio
    async def test_save_then_get(self, cache, stew):
        await cache.save(URL, stew, now=T0)
        cached = await cache.get(URL, now=T0 + timedelta(days=1))
        assert cached.title == "Beef Stew"
        assert cached.ingredients == stew.ingredients
        assert cached.source_url == URL

    @pytest.mark.asyncio
    async def test_url_variants_share_an_entry(self, cache, stew):
        await cache.save(URL, stew, now=T0)
        variant = "https://EXAMPLE.com/recipes/stew/?utm_source=feed#comments"
        cached = await cache.get(variant, now=T0)
        assert cached is not None
        assert cached.source_url == variant

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, cache, stew):
        await cache.save(URL, stew, now=T0)
        assert await cache.get(URL, now=T0 + timedelta(days=29)) is not None
        assert await cache.get(URL, now=T0 + timedelta(days=30)) is None

    @pytest.mark.asyncio
    async def test_stale_entry_is_not_deleted(self, cache, store, stew):
        await cache.save(URL, stew, now=T0)
        await cache.get(URL, now=T0 + timedelta(days=45))
        assert await store.get(CACHE_COLLECTION, cache_key_for_url(URL)) is not None

    @pytest.mark.asyncio
    async def test_last_write_wins(self, cache, store, stew):
        await cache.save(URL, stew, now=T0)
        await cache.save(URL, stew.model_copy(update={"title": "Better Stew"}), CacheProvider.AI, now=T0)
        document = await store.get(CACHE_COLLECTION, cache_key_for_url(URL))
        assert document.data["title"] == "Better Stew"
        assert document.data["provider"] == "ai"
        assert document.data["normalized_url"] == URL

    @pytest.mark.asyncio
    async def test_store_failures_are_swallowed(self, stew):
        cache = RecipeCache(BrokenStore())
        await cache.save(URL, stew)
        assert await cache.get(URL) is None
