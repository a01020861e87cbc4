"""End-to-end import scenarios over a fake web and a scripted model."""
import pytest

from recipe_acquisition.config import config
from recipe_acquisition.errors import (
    AIUnavailableError,
    FetchError,
    InvalidUrlError,
    ModelResponseError,
    ModelTimeoutError,
    NotARecipeError,
    RateLimitExceededError,
    RecipeExtractionError,
)
from recipe_acquisition.layers.ingestion import RecipeImportPipeline
from recipe_acquisition.layers.rate_limiter import RollingWindowRateLimiter
from recipe_acquisition.layers.recipe_cache import CACHE_COLLECTION
from recipe_acquisition.models.limits import RateLimitCeilings
from recipe_acquisition.models.recipe import ImportStatus, ScrapedRecipe
from recipe_acquisition.utils.urls import cache_key_for_url
from tests.conftest import FakeClaudeClient, jsonld_page

URL = "https://example.com/recipes/cookies"
IMAGE_URL = "https://example.com/images/cookies-hero.jpg"

SALAD_REPLY = {
    "title": "Quick Garden Salad",
    "ingredients": ["1 head lettuce", "2 tomatoes", "2 tbsp olive oil", "Salt"],
    "instructions": ["Chop the lettuce and tomatoes", "Whisk oil and salt", "Toss everything together"],
}


@pytest.fixture
def no_ai_pipeline(store, request_service):
    return RecipeImportPipeline(
        store=store,
        request_service=request_service,
        claude_client=FakeClaudeClient(available=False),
    )


async def cache_document(store, url=URL):
    return await store.get(CACHE_COLLECTION, cache_key_for_url(url))


class TestStructuredDataImport:

    @pytest.mark.asyncio
    async def test_jsonld_page_imports_complete_and_is_cached(self, pipeline, fake_web, fake_claude, store, cookie_recipe_node):
        fake_web.add_page(URL, jsonld_page({**cookie_recipe_node, "image": IMAGE_URL}))
        fake_web.add_image(IMAGE_URL)

        result = await pipeline.import_recipe(URL)

        assert result.status == ImportStatus.COMPLETE
        assert result.method == "json-ld"
        assert result.confidence >= 0.8
        assert result.recipe.image == IMAGE_URL
        assert result.recipe.source_url == URL
        assert result.issues == []
        assert fake_claude.calls == []
        assert (await cache_document(store)).data["provider"] == "scrape"

    @pytest.mark.asyncio
    async def test_second_import_is_served_from_cache(self, pipeline, fake_web, fake_claude, cookie_recipe_node):
        fake_web.add_page(URL, jsonld_page({**cookie_recipe_node, "image": IMAGE_URL}))
        fake_web.add_image(IMAGE_URL)
        first = await pipeline.import_recipe(URL)
        requests_after_first = len(fake_web.requests)

        second = await pipeline.import_recipe(URL + "?utm_source=newsletter")

        assert second.method == "cache"
        assert second.confidence == 1.0
        assert second.status == ImportStatus.COMPLETE
        assert second.recipe.title == first.recipe.title
        assert second.recipe.source_url == URL + "?utm_source=newsletter"
        assert len(fake_web.requests) == requests_after_first
        assert fake_claude.calls == []

    @pytest.mark.asyncio
    async def test_cache_hit_without_image_resolves_one(self, pipeline, fake_web):
        await pipeline.cache.save(URL, ScrapedRecipe(title="Cookies", ingredients=["flour"], instructions=["Bake."]))
        fake_web.add_page(URL, f'<html><head><meta property="og:image" content="{IMAGE_URL}"></head></html>')
        fake_web.add_image(IMAGE_URL)

        result = await pipeline.import_recipe(URL)

        assert result.method == "cache"
        assert result.recipe.image == IMAGE_URL

    @pytest.mark.asyncio
    async def test_provided_html_skips_the_fetch(self, pipeline, fake_web, cookie_page):
        # The page itself would 404; only the image re-fetch touches the network
        result = await pipeline.import_recipe(URL, html=cookie_page)

        assert result.status == ImportStatus.COMPLETE
        assert result.method == "json-ld"
        assert fake_web.gets() == [URL]

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, pipeline):
        with pytest.raises(FetchError) as exc_info:
            await pipeline.import_recipe(URL)
        assert exc_info.value.message == "Recipe page not found"


class TestModelFallback:

    @pytest.mark.asyncio
    async def test_sparse_page_uses_model(self, store, request_service, fake_web, sparse_page):
        claude = FakeClaudeClient([SALAD_REPLY])
        pipeline = RecipeImportPipeline(store=store, request_service=request_service, claude_client=claude)
        fake_web.add_page(URL, sparse_page)

        result = await pipeline.import_recipe(URL)

        assert result.method == "ai-fallback"
        assert result.status == ImportStatus.COMPLETE
        assert result.recipe.title == "Quick Garden Salad"
        assert len(result.recipe.ingredients) == 4
        assert "Ingredients found so far" in claude.calls[0]["prompt"]
        assert (await cache_document(store)).data["provider"] == "ai"

    @pytest.mark.asyncio
    async def test_unavailable_model_returns_scraped_draft(self, store, request_service, fake_web, sparse_page):
        claude = FakeClaudeClient([AIUnavailableError("AI service not available")])
        pipeline = RecipeImportPipeline(store=store, request_service=request_service, claude_client=claude)
        fake_web.add_page(URL, sparse_page)

        result = await pipeline.import_recipe(URL)

        assert result.method == "css-selectors"
        assert result.confidence == pytest.approx(0.225)
        assert result.recipe.title == "Quick Garden Salad"
        assert "AI fallback unavailable: AI service not available" in result.issues
        assert await cache_document(store) is None

    @pytest.mark.asyncio
    async def test_malformed_model_reply_fails_the_import(self, pipeline, fake_web, store, sparse_page):
        fake_web.add_page(URL, sparse_page)

        with pytest.raises(ModelResponseError):
            await pipeline.import_recipe(URL)
        assert await cache_document(store) is None

    @pytest.mark.asyncio
    async def test_model_timeout_fails_the_import(self, store, request_service, fake_web, sparse_page):
        claude = FakeClaudeClient([ModelTimeoutError("AI request timed out")])
        pipeline = RecipeImportPipeline(store=store, request_service=request_service, claude_client=claude)
        fake_web.add_page(URL, sparse_page)

        with pytest.raises(ModelTimeoutError):
            await pipeline.import_recipe(URL)
        assert await cache_document(store) is None

    @pytest.mark.asyncio
    async def test_title_only_page_is_not_a_recipe(self, store, request_service, fake_web, title_only_page):
        claude = FakeClaudeClient([{"title": "About Our Family Kitchen", "ingredients": [], "instructions": []}])
        pipeline = RecipeImportPipeline(store=store, request_service=request_service, claude_client=claude)
        fake_web.add_page(URL, title_only_page)

        result = await pipeline.import_recipe(URL)

        assert result.status == ImportStatus.NOT_RECIPE
        assert "missing_steps" in result.issues
        assert "missing_ingredients" in result.issues
        assert await cache_document(store) is None

    @pytest.mark.asyncio
    async def test_without_model_uses_basic_extraction(self, no_ai_pipeline, fake_web, store, sparse_page):
        fake_web.add_page(URL, sparse_page)

        result = await no_ai_pipeline.import_recipe(URL)

        assert result.method == "basic-no-ai"
        assert result.confidence <= 0.7
        assert result.status == ImportStatus.COMPLETE
        assert (await cache_document(store)).data["provider"] == "scrape"

    @pytest.mark.asyncio
    async def test_without_model_title_only_page_is_not_a_recipe(self, no_ai_pipeline, fake_web, store, title_only_page):
        fake_web.add_page(URL, title_only_page)

        result = await no_ai_pipeline.import_recipe(URL)

        assert result.status == ImportStatus.NOT_RECIPE
        assert await cache_document(store) is None


class TestImportGuards:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["", "not a url", "ftp://example.com/recipe", "https://"])
    async def test_invalid_url(self, pipeline, fake_web, url):
        with pytest.raises(InvalidUrlError):
            await pipeline.import_recipe(url)
        assert fake_web.requests == []

    @pytest.mark.asyncio
    async def test_import_quota(self, store, request_service, fake_web, cookie_page, monkeypatch):
        monkeypatch.setattr(config, "IMPORT_RATE_LIMIT_ENABLED", True)
        ceilings = RateLimitCeilings(imports_per_hour=1, conversions_per_hour=1, daily_imports=5, daily_conversions=5)
        pipeline = RecipeImportPipeline(
            store=store,
            request_service=request_service,
            claude_client=FakeClaudeClient(),
            rate_limiter=RollingWindowRateLimiter(store, ceilings=ceilings),
        )

        await pipeline.import_recipe(URL, html=cookie_page, user_id="user-1")
        with pytest.raises(RateLimitExceededError):
            await pipeline.import_recipe(URL, html=cookie_page, user_id="user-1")

    @pytest.mark.asyncio
    async def test_quota_disabled_by_default(self, pipeline, cookie_page):
        for _ in range(5):
            await pipeline.import_recipe(URL, html=cookie_page, user_id="user-1")


class TestStrictExtraction:

    @pytest.mark.asyncio
    async def test_structured_page(self, pipeline, fake_web, store, cookie_page):
        fake_web.add_page(URL, cookie_page)

        recipe = await pipeline.extract_recipe(URL)

        assert recipe.title == "Chocolate Chip Cookies"
        assert len(recipe.ingredients) == 8
        assert await cache_document(store) is not None

    @pytest.mark.asyncio
    async def test_model_result_is_validated_and_cached(self, store, request_service, fake_web, sparse_page):
        claude = FakeClaudeClient([SALAD_REPLY])
        pipeline = RecipeImportPipeline(store=store, request_service=request_service, claude_client=claude)
        fake_web.add_page(URL, sparse_page)

        recipe = await pipeline.extract_recipe(URL)

        assert recipe.instructions[0] == "Chop the lettuce and tomatoes."
        assert (await cache_document(store)).data["provider"] == "ai"

    @pytest.mark.asyncio
    async def test_partial_data_raises(self, pipeline, fake_web, sparse_page):
        fake_web.add_page(URL, sparse_page)
        with pytest.raises(RecipeExtractionError, match="Partial recipe data found but incomplete"):
            await pipeline.extract_recipe(URL)

    @pytest.mark.asyncio
    async def test_nothing_found_raises(self, pipeline, fake_web):
        fake_web.add_page(URL, "<html><body><p>Hello there</p></body></html>")
        with pytest.raises(RecipeExtractionError, match="No recipe data found on this page and AI extraction failed"):
            await pipeline.extract_recipe(URL)

    @pytest.mark.asyncio
    async def test_page_without_recipe_content_is_rejected(self, store, request_service, fake_web, title_only_page):
        claude = FakeClaudeClient([{"title": "About Our Family Kitchen", "ingredients": [], "instructions": []}])
        pipeline = RecipeImportPipeline(store=store, request_service=request_service, claude_client=claude)
        fake_web.add_page(URL, title_only_page)

        with pytest.raises(NotARecipeError) as exc_info:
            await pipeline.extract_recipe(URL)
        assert exc_info.value.code == "not-recipe"
        assert await cache_document(store) is None

    @pytest.mark.asyncio
    async def test_timeout_is_an_extraction_error(self, store, request_service, fake_web):
        claude = FakeClaudeClient([ModelTimeoutError("AI request timed out")])
        pipeline = RecipeImportPipeline(store=store, request_service=request_service, claude_client=claude)
        fake_web.add_page(URL, "<html><body><p>Hello there</p></body></html>")
        with pytest.raises(RecipeExtractionError) as exc_info:
            await pipeline.extract_recipe(URL)
        assert isinstance(exc_info.value.__cause__, ModelTimeoutError)
