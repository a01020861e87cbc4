"""Tests for the model fallback cascade."""
import pytest
from bs4 import BeautifulSoup

from recipe_acquisition.errors import ModelResponseError, ModelTimeoutError
from recipe_acquisition.layers.ai_fallback import (
    AIExtractionHints,
    AIFallbackCascade,
    FallbackLevel,
    calculate_ai_confidence,
    select_fallback_level,
    validate_extraction_response,
)
from recipe_acquisition.models.recipe import ScrapedRecipe
from tests.conftest import FakeClaudeClient

URL = "https://example.com/recipe-a"

SALAD_REPLY = {
    "title": "Quick Garden Salad",
    "ingredients": ["1 head lettuce", "2 tomatoes", "2 tbsp olive oil"],
    "instructions": ["Chop the lettuce and tomatoes", "Dress with olive oil"],
}


class TestLevelSelection:

    @pytest.mark.parametrize("confidence, has_title, has_recipe, expected", [
        (0.25, True, True, FallbackLevel.FAST),
        (0.25, False, True, FallbackLevel.DETAILED),
        (0.10, True, True, FallbackLevel.DETAILED),
        (0.01, True, True, FallbackLevel.AGGRESSIVE),
        (0.10, False, False, FallbackLevel.AGGRESSIVE),
    ])
    def test_levels(self, confidence, has_title, has_recipe, expected):
        assert select_fallback_level(confidence, has_title, has_recipe) == expected


class TestResponseValidation:

    def test_accepts_minimal_reply(self):
        assert validate_extraction_response({"title": "Soup"}) == {"title": "Soup"}

    @pytest.mark.parametrize("data, message", [
        (["Soup"], "expected a JSON object"),
        ({"title": 5}, "invalid title"),
        ({"title": "Soup", "ingredients": "water"}, "invalid ingredients"),
        ({"title": "Soup", "instructions": {"1": "Boil"}}, "invalid instructions"),
    ])
    def test_rejects_bad_shapes(self, data, message):
        with pytest.raises(ModelResponseError, match=message):
            validate_extraction_response(data)

    def test_ai_confidence_is_capped(self):
        recipe = ScrapedRecipe(
            title="Garden Salad",
            ingredients=["lettuce"],
            instructions=["Toss."],
            image="https://example.com/salad.jpg",
            prep_time="5min",
            servings=2,
        )
        assert calculate_ai_confidence(recipe) == 0.95
        assert calculate_ai_confidence(ScrapedRecipe(title="Salad")) == pytest.approx(0.7)


class TestCascade:

    @pytest.mark.asyncio
    async def test_fast_level_is_seeded_with_hints(self, sparse_page):
        claude = FakeClaudeClient([SALAD_REPLY])
        hints = AIExtractionHints(title="Quick Garden Salad", ingredients=["1 head lettuce"])
        result = await AIFallbackCascade(claude).extract_recipe_with_ai(URL, sparse_page, hints, FallbackLevel.FAST)

        assert result.method == "ai-minimal"
        assert result.confidence == 0.5
        assert result.recipe.title == "Quick Garden Salad"
        assert result.recipe.source_url == URL
        assert "Ingredients found so far: 1 head lettuce" in claude.calls[0]["prompt"]
        assert claude.calls[0]["max_tokens"] == 1500

    @pytest.mark.asyncio
    async def test_detailed_level(self, sparse_page):
        claude = FakeClaudeClient(["```json\n" + '{"title": "Salad", "ingredients": ["lettuce"],'
                                   ' "instructions": ["Toss",], "servings": 2}' + "\n```"])
        result = await AIFallbackCascade(claude).extract_recipe_with_ai(URL, sparse_page)

        assert result.method == "ai-detailed"
        assert result.level == FallbackLevel.DETAILED
        assert result.recipe.instructions == ["Toss."]
        assert result.recipe.servings == 2
        assert result.confidence == pytest.approx(0.92)

    @pytest.mark.asyncio
    async def test_unparseable_detailed_reply_falls_back_to_fast(self, sparse_page):
        claude = FakeClaudeClient(["Sorry, I can't help with that.", SALAD_REPLY])
        result = await AIFallbackCascade(claude).extract_recipe_with_ai(URL, sparse_page, level=FallbackLevel.DETAILED)

        assert result.method == "ai-minimal"
        assert result.level == FallbackLevel.FAST
        assert [call["max_tokens"] for call in claude.calls] == [3000, 1500]

    @pytest.mark.asyncio
    async def test_fallback_happens_once(self, sparse_page):
        claude = FakeClaudeClient(["not json", "still not json", SALAD_REPLY])
        with pytest.raises(ModelResponseError, match="AI extraction failed"):
            await AIFallbackCascade(claude).extract_recipe_with_ai(URL, sparse_page, level=FallbackLevel.AGGRESSIVE)
        assert len(claude.calls) == 2

    @pytest.mark.asyncio
    async def test_fast_failure_is_not_retried(self, sparse_page):
        claude = FakeClaudeClient([{"recipe": "missing title"}, SALAD_REPLY])
        with pytest.raises(ModelResponseError):
            await AIFallbackCascade(claude).extract_recipe_with_ai(URL, sparse_page, level=FallbackLevel.FAST)
        assert len(claude.calls) == 1

    @pytest.mark.asyncio
    async def test_timeout_propagates_without_retry(self, sparse_page):
        claude = FakeClaudeClient([ModelTimeoutError("AI request timed out"), SALAD_REPLY])
        with pytest.raises(ModelTimeoutError):
            await AIFallbackCascade(claude).extract_recipe_with_ai(URL, sparse_page)
        assert len(claude.calls) == 1

    @pytest.mark.asyncio
    async def test_aggressive_fills_gaps_from_markup(self):
        html = """<html><head><meta property="og:image" content="/img/salad-bowl.jpg"></head><body>
            <span class="prep-time">Prep 20 minutes</span>
            <p>Lots of chatter about salads.</p></body></html>"""
        claude = FakeClaudeClient([SALAD_REPLY])
        result = await AIFallbackCascade(claude).extract_recipe_with_ai(URL, html, level=FallbackLevel.AGGRESSIVE)

        assert result.method == "ai-aggressive"
        assert result.recipe.image == "https://example.com/img/salad-bowl.jpg"
        assert result.recipe.prep_time == "20min"
        assert claude.calls[0]["max_tokens"] == 4000

    def test_content_analysis_prep_time_is_normalized(self):
        soup = BeautifulSoup('<div class="recipe-prep-time">Prep: 1 hour 15 mins</div>', "lxml")
        recipe = AIFallbackCascade(FakeClaudeClient()).enhance_with_content_analysis(ScrapedRecipe(title="Stew"), soup, URL)
        assert recipe.prep_time == "1h 15min"


class TestWithoutModel:

    @pytest.mark.asyncio
    async def test_basic_css_extraction(self, sparse_page):
        claude = FakeClaudeClient(available=False)
        result = await AIFallbackCascade(claude).extract_recipe_with_ai(URL, sparse_page)

        assert result.method == "basic-no-ai"
        assert result.recipe.title == "Quick Garden Salad"
        assert result.recipe.ingredients == ["1 head lettuce", "2 tomatoes"]
        assert len(result.recipe.instructions) == 2
        assert result.confidence == pytest.approx(0.65)
        assert claude.calls == []

    @pytest.mark.asyncio
    async def test_confidence_cap(self):
        html = "<h1>Big Family Lasagna</h1><ul class='ingredients'>" + "".join(
            f"<li>ingredient {i}</li>" for i in range(6)
        ) + "</ul><ol class='instructions'>" + "".join(f"<li>Do step number {i}</li>" for i in range(4)) + "</ol>"
        result = await AIFallbackCascade(FakeClaudeClient(available=False)).extract_recipe_with_ai(URL, html)
        assert result.confidence == 0.7

    @pytest.mark.asyncio
    async def test_hints_fill_empty_lists(self):
        hints = AIExtractionHints(title="Toast", ingredients=["bread"], partial_instructions=["Toast the bread."])
        result = await AIFallbackCascade(FakeClaudeClient(available=False)).extract_recipe_with_ai(
            URL, "<p>nothing useful</p>", hints
        )
        assert result.recipe.title == "Toast"
        assert result.recipe.ingredients == ["bread"]
        assert result.recipe.instructions == ["Toast the bread."]
