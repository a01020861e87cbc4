"""Tests for confidence scoring, draft classification and strict validation."""
import pytest

from recipe_acquisition.errors import RecipeValidationError
from recipe_acquisition.layers.validation import (
    calculate_confidence,
    normalize_recipe_draft,
    penalize_confidence,
    validate_and_clean_recipe,
)
from recipe_acquisition.models.recipe import ExtractionMethod, ImportStatus, ScrapedRecipe

URL = "https://example.com/recipe-a"


class TestConfidence:

    def test_no_title_scores_zero(self):
        recipe = ScrapedRecipe(ingredients=["a"] * 8, instructions=["b"] * 6)
        assert calculate_confidence(recipe, ExtractionMethod.JSON_LD) == 0.0
        assert calculate_confidence(None, ExtractionMethod.JSON_LD) == 0.0

    def test_partial_counts_scale_linearly(self):
        recipe = ScrapedRecipe(title="Soup", ingredients=["a"] * 4, instructions=["b"] * 3)
        assert calculate_confidence(recipe, ExtractionMethod.MICRODATA) == pytest.approx(0.45)

    def test_method_adjustments(self):
        recipe = ScrapedRecipe(title="Soup", ingredients=["a"] * 8, instructions=["b"] * 6, image="x.jpg")
        assert calculate_confidence(recipe, ExtractionMethod.JSON_LD) == pytest.approx(0.9)
        assert calculate_confidence(recipe, "site-specific") == pytest.approx(0.85)
        assert calculate_confidence(recipe, ExtractionMethod.CSS_SELECTORS) == pytest.approx(0.7)

    def test_saturates_at_full_counts(self):
        recipe = ScrapedRecipe(
            title="Soup", ingredients=["a"] * 20, instructions=["b"] * 20, image="x.jpg", prep_time="5min"
        )
        assert calculate_confidence(recipe, ExtractionMethod.JSON_LD) == 0.95
        assert calculate_confidence(recipe, ExtractionMethod.JSON_LD) <= 1.0

    def test_penalty_has_a_floor(self):
        assert penalize_confidence(0.5) == pytest.approx(0.4)
        assert penalize_confidence(0.15) == 0.1


class TestDraftNormalization:

    def test_complete(self):
        draft = normalize_recipe_draft({"title": "Soup", "ingredients": ["water"], "instructions": ["Boil."]}, URL)
        assert draft.status == ImportStatus.COMPLETE
        assert draft.issues == []
        assert draft.recipe.source_url == URL

    def test_needs_review_without_ingredients(self):
        draft = normalize_recipe_draft({"title": "Soup", "instructions": ["Boil."]}, URL)
        assert draft.status == ImportStatus.NEEDS_REVIEW
        assert draft.issues == ["missing_ingredients"]

    def test_needs_review_without_title(self):
        draft = normalize_recipe_draft({"ingredients": ["water"], "instructions": ["Boil."]}, URL)
        assert draft.status == ImportStatus.NEEDS_REVIEW

    def test_title_only_is_not_a_recipe(self):
        draft = normalize_recipe_draft({"title": "About us"}, URL)
        assert draft.status == ImportStatus.NOT_RECIPE
        assert set(draft.issues) == {"missing_steps", "missing_ingredients"}

    def test_ingredients_without_steps_is_not_a_recipe(self):
        draft = normalize_recipe_draft({"title": "Shopping list", "ingredients": ["milk"]}, URL)
        assert draft.status == ImportStatus.NOT_RECIPE

    def test_none_is_not_a_recipe(self):
        draft = normalize_recipe_draft(None, URL)
        assert draft.status == ImportStatus.NOT_RECIPE
        assert draft.recipe.title == ""

    def test_loose_shapes_are_coerced(self):
        draft = normalize_recipe_draft(
            {
                "title": "  Pasta &amp; Peas ",
                "prepTime": "10 min",
                "servings": "serves 4",
                "ingredients": ["pasta", "", None, "peas"],
                "steps": [{"step": "Boil pasta"}, {"text": "Add peas"}, "Serve"],
                "tags": ["dinner", ""],
            },
            URL,
        )
        recipe = draft.recipe
        assert recipe.title == "Pasta & Peas"
        assert recipe.prep_time == "10 min"
        assert recipe.servings == 4
        assert recipe.ingredients == ["pasta", "peas"]
        assert recipe.instructions == ["Boil pasta", "Add peas", "Serve"]
        assert recipe.tags == ["dinner"]

    def test_accepts_recipe_models(self):
        recipe = ScrapedRecipe(title="Soup", ingredients=["water"], instructions=["Boil."])
        assert normalize_recipe_draft(recipe, URL).status == ImportStatus.COMPLETE


class TestStrictValidation:

    def test_cleans_recipe(self):
        recipe = ScrapedRecipe(
            title="<b>Mom&#39;s Pie</b>",
            ingredients=["1 &frac12; cups flour", "  "],
            instructions=["Mix", "Bake!"],
            servings=6,
            source_url=URL,
        )
        cleaned = validate_and_clean_recipe(recipe)
        assert cleaned.title == "Mom's Pie"
        assert cleaned.ingredients == ["1 ½ cups flour"]
        assert cleaned.instructions == ["Mix.", "Bake!"]
        assert cleaned.servings == 6
        assert cleaned.difficulty == "Medium"

    @pytest.mark.parametrize("servings", [0, 51, 500, None])
    def test_servings_out_of_range_default_to_four(self, servings):
        recipe = ScrapedRecipe(title="Soup", ingredients=["water"], servings=servings)
        assert validate_and_clean_recipe(recipe).servings == 4

    def test_requires_title(self):
        with pytest.raises(RecipeValidationError, match="Recipe must have a title"):
            validate_and_clean_recipe(ScrapedRecipe(ingredients=["water"]))

    def test_requires_ingredients_or_instructions(self):
        with pytest.raises(RecipeValidationError, match="either ingredients or instructions"):
            validate_and_clean_recipe(ScrapedRecipe(title="Soup"))

    def test_rejects_long_titles(self):
        with pytest.raises(RecipeValidationError, match="too long"):
            validate_and_clean_recipe(ScrapedRecipe(title="x" * 201, ingredients=["water"]))

    def test_partial_recipe_is_accepted(self):
        cleaned = validate_and_clean_recipe(ScrapedRecipe(title="Soup", instructions=["Boil water"]))
        assert cleaned.ingredients == []
        assert cleaned.instructions == ["Boil water."]

    def test_validation_error_allows_manual_edit(self):
        with pytest.raises(RecipeValidationError) as exc_info:
            validate_and_clean_recipe(ScrapedRecipe(title=""))
        assert exc_info.value.to_dict()["allow_manual_edit"] is True
