"""
Confidence & Validation Layer for the Recipe Acquisition Pipeline.

Scores extraction completeness, classifies drafts, and promotes partial
recipes to canonical ones. Strict validation never aborts an import:
callers record the failure as an issue and lower the confidence.
"""
from typing import Any, Dict, List, Optional, Union

from recipe_acquisition.config import config
from recipe_acquisition.errors import RecipeValidationError
from recipe_acquisition.models.recipe import (
    ExtractionMethod,
    ImportStatus,
    RecipeDraft,
    ScrapedRecipe,
)
from recipe_acquisition.utils.logger import LayerLogger
from recipe_acquisition.utils.text import (
    clean_text,
    ensure_terminal_punctuation,
    extract_text,
    parse_yield,
)

logger = LayerLogger("validation_layer")

MAX_TITLE_LENGTH = 200
MIN_SERVINGS = 1
MAX_SERVINGS = 50
DEFAULT_SERVINGS = 4
DEFAULT_DIFFICULTY = "Medium"

VALIDATION_PENALTY = 0.1
MIN_PENALIZED_CONFIDENCE = 0.1

ISSUE_MISSING_TITLE = "missing_title"
ISSUE_MISSING_STEPS = "missing_steps"
ISSUE_MISSING_INGREDIENTS = "missing_ingredients"


# =========================================================================
# CONFIDENCE
# =========================================================================

def calculate_confidence(
    recipe: Optional[ScrapedRecipe],
    method: Union[ExtractionMethod, str],
) -> float:
    """
    Completeness score in [0, 1].

    Title, ingredients and instructions dominate; ingredient and instruction
    weights scale linearly up to FULL_INGREDIENT_COUNT / FULL_INSTRUCTION_COUNT.
    The method adjustment rewards more trustworthy strategies.
    """
    if recipe is None or not recipe.title:
        return 0.0

    score = config.WEIGHT_TITLE
    if recipe.ingredients:
        score += config.WEIGHT_INGREDIENTS * min(len(recipe.ingredients), config.FULL_INGREDIENT_COUNT) / config.FULL_INGREDIENT_COUNT
    if recipe.instructions:
        score += config.WEIGHT_INSTRUCTIONS * min(len(recipe.instructions), config.FULL_INSTRUCTION_COUNT) / config.FULL_INSTRUCTION_COUNT
    if recipe.image:
        score += config.WEIGHT_IMAGE
    if recipe.has_timing():
        score += config.WEIGHT_TIMING

    method_key = method.value if isinstance(method, ExtractionMethod) else method
    score += config.METHOD_ADJUSTMENTS.get(method_key, 0.0)
    return clamp_confidence(score)


def clamp_confidence(value: float) -> float:
    return round(max(0.0, min(1.0, value)), 4)


def penalize_confidence(confidence: float) -> float:
    """Confidence after a failed strict validation."""
    return max(MIN_PENALIZED_CONFIDENCE, round(confidence - VALIDATION_PENALTY, 4))


# =========================================================================
# DRAFT NORMALIZATION
# =========================================================================

def _field(data: Dict[str, Any], *names: str) -> Any:
    for name in names:
        if data.get(name) is not None:
            return data[name]
    return None


def _optional_text(value: Any) -> Optional[str]:
    text = clean_text(extract_text(value)) if value is not None else ""
    return text or None


def _coerce_ingredients(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    items = (clean_text(extract_text(item)) for item in value if item)
    return [item for item in items if item]


def _coerce_steps(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    steps = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("step") or item.get("text")
        text = clean_text(extract_text(item)) if item else ""
        if text:
            steps.append(text)
    return steps


def _coerce_servings(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    return parse_yield(value)


def _coerce_tags(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [tag for tag in (clean_text(extract_text(t)) for t in value) if tag]


def normalize_recipe_draft(
    data: Union[ScrapedRecipe, Dict[str, Any], None],
    source_url: str,
) -> RecipeDraft:
    """
    Coerce loosely-shaped recipe data and classify its completeness.

    Accepts snake_case or camelCase keys, and `steps` (strings or
    {step}/{text} objects) in place of `instructions`.
    """
    if isinstance(data, ScrapedRecipe):
        data = data.model_dump()
    elif not isinstance(data, dict):
        data = {}

    instructions = _coerce_steps(data.get("instructions"))
    if not instructions:
        instructions = _coerce_steps(data.get("steps"))

    recipe = ScrapedRecipe(
        title=clean_text(extract_text(data.get("title"))),
        description=_optional_text(data.get("description")),
        image=_optional_text(data.get("image")),
        prep_time=_optional_text(_field(data, "prep_time", "prepTime")),
        cook_time=_optional_text(_field(data, "cook_time", "cookTime")),
        total_time=_optional_text(_field(data, "total_time", "totalTime")),
        servings=_coerce_servings(data.get("servings")),
        difficulty=_optional_text(data.get("difficulty")),
        ingredients=_coerce_ingredients(data.get("ingredients")),
        instructions=instructions,
        source_url=source_url,
        tags=_coerce_tags(data.get("tags")),
    )

    has_title = bool(recipe.title)
    has_steps = bool(recipe.instructions)
    has_ingredients = bool(recipe.ingredients)

    issues = []
    if not has_title:
        issues.append(ISSUE_MISSING_TITLE)
    if not has_steps:
        issues.append(ISSUE_MISSING_STEPS)
    if not has_ingredients:
        issues.append(ISSUE_MISSING_INGREDIENTS)

    if (not has_title and not has_steps) or (not has_ingredients and not has_steps):
        status = ImportStatus.NOT_RECIPE
    elif has_title and has_steps and has_ingredients:
        status = ImportStatus.COMPLETE
    else:
        status = ImportStatus.NEEDS_REVIEW

    return RecipeDraft(recipe=recipe, status=status, issues=issues)


# =========================================================================
# STRICT VALIDATION
# =========================================================================

def validate_and_clean_recipe(recipe: ScrapedRecipe) -> ScrapedRecipe:
    """
    Promote a partial recipe to a canonical one.

    Raises RecipeValidationError when the recipe has no title, has neither
    ingredients nor instructions, or its title is implausibly long.
    """
    title = clean_text(recipe.title)
    if not title:
        raise RecipeValidationError("Recipe must have a title")

    ingredients = [item for item in (clean_text(i) for i in recipe.ingredients) if item]
    instructions = [
        ensure_terminal_punctuation(step)
        for step in (clean_text(s) for s in recipe.instructions)
        if step
    ]
    if not ingredients and not instructions:
        raise RecipeValidationError("Recipe must have either ingredients or instructions")

    if len(title) > MAX_TITLE_LENGTH:
        raise RecipeValidationError("Recipe title is too long - this might not be a recipe page")

    if not ingredients:
        logger.log_decision(decision="accept_partial", reason="missing ingredients", url=recipe.source_url)
    if not instructions:
        logger.log_decision(decision="accept_partial", reason="missing instructions", url=recipe.source_url)

    servings = recipe.servings
    if servings is None or not MIN_SERVINGS <= servings <= MAX_SERVINGS:
        servings = DEFAULT_SERVINGS

    return ScrapedRecipe(
        title=title,
        description=clean_text(recipe.description) or None,
        image=(recipe.image or "").strip() or None,
        prep_time=(recipe.prep_time or "").strip() or None,
        cook_time=(recipe.cook_time or "").strip() or None,
        total_time=(recipe.total_time or "").strip() or None,
        servings=servings,
        difficulty=(recipe.difficulty or "").strip() or DEFAULT_DIFFICULTY,
        ingredients=ingredients,
        instructions=instructions,
        source_url=recipe.source_url,
        tags=list(recipe.tags),
    )
