"""
Kid-Friendly Conversion Gate for the Recipe Acquisition Pipeline.

Wraps the model-backed recipe simplification with the same protections as
the import path: a per-user conversion quota, a capability check, lenient
JSON parsing of the reply and a strict check of its shape.
"""
import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from recipe_acquisition.adapters.claude_client import ClaudeClient
from recipe_acquisition.errors import AIUnavailableError, ModelResponseError
from recipe_acquisition.layers.rate_limiter import RollingWindowRateLimiter
from recipe_acquisition.models.conversion import KidRecipeConversion
from recipe_acquisition.models.limits import ActionType
from recipe_acquisition.models.recipe import ScrapedRecipe
from recipe_acquisition.utils.json_repair import safe_json_parse, slice_outer_braces, strip_code_fences
from recipe_acquisition.utils.logger import LayerLogger

CONVERSION_TEMPERATURE = 0.3
CONVERSION_MAX_TOKENS = 4000

UNICODE_FRACTIONS = {
    "½": "0.5",
    "⅓": "0.33",
    "⅔": "0.67",
    "¼": "0.25",
    "¾": "0.75",
    "⅕": "0.2",
    "⅖": "0.4",
    "⅗": "0.6",
    "⅘": "0.8",
    "⅙": "0.17",
    "⅚": "0.83",
    "⅛": "0.125",
    "⅜": "0.375",
    "⅝": "0.625",
    "⅞": "0.875",
}

CONVERSION_SYSTEM_PROMPT = (
    "You are a helpful cooking instructor who specializes in teaching children how to cook safely. "
    "Always prioritize safety and age-appropriate instructions."
)

CONVERSION_PROMPT = """Convert this recipe to be kid-friendly for a {kid_age}-year-old with {reading_level} reading level.

Original Recipe:
Title: {title}
Ingredients: {ingredients}
Instructions: {instructions}

{allergy_note}
Mark any step that needs sharp tools, high heat or alcohol as needing adult supervision.

Return the response as JSON in this exact format:
{{
  "simplifiedIngredients": [
    {{"id": "1", "name": "original ingredient name", "kidFriendlyName": "kid-friendly name",
      "amount": 1, "unit": "cup", "description": "helpful description", "order": 1}}
  ],
  "simplifiedSteps": [
    {{"id": "1", "step": "original step", "kidFriendlyText": "simple kid-friendly instruction",
      "safetyNote": "safety warning if needed", "adultSupervision": true, "time": "5 minutes",
      "order": 1, "completed": false, "difficulty": "easy", "encouragement": "Great job!"}}
  ],
  "safetyNotes": ["Important safety reminders"],
  "estimatedDuration": 30,
  "skillsRequired": ["mixing", "measuring"]
}}"""


def replace_unicode_fractions(text: str) -> str:
    """Swap vulgar-fraction characters for decimals so amounts parse as numbers."""
    for fraction, decimal in UNICODE_FRACTIONS.items():
        text = text.replace(fraction, decimal)
    return text


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _order(value: Any, index: int) -> int:
    try:
        order = int(value)
    except (TypeError, ValueError):
        return index + 1
    return order or index + 1


def validate_conversion_response(response: Any) -> KidRecipeConversion:
    """
    Check a parsed conversion reply and fill its defaults.

    Ingredient and step orders default to their position, steps always
    start incomplete, and step difficulty defaults to "easy".
    """
    if not isinstance(response, dict):
        raise ModelResponseError("Invalid AI response: expected a JSON object")

    for key in ("simplifiedIngredients", "simplifiedSteps", "safetyNotes"):
        if not isinstance(response.get(key), list):
            raise ModelResponseError(f"Invalid AI response: missing or invalid {key}")

    ingredients: List[Dict[str, Any]] = []
    for index, ingredient in enumerate(response["simplifiedIngredients"]):
        if not isinstance(ingredient, dict) or not (
            ingredient.get("id") and ingredient.get("name") and ingredient.get("kidFriendlyName")
        ):
            raise ModelResponseError(f"Invalid ingredient at index {index}: missing required fields")
        amount = ingredient.get("amount")
        ingredients.append({
            "id": str(ingredient["id"]),
            "name": str(ingredient["name"]),
            "kidFriendlyName": str(ingredient["kidFriendlyName"]),
            "amount": amount if isinstance(amount, (int, float)) and not isinstance(amount, bool) else _optional_str(amount),
            "unit": _optional_str(ingredient.get("unit")),
            "description": _optional_str(ingredient.get("description")),
            "order": _order(ingredient.get("order"), index),
        })

    steps: List[Dict[str, Any]] = []
    for index, step in enumerate(response["simplifiedSteps"]):
        if not isinstance(step, dict) or not (step.get("id") and step.get("step") and step.get("kidFriendlyText")):
            raise ModelResponseError(f"Invalid step at index {index}: missing required fields")
        steps.append({
            "id": str(step["id"]),
            "step": str(step["step"]),
            "kidFriendlyText": str(step["kidFriendlyText"]),
            "safetyNote": _optional_str(step.get("safetyNote")),
            "adultSupervision": bool(step.get("adultSupervision")),
            "time": _optional_str(step.get("time")),
            "order": _order(step.get("order"), index),
            "completed": False,
            "difficulty": _optional_str(step.get("difficulty")) or "easy",
            "encouragement": _optional_str(step.get("encouragement")),
        })

    duration = response.get("estimatedDuration")
    if isinstance(duration, float) and duration.is_integer():
        duration = int(duration)
    elif duration is not None and not isinstance(duration, int):
        duration = str(duration)

    skills = response.get("skillsRequired")
    try:
        return KidRecipeConversion(
            simplifiedIngredients=ingredients,
            simplifiedSteps=steps,
            safetyNotes=[str(note) for note in response["safetyNotes"] if note],
            estimatedDuration=duration,
            skillsRequired=[str(skill) for skill in skills] if isinstance(skills, list) else [],
        )
    except ValidationError as e:
        raise ModelResponseError(f"Invalid AI response: {e.errors()[0]['msg']}")


class KidConversionService:
    """Rate-limited, schema-checked kid-friendly recipe conversion."""

    def __init__(self, rate_limiter: RollingWindowRateLimiter, claude_client: Optional[ClaudeClient] = None):
        self.logger = LayerLogger("conversion")
        self.rate_limiter = rate_limiter
        self.claude = claude_client or ClaudeClient()

    def build_prompt(
        self,
        recipe: ScrapedRecipe,
        kid_age: int,
        reading_level: str,
        allergy_flags: List[str],
    ) -> str:
        allergy_note = ""
        if allergy_flags:
            allergy_note = (
                f"IMPORTANT: This child has allergies to: {', '.join(allergy_flags)}. "
                "Please flag or suggest substitutions for any ingredients that contain these allergens.\n"
            )
        return CONVERSION_PROMPT.format(
            kid_age=kid_age,
            reading_level=reading_level,
            title=recipe.title,
            ingredients=json.dumps(recipe.ingredients),
            instructions=json.dumps(recipe.instructions),
            allergy_note=allergy_note,
        )

    async def convert_recipe(
        self,
        user_id: str,
        recipe: ScrapedRecipe,
        kid_age: int,
        reading_level: str,
        allergy_flags: Optional[List[str]] = None,
    ) -> KidRecipeConversion:
        """
        Convert a recipe for a young cook.

        Raises RateLimitExceededError, AIUnavailableError, ModelTimeoutError
        or ModelResponseError.
        """
        await self.rate_limiter.check_rate_limit(user_id, ActionType.CONVERSION)

        if not self.claude.is_available():
            self.logger.log_error(
                "Conversion requested but AI is not configured",
                error_type="ai_unavailable",
                user_id=user_id,
            )
            raise AIUnavailableError("AI conversion service not available - API key not configured")

        self.logger.log_action("convert_recipe", "started", user_id=user_id, kid_age=kid_age, title=recipe.title[:50])

        content = await self.claude.complete(
            self.build_prompt(recipe, kid_age, reading_level, allergy_flags or []),
            system=CONVERSION_SYSTEM_PROMPT,
            max_tokens=CONVERSION_MAX_TOKENS,
            temperature=CONVERSION_TEMPERATURE,
        )

        content = replace_unicode_fractions(strip_code_fences(content))
        content = slice_outer_braces(content) or content
        conversion = validate_conversion_response(safe_json_parse(content, "AI conversion"))

        self.logger.log_action(
            "convert_recipe",
            "success",
            user_id=user_id,
            ingredient_count=len(conversion.simplified_ingredients),
            step_count=len(conversion.simplified_steps),
        )
        return conversion
