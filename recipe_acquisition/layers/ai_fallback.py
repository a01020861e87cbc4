"""
AI Fallback Cascade for the Recipe Acquisition Pipeline.

Escalates to the language model only when deterministic scraping was not
good enough. Three levels trade cost for recall:

- fast: minimal schema, short excerpt, seeded with what the scrapers found
- detailed: full schema over the most relevant content block
- aggressive: full schema over the whole page, then fills gaps from markup

A detailed or aggressive response that cannot be parsed falls back to the
fast level once. Timeouts propagate and are never retried.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from recipe_acquisition.adapters.claude_client import ClaudeClient
from recipe_acquisition.adapters.structured_data import (
    element_text,
    finalize_instructions,
    image_attribute,
    select_all_texts,
    select_first_text,
)
from recipe_acquisition.config import config
from recipe_acquisition.errors import ModelResponseError
from recipe_acquisition.layers.image_resolution import find_meta_image
from recipe_acquisition.layers.validation import normalize_recipe_draft
from recipe_acquisition.models.recipe import ScrapedRecipe, ScraperResult
from recipe_acquisition.utils.json_repair import safe_json_parse
from recipe_acquisition.utils.logger import LayerLogger
from recipe_acquisition.utils.text import collapse_whitespace, parse_time_text
from recipe_acquisition.utils.urls import absolutize


class FallbackLevel(str, Enum):
    """How much context (and cost) the model call gets."""
    FAST = "fast"
    DETAILED = "detailed"
    AGGRESSIVE = "aggressive"


@dataclass
class AIExtractionHints:
    """Partial scraper findings used to seed the model."""
    title: Optional[str] = None
    ingredients: List[str] = field(default_factory=list)
    partial_instructions: List[str] = field(default_factory=list)

    @classmethod
    def from_scraper_result(cls, result: Optional[ScraperResult]) -> "AIExtractionHints":
        if result is None or result.recipe is None:
            return cls()
        return cls(
            title=result.recipe.title or None,
            ingredients=list(result.recipe.ingredients),
            partial_instructions=list(result.recipe.instructions),
        )


@dataclass
class AIExtractionResult:
    """Model (or no-model) extraction outcome."""
    recipe: ScrapedRecipe
    confidence: float
    method: str
    level: FallbackLevel
    processing_time: float = 0.0


# Method tags
METHOD_MINIMAL = "ai-minimal"
METHOD_DETAILED = "ai-detailed"
METHOD_AGGRESSIVE = "ai-aggressive"
METHOD_BASIC_NO_AI = "basic-no-ai"

FAST_CONTENT_CHARS = 5000
DETAILED_CONTENT_CHARS = 15000
AGGRESSIVE_CONTENT_CHARS = 20000
RELEVANT_BLOCK_MIN_CHARS = 500

FAST_MAX_TOKENS = 1500
DETAILED_MAX_TOKENS = 3000
AGGRESSIVE_MAX_TOKENS = 4000

MINIMAL_EXTRACTION_CONFIDENCE = 0.5
BASIC_CONFIDENCE_CAP = 0.7
AI_CONFIDENCE_CAP = 0.95

RELEVANT_CONTENT_SELECTORS = [
    "article",
    ".recipe",
    ".recipe-content",
    ".entry-content",
    ".post-content",
    "main",
    ".content",
]


EXTRACTION_SYSTEM_PROMPT = "You are a recipe extraction expert. Return only valid JSON."

MINIMAL_PROMPT = """Extract a recipe from this text. Return JSON only:
{{
  "title": "string",
  "ingredients": ["string array"],
  "instructions": ["string array"]
}}

URL: {url}
Title hint: {title_hint}
{seed}Content: {content}"""

DETAILED_PROMPT = """You are an expert recipe extraction AI. Extract a complete recipe from this webpage content.

IMPORTANT: Return ONLY valid JSON in this exact format:
{{
  "title": "string",
  "description": "string (optional)",
  "image": "string URL (optional)",
  "prepTime": "string like '15m' (optional)",
  "cookTime": "string like '30m' (optional)",
  "totalTime": "string (optional)",
  "servings": number_or_null,
  "difficulty": "string (optional)",
  "ingredients": ["exact ingredient strings with measurements"],
  "instructions": ["clear step-by-step instructions"],
  "tags": ["cuisine type", "meal type"]
}}

Guidelines:
- Extract ingredients with exact measurements (e.g., "2 cups flour", "1 tsp salt")
- Instructions should be clear, actionable steps
- Include preparation and cooking times if mentioned
- Extract serving size if specified
- If information is missing, use empty string or null

URL: {url}
{title_hint}
WEBPAGE CONTENT:
{content}"""

AGGRESSIVE_PROMPT = """You are analyzing a complex webpage to extract recipe information. This page may have ads, comments, and other non-recipe content mixed in.

Your task: Extract ONLY the recipe data from the noise.

CRITICAL: Return ONLY valid JSON in this format:
{{
  "title": "string",
  "description": "string",
  "image": "string",
  "prepTime": "string",
  "cookTime": "string",
  "totalTime": "string",
  "servings": number,
  "difficulty": "string",
  "ingredients": ["string with measurements"],
  "instructions": ["detailed step strings"],
  "tags": ["string array"]
}}

EXTRACTION RULES:
1. Ingredients must include measurements (cups, tsp, lbs, etc.)
2. Instructions must be actionable steps in cooking order
3. Ignore advertisements, user comments, nutritional facts
4. If multiple recipes exist, extract the primary/featured one

URL: {url}
{title_hint}
FULL PAGE CONTENT:
{content}"""


def select_fallback_level(confidence: float, has_title: bool, has_recipe: bool = True) -> FallbackLevel:
    """Pick the cascade level from what the scrapers achieved."""
    if confidence > config.FAST_FALLBACK_THRESHOLD and has_title:
        return FallbackLevel.FAST
    if confidence < config.AGGRESSIVE_FALLBACK_THRESHOLD or not has_recipe:
        return FallbackLevel.AGGRESSIVE
    return FallbackLevel.DETAILED


def validate_extraction_response(data: Any) -> Dict[str, Any]:
    """
    Check the shape of a parsed extraction reply.

    A reply must be an object with a string title; ingredients and
    instructions, when present, must be arrays.
    """
    if not isinstance(data, dict):
        raise ModelResponseError("Invalid AI response: expected a JSON object")
    if not isinstance(data.get("title"), str):
        raise ModelResponseError("Invalid AI response: missing or invalid title")
    for key in ("ingredients", "instructions"):
        if key in data and data[key] is not None and not isinstance(data[key], list):
            raise ModelResponseError(f"Invalid AI response: missing or invalid {key}")
    return data


def calculate_ai_confidence(recipe: ScrapedRecipe) -> float:
    confidence = 0.7
    if recipe.title and len(recipe.title) > 5:
        confidence += 0.1
    if recipe.ingredients:
        confidence += 0.1
    if recipe.instructions:
        confidence += 0.1
    if recipe.image:
        confidence += 0.05
    if recipe.prep_time or recipe.cook_time:
        confidence += 0.03
    if recipe.servings:
        confidence += 0.02
    return round(min(confidence, AI_CONFIDENCE_CAP), 4)


def body_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    return collapse_whitespace(root.get_text(" "))


def extract_relevant_content(soup: BeautifulSoup, limit: int = DETAILED_CONTENT_CHARS) -> str:
    """First content block longer than RELEVANT_BLOCK_MIN_CHARS, else the body."""
    for selector in RELEVANT_CONTENT_SELECTORS:
        elements = soup.select(selector)
        if elements:
            text = collapse_whitespace(" ".join(el.get_text(" ") for el in elements))
            if len(text) > RELEVANT_BLOCK_MIN_CHARS:
                return text[:limit]
    return body_text(soup)[:limit]


class AIFallbackCascade:
    """
    Model-backed extraction with progressive fallback.

    Without a configured model the cascade degrades to plain CSS
    extraction (method basic-no-ai, confidence capped at 0.7).
    """

    def __init__(self, claude_client: Optional[ClaudeClient] = None):
        self.logger = LayerLogger("ai_fallback")
        self.claude = claude_client or ClaudeClient()

    def is_available(self) -> bool:
        return self.claude.is_available()

    async def extract_recipe_with_ai(
        self,
        url: str,
        html: str,
        hints: Optional[AIExtractionHints] = None,
        level: FallbackLevel = FallbackLevel.DETAILED,
    ) -> AIExtractionResult:
        """
        Extract a recipe with the model at the given level.

        Raises ModelResponseError when every attempt returned unusable
        output, and ModelTimeoutError when the model did not answer in time.
        """
        start = time.monotonic()
        hints = hints or AIExtractionHints()
        soup = BeautifulSoup(html or "", "lxml")

        if not self.claude.is_available():
            self.logger.log_fallback(
                from_source="ai",
                to_source="basic_css",
                reason="AI is not configured",
                url=url,
            )
            result = self.basic_extraction_without_ai(url, soup, hints)
            result.processing_time = time.monotonic() - start
            return result

        self.logger.log_decision(decision=f"ai_{level.value}", reason="scraper confidence too low", url=url)

        try:
            result = await self._run_level(level, url, soup, hints)
        except ModelResponseError as e:
            if level == FallbackLevel.FAST:
                raise
            self.logger.log_fallback(
                from_source=f"ai_{level.value}",
                to_source="ai_fast",
                reason=e.message,
                url=url,
            )
            try:
                result = await self._run_level(FallbackLevel.FAST, url, soup, hints)
            except ModelResponseError as fast_error:
                self.logger.log_error(
                    f"Fast AI extraction also failed: {fast_error.message}",
                    error_type="ai_extraction_failed",
                    url=url,
                )
                raise ModelResponseError(f"AI extraction failed: {e.message}") from fast_error

        result.processing_time = time.monotonic() - start
        self.logger.log_extraction(
            method=result.method,
            fields_present=result.recipe.present_fields(),
            fields_missing=result.recipe.missing_fields(),
            confidence=result.confidence,
            url=url,
            level=result.level.value,
        )
        return result

    async def _run_level(
        self,
        level: FallbackLevel,
        url: str,
        soup: BeautifulSoup,
        hints: AIExtractionHints,
    ) -> AIExtractionResult:
        if level == FallbackLevel.FAST:
            return await self._fast_extraction(url, soup, hints)
        if level == FallbackLevel.AGGRESSIVE:
            return await self._aggressive_extraction(url, soup, hints)
        return await self._detailed_extraction(url, soup, hints)

    async def _call_model(self, prompt: str, max_tokens: int, url: str) -> ScrapedRecipe:
        content = await self.claude.complete(
            prompt,
            system=EXTRACTION_SYSTEM_PROMPT,
            max_tokens=max_tokens,
            temperature=0.1,
            timeout=config.AI_TIMEOUT_SECONDS,
        )
        data = validate_extraction_response(safe_json_parse(content, "AI recipe extraction"))
        recipe = normalize_recipe_draft(data, url).recipe
        return recipe.model_copy(update={"instructions": finalize_instructions(recipe.instructions)})

    # =========================================================================
    # LEVELS
    # =========================================================================

    async def _fast_extraction(self, url: str, soup: BeautifulSoup, hints: AIExtractionHints) -> AIExtractionResult:
        page_title = select_first_text(soup, ["title", "h1"])
        seed = ""
        if hints.ingredients:
            seed += "Ingredients found so far: " + "; ".join(hints.ingredients) + "\n"
        if hints.partial_instructions:
            seed += "Partial instructions: " + " | ".join(hints.partial_instructions) + "\n"

        prompt = MINIMAL_PROMPT.format(
            url=url,
            title_hint=hints.title or page_title,
            seed=seed,
            content=body_text(soup)[:FAST_CONTENT_CHARS],
        )
        recipe = await self._call_model(prompt, FAST_MAX_TOKENS, url)
        return AIExtractionResult(
            recipe=recipe,
            confidence=MINIMAL_EXTRACTION_CONFIDENCE,
            method=METHOD_MINIMAL,
            level=FallbackLevel.FAST,
        )

    async def _detailed_extraction(self, url: str, soup: BeautifulSoup, hints: AIExtractionHints) -> AIExtractionResult:
        prompt = DETAILED_PROMPT.format(
            url=url,
            title_hint=f"Title hint: {hints.title}\n" if hints.title else "",
            content=extract_relevant_content(soup, DETAILED_CONTENT_CHARS),
        )
        recipe = await self._call_model(prompt, DETAILED_MAX_TOKENS, url)
        return AIExtractionResult(
            recipe=recipe,
            confidence=calculate_ai_confidence(recipe),
            method=METHOD_DETAILED,
            level=FallbackLevel.DETAILED,
        )

    async def _aggressive_extraction(self, url: str, soup: BeautifulSoup, hints: AIExtractionHints) -> AIExtractionResult:
        prompt = AGGRESSIVE_PROMPT.format(
            url=url,
            title_hint=f"Expected title: {hints.title}\n" if hints.title else "",
            content=body_text(soup)[:AGGRESSIVE_CONTENT_CHARS],
        )
        recipe = self.enhance_with_content_analysis(
            await self._call_model(prompt, AGGRESSIVE_MAX_TOKENS, url), soup, url
        )
        return AIExtractionResult(
            recipe=recipe,
            confidence=calculate_ai_confidence(recipe),
            method=METHOD_AGGRESSIVE,
            level=FallbackLevel.AGGRESSIVE,
        )

    def enhance_with_content_analysis(self, recipe: ScrapedRecipe, soup: BeautifulSoup, url: str) -> ScrapedRecipe:
        """Fill a missing image and prep time from page markup."""
        updates = {}
        if not recipe.image:
            image = find_meta_image(soup, url)
            if not image:
                element = soup.select_one(".recipe-image img, .featured-image img")
                image = absolutize(image_attribute(element), url) if element is not None else None
            if image:
                updates["image"] = image

        if not recipe.prep_time:
            prep_text = " ".join(element_text(el) for el in soup.select('.prep-time, .recipe-prep-time, [class*="prep"]'))
            prep_time = parse_time_text(prep_text)
            if prep_time:
                updates["prep_time"] = prep_time

        return recipe.model_copy(update=updates) if updates else recipe

    # =========================================================================
    # NO-MODEL PATH
    # =========================================================================

    def basic_extraction_without_ai(
        self,
        url: str,
        soup: BeautifulSoup,
        hints: AIExtractionHints,
    ) -> AIExtractionResult:
        """CSS-only extraction used when no model is configured."""
        title = select_first_text(soup, ["h1", ".recipe-title", ".entry-title", '[itemprop="name"]']) or hints.title or ""
        ingredients = select_all_texts(
            soup, [".ingredient", ".recipe-ingredient", ".ingredients li", '[itemprop="recipeIngredient"]']
        )
        instructions = finalize_instructions(select_all_texts(
            soup,
            [
                ".instruction",
                ".recipe-instruction",
                ".directions li",
                ".instructions li",
                '[itemprop="recipeInstructions"] li',
                ".recipe-steps li",
            ],
        ))

        confidence = 0.3
        if len(title) > 5:
            confidence += 0.15
        if len(ingredients) >= 3:
            confidence += 0.2
        if len(instructions) >= 2:
            confidence += 0.2
        if len(ingredients) >= 5 and len(instructions) >= 3:
            confidence += 0.15

        recipe = ScrapedRecipe(
            title=title,
            ingredients=ingredients or list(hints.ingredients),
            instructions=instructions or list(hints.partial_instructions),
            source_url=url,
        )
        return AIExtractionResult(
            recipe=recipe,
            confidence=round(min(confidence, BASIC_CONFIDENCE_CAP), 4),
            method=METHOD_BASIC_NO_AI,
            level=FallbackLevel.FAST,
        )
