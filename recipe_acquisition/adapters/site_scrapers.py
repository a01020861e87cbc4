"""
Site-Specific Scrapers for the Recipe Acquisition Pipeline.

Each entry pairs a hostname predicate with the selectors for that site's
markup. The table is ordered and the first matching predicate wins; site
scrapers are never chained.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from bs4 import BeautifulSoup

from recipe_acquisition.adapters.structured_data import (
    JsonLdExtractor,
    SelectorProfile,
    extract_with_selectors,
)
from recipe_acquisition.models.recipe import ExtractionMethod, ScrapedRecipe, ScraperResult


def host_contains(*fragments: str) -> Callable[[str], bool]:
    def predicate(hostname: str) -> bool:
        return any(fragment in hostname for fragment in fragments)
    return predicate


def is_nyt_cooking(hostname: str) -> bool:
    return "nytimes.com" in hostname and ("cooking" in hostname or "recipes" in hostname)


@dataclass
class SiteScraper:
    """Per-site extraction: JSON-LD first, then the site's own selectors."""
    name: str
    can_handle: Callable[[str], bool]
    profile: SelectorProfile
    tag: Optional[str] = None
    paywall_selectors: List[str] = field(default_factory=list)
    paywall_phrases: List[str] = field(default_factory=list)

    def scrape(self, soup: BeautifulSoup, url: str) -> ScraperResult:
        """
        Extract without scoring; the manager assigns confidence.

        A page where neither strategy finds a title yields a
        site-specific result with no recipe.
        """
        issues: List[str] = []
        if self.detect_paywall(soup):
            issues.append(f"{self.name} paywall detected - limited content available")

        recipe = JsonLdExtractor().extract(soup, url)
        method = ExtractionMethod.JSON_LD
        if recipe is None or not recipe.title:
            recipe = extract_with_selectors(soup, self.profile, url)
            method = ExtractionMethod.SITE_SPECIFIC

        if recipe is None:
            issues.append(f"No recipe found using {self.name} extractors")
            return ScraperResult(confidence=0.0, method=ExtractionMethod.SITE_SPECIFIC, issues=issues)

        if self.tag and self.tag not in recipe.tags:
            recipe.tags.append(self.tag)
        issues.extend(describe_gaps(recipe))
        return ScraperResult(confidence=0.0, method=method, recipe=recipe, issues=issues)

    def detect_paywall(self, soup: BeautifulSoup) -> bool:
        for selector in self.paywall_selectors:
            if soup.select_one(selector) is not None:
                return True
        if self.paywall_phrases and soup.body is not None:
            body_text = soup.body.get_text(" ", strip=True).lower()
            return any(phrase in body_text for phrase in self.paywall_phrases)
        return False


def describe_gaps(recipe: ScrapedRecipe) -> List[str]:
    """Human-readable list of missing essentials."""
    issues = []
    if not recipe.title:
        issues.append("Missing title")
    if not recipe.ingredients:
        issues.append("Missing ingredients")
    if not recipe.instructions:
        issues.append("Missing instructions")
    return issues


# =========================================================================
# SITE TABLE (order matters: first match wins)
# =========================================================================

SITE_SCRAPERS: List[SiteScraper] = [
    SiteScraper(
        name="NYT Cooking",
        can_handle=is_nyt_cooking,
        tag="NYT Cooking",
        paywall_selectors=['[data-testid="paywall"]', ".paywall", ".subscriber-only", ".nyt-paywall", ".login-modal"],
        paywall_phrases=[
            "subscribe to continue reading",
            "create a free account",
            "log in or create an account",
            "subscribers only",
            "subscription required",
        ],
        profile=SelectorProfile(
            title=['h1[data-testid="recipe-title"]', ".recipe-title", ".nyt5-headline", "h1"],
            description=['[data-testid="recipe-description"]', ".recipe-intro", ".nyt5-summary", ".recipe-summary"],
            image=['[data-testid="recipe-image"] img', ".recipe-photo img", ".nyt5-image img", ".media-viewer img"],
            ingredients=[
                '[data-testid="recipe-ingredients"] li',
                ".recipe-ingredients li",
                ".ingredients li",
                ".nyt5-ingredients li",
                'section[aria-label="Ingredients"] li',
            ],
            instructions=[
                '[data-testid="recipe-instructions"] li',
                ".recipe-instructions li",
                ".directions li",
                ".nyt5-instructions li",
                'section[aria-label="Preparation"] li',
                'section[aria-label="Method"] li',
            ],
            prep_time=['[data-testid="recipe-time-prep"]', ".recipe-time-prep", ".prep-time"],
            cook_time=['[data-testid="recipe-time-cook"]', ".recipe-time-cook", ".cook-time"],
            total_time=['[data-testid="recipe-time-total"]', ".recipe-time-total", ".total-time"],
            servings=['[data-testid="recipe-yield"]', ".recipe-yield", ".servings", ".nyt5-yield", ".serves"],
        ),
    ),
    SiteScraper(
        name="BBC Good Food",
        can_handle=host_contains("bbcgoodfood.com"),
        tag="BBC Good Food",
        profile=SelectorProfile(
            title=["h1.gel-trafalgar", ".recipe-header__title", ".post-header__title", ".recipe-details__header h1", ".recipe-title", "h1"],
            description=[".recipe-header__description", ".post-header__description", ".recipe-details__summary", ".recipe-summary"],
            image=[".recipe-media__image img", ".post-header__image img", ".recipe-details__image img", ".lead-image img", ".recipe-image img"],
            ingredients=[
                ".recipe-ingredients__list li",
                ".ingredients-list li",
                ".recipe-details__ingredients li",
                'section[data-tracking-name="ingredients"] li',
                ".ingredients li",
                ".recipe-ingredients li",
            ],
            instructions=[
                ".recipe-method__list li",
                ".method-list li",
                ".recipe-details__method li",
                'section[data-tracking-name="method"] li',
                ".method li",
                ".recipe-method li",
                ".recipe-instructions li",
            ],
            prep_time=[".recipe-details__cooking-time-prep", ".recipe-cooking-time .prep-time", ".recipe-time--prep"],
            cook_time=[".recipe-details__cooking-time-cook", ".recipe-cooking-time .cook-time", ".recipe-time--cook"],
            total_time=[".recipe-details__cooking-time-total", ".recipe-cooking-time .total-time", ".recipe-time--total"],
            servings=[".recipe-details__serves", ".recipe-serves", ".serves", ".recipe-yield"],
            difficulty=[".recipe-details__skill-level", ".recipe-difficulty", ".skill-level"],
        ),
    ),
    SiteScraper(
        name="Food52",
        can_handle=host_contains("food52.com"),
        tag="Food52",
        profile=SelectorProfile(
            title=["h1.recipe-title", ".recipe-header h1", ".recipe-name", 'h1[data-test="recipe-title"]', ".entry-title", "h1"],
            description=[".recipe-description", ".recipe-summary", ".recipe-headnote", ".entry-summary", ".recipe-intro"],
            image=[".recipe-photo img", ".recipe-image img", ".hero-image img", ".main-image img", ".recipe-header img"],
            ingredients=[
                ".recipe-ingredients li",
                ".ingredients li",
                ".recipe-ingredient-list li",
                ".ingredient-list li",
                '[data-test="recipe-ingredients"] li',
                ".recipe-list li",
            ],
            instructions=[
                ".recipe-instructions li",
                ".recipe-directions li",
                ".instructions li",
                ".directions li",
                ".method li",
                '[data-test="recipe-instructions"] li',
                ".recipe-steps li",
                ".preparation li",
            ],
            prep_time=[".prep-time", ".recipe-prep-time", ".timing .prep", '[data-test="prep-time"]'],
            cook_time=[".cook-time", ".recipe-cook-time", ".timing .cook", '[data-test="cook-time"]'],
            total_time=[".total-time", ".recipe-total-time", ".timing .total", '[data-test="total-time"]'],
            servings=[".recipe-yield", ".servings", ".serves", ".makes", '[data-test="recipe-yield"]'],
        ),
    ),
    SiteScraper(
        name="Simply Recipes",
        can_handle=host_contains("simplyrecipes.com"),
        tag="Simply Recipes",
        profile=SelectorProfile(
            title=["h1.entry-title", "h1.recipe-title", ".recipe-header h1", 'h1[data-cy="recipe-title"]', ".headline", "h1"],
            description=[".recipe-description", ".recipe-summary", ".entry-summary", ".intro-text", ".article-intro"],
            image=[".recipe-photo img", ".recipe-image img", ".hero-image img", ".featured-image img", ".lead-image img"],
            ingredients=[
                ".recipe-ingredients li",
                ".ingredients li",
                ".recipe-ingredient-list li",
                ".ingredient-list li",
                '[data-cy="recipe-ingredients"] li',
                ".recipe-callout-ingredients li",
            ],
            instructions=[
                ".recipe-instructions li",
                ".recipe-method li",
                ".instructions li",
                ".directions li",
                ".method-instructions li",
                '[data-cy="recipe-instructions"] li',
                ".recipe-steps li",
            ],
            prep_time=[".recipe-prep-time", ".prep-time", '[data-cy="prep-time"]', ".timing-prep"],
            cook_time=[".recipe-cook-time", ".cook-time", '[data-cy="cook-time"]', ".timing-cook"],
            total_time=[".recipe-total-time", ".total-time", '[data-cy="total-time"]', ".timing-total"],
            servings=[".recipe-yield", ".recipe-serves", ".servings", ".serves", '[data-cy="recipe-yield"]'],
            difficulty=[".recipe-difficulty", ".difficulty", ".skill-level"],
        ),
    ),
    SiteScraper(
        name="Bon Appétit",
        can_handle=host_contains("bonappetit.com"),
        tag="Bon Appétit",
        profile=SelectorProfile(
            title=['h1[data-testid="ContentHeaderHed"]', "h1.ContentHeaderHed", "h1.recipe-title", ".content-header h1", "h1"],
            description=['[data-testid="ContentHeaderDek"]', ".ContentHeaderDek", ".recipe-description", ".content-dek"],
            image=['[data-testid="ContentHeaderLeadAsset"] img', ".ContentHeaderLeadAsset img", ".recipe-image img", ".lead-image img"],
            ingredients=[
                '[data-testid="IngredientList"] li',
                ".recipe-ingredients li",
                ".ingredients li",
                ".ingredient-list li",
                '[class*="ingredient"] li',
            ],
            instructions=[
                '[data-testid="InstructionList"] li',
                ".recipe-instructions li",
                ".preparation li",
                ".instructions li",
                ".directions li",
                ".method li",
                '[class*="instruction"] li',
            ],
            prep_time=['[data-testid="prep-time"]', ".recipe-prep-time", ".prep-time", ".active-time"],
            cook_time=['[data-testid="cook-time"]', ".recipe-cook-time", ".cook-time", ".cooking-time"],
            total_time=['[data-testid="total-time"]', ".recipe-total-time", ".total-time"],
            servings=['[data-testid="recipe-yield"]', ".recipe-yield", ".recipe-serves", ".servings", ".serves"],
        ),
    ),
    SiteScraper(
        name="Epicurious",
        can_handle=host_contains("epicurious.com"),
        tag="Epicurious",
        profile=SelectorProfile(
            title=['h1[data-testid="ContentHeaderHed"]', "h1.recipe-hed", "h1.content-hed", ".recipe-header h1", "h1"],
            description=['[data-testid="ContentHeaderDek"]', ".recipe-summary", ".content-dek", ".recipe-description"],
            image=['[data-testid="ContentHeaderLeadAsset"] img', ".recipe-lead-image img", ".lead-image img", ".recipe-image img"],
            ingredients=['[data-testid="IngredientList"] li', ".recipe-ingredients li", ".ingredients li", ".ingredient-list li", ".recipe-ingredient"],
            instructions=[
                '[data-testid="InstructionsWrapper"] li',
                '[data-testid="InstructionWrapper"] p',
                ".recipe-instructions li",
                ".recipe-method li",
                ".instructions li",
                ".preparation-list li",
            ],
            prep_time=['[data-testid="PrepTime"]', ".prep-time", ".recipe-prep-time"],
            cook_time=['[data-testid="CookTime"]', ".cook-time", ".recipe-cook-time"],
            total_time=['[data-testid="TotalTime"]', ".total-time", ".recipe-total-time"],
            servings=['[data-testid="Servings"]', ".servings", ".recipe-serves", ".yield"],
            tags=[".recipe-tags a", ".tags a", ".categories a"],
        ),
    ),
    SiteScraper(
        name="Delish",
        can_handle=host_contains("delish.com"),
        tag="Delish",
        profile=SelectorProfile(
            title=[".content-hed", "h1.recipe-hed", ".article-hed h1", ".recipe-header h1", "h1"],
            description=[".content-dek", ".recipe-summary", ".article-dek", ".recipe-description", ".content-intro"],
            image=[".content-lede-image img", ".article-lead-image img", ".recipe-lead-image img", ".lead-image img"],
            ingredients=[
                ".ingredient-lists li",
                ".recipe-ingredients li",
                ".ingredients li",
                ".ingredient-list li",
                ".recipe-ingredient",
                '[data-module="RecipeIngredients"] li',
            ],
            instructions=[
                ".directions li",
                ".recipe-instructions li",
                ".recipe-directions li",
                ".instructions li",
                ".method li",
                ".preparation-list li",
                '[data-module="RecipeInstructions"] li',
            ],
            prep_time=[".prep-time", ".recipe-prep-time", '[data-field="prep_time"]'],
            cook_time=[".cook-time", ".recipe-cook-time", '[data-field="cook_time"]'],
            total_time=[".total-time", ".recipe-total-time", '[data-field="total_time"]'],
            servings=[".servings", ".recipe-serves", ".yield", '[data-field="servings"]'],
            difficulty=[".difficulty", ".recipe-difficulty"],
            tags=[".recipe-tags a", ".tags a", ".content-tags a"],
        ),
    ),
    SiteScraper(
        name="Food Network",
        can_handle=host_contains("foodnetwork.com"),
        tag="Food Network",
        profile=SelectorProfile(
            title=[".o-AssetTitle__a-HeadlineText", "h1.entry-title", ".recipe-title", ".o-RecipeInfo__a-Headline", "h1"],
            description=[".o-AssetSummary__a-Description", ".recipe-summary", ".entry-summary", '[data-module="RecipeSummary"]'],
            image=[".m-MediaBlock__a-Image img", ".recipe-image img", ".o-MediaBlock__a-Image img", '[data-module="RecipeImage"] img'],
            ingredients=[
                ".o-RecipeIngredients__a-Ingredient",
                ".recipe-ingredient",
                ".ingredients li",
                ".o-Ingredients__a-Ingredient",
                '[data-module="RecipeIngredients"] li',
                ".ingredient-list li",
            ],
            instructions=[
                ".o-Method__m-Step",
                ".recipe-instruction",
                ".directions li",
                ".instructions li",
                ".o-Instructions__a-ListItem",
                '[data-module="RecipeInstructions"] li',
                ".method-step",
            ],
            prep_time=[".prep-time", ".recipe-prep-time"],
            cook_time=[".cook-time", ".recipe-cook-time"],
            total_time=[".o-RecipeInfo__a-Description.m-RecipeInfo__a-Description--Total", ".total-time"],
            servings=[".servings", ".recipe-serves", ".yield"],
            difficulty=[".difficulty", ".recipe-difficulty"],
        ),
    ),
    SiteScraper(
        name="AllRecipes",
        can_handle=host_contains("allrecipes.com"),
        tag="AllRecipes",
        profile=SelectorProfile(
            title=["h1.entry-title", ".recipe-title", 'h1[data-module="RecipeTitle"]', ".headline-wrapper h1", ".recipe-header h1", "h1"],
            description=[".recipe-description", ".recipe-summary", ".entry-summary", ".recipe-summary__description", ".dek"],
            image=[".recipe-image img", ".image-container img", ".hero-photo__image", ".primary-image img", ".lead-image img"],
            ingredients=[
                ".mntl-structured-ingredients__list li",
                ".recipe-ingred_txt",
                ".ingredients li",
                ".recipe-ingredient-list li",
                ".ingredients-section li",
                ".ingredient-list li",
                ".recipe-ingredients__ingredient",
            ],
            instructions=[
                ".mntl-sc-block-group--OL li",
                ".recipe-directions__list--item",
                ".instructions li",
                ".directions li",
                ".recipe-instruction-list li",
                ".instructions-section li",
            ],
            prep_time=[".prep-time", ".recipe-prep-time", ".prepTime"],
            cook_time=[".cook-time", ".recipe-cook-time", ".cookTime"],
            total_time=[".total-time", ".recipe-total-time", ".totalTime"],
            servings=[".recipe-adjust-servings__size-quantity", ".servings", ".recipe-serves", ".yield"],
        ),
    ),
    SiteScraper(
        name="Serious Eats",
        can_handle=host_contains("seriouseats.com"),
        tag="Serious Eats",
        profile=SelectorProfile(
            title=["h1.heading__title", ".recipe-title", "h1.entry-title", ".project-name", "h1"],
            description=[".recipe-about", ".recipe-summary", ".project-description", ".entry-summary"],
            image=[".recipe-hero-image img", ".lead-image img", ".hero-image img", ".recipe-image img"],
            ingredients=[
                ".structured-ingredients li",
                ".recipe-ingredient-group li",
                ".ingredients li",
                ".recipe-ingredients li",
                ".ingredient-list li",
            ],
            instructions=[
                ".recipe-procedures li",
                ".recipe-instruction-group li",
                ".instructions li",
                ".directions li",
                ".recipe-instructions li",
                ".procedure-text",
            ],
            prep_time=[".recipe-time-prep", ".prep-time", ".total-time-prep"],
            cook_time=[".recipe-time-cook", ".cook-time", ".total-time-cook"],
            total_time=[".recipe-time-total", ".total-time"],
            servings=[".recipe-yield", ".recipe-serves", ".servings", ".yield"],
        ),
    ),
]


def find_site_scraper(hostname: str) -> Optional[SiteScraper]:
    """First site scraper whose predicate accepts the hostname."""
    hostname = hostname.lower()
    for scraper in SITE_SCRAPERS:
        if scraper.can_handle(hostname):
            return scraper
    return None
