"""
Scraper Manager for the Recipe Acquisition Pipeline.

Routes a page to the one site scraper whose hostname predicate matches,
otherwise (or when that scraper fails) runs the generic strategies in order
of trust: JSON-LD, microdata, CSS selectors.
"""
from typing import Callable, List, Optional, Tuple

from bs4 import BeautifulSoup

from recipe_acquisition.adapters.site_scrapers import describe_gaps, find_site_scraper
from recipe_acquisition.adapters.structured_data import (
    CssSelectorExtractor,
    JsonLdExtractor,
    MicrodataExtractor,
    find_recipe_node,
    parse_jsonld_scripts,
)
from recipe_acquisition.config import config
from recipe_acquisition.layers.image_resolution import find_meta_image
from recipe_acquisition.layers.validation import calculate_confidence, clamp_confidence
from recipe_acquisition.models.recipe import ExtractionMethod, ScrapedRecipe, ScraperResult
from recipe_acquisition.utils.logger import LayerLogger
from recipe_acquisition.utils.text import parse_duration, parse_yield
from recipe_acquisition.utils.urls import get_hostname


class ScraperManager:
    """
    Deterministic extraction with confidence scoring.

    Never raises for extraction problems: a page with nothing usable is a
    confidence-0 result with issues.
    """

    def __init__(self):
        self.logger = LayerLogger("scraper_manager")
        self.generic_strategies: List[Tuple[ExtractionMethod, Callable]] = [
            (ExtractionMethod.JSON_LD, JsonLdExtractor().extract),
            (ExtractionMethod.MICRODATA, MicrodataExtractor().extract),
            (ExtractionMethod.CSS_SELECTORS, CssSelectorExtractor().extract),
        ]

    def scrape_recipe(
        self,
        url: str,
        soup: Optional[BeautifulSoup] = None,
        html: Optional[str] = None,
    ) -> ScraperResult:
        """Extract a (possibly partial) recipe from an already-fetched page."""
        if soup is None:
            soup = BeautifulSoup(html or "", "lxml")

        hostname = get_hostname(url)
        site_scraper = find_site_scraper(hostname)
        issues: List[str] = []

        if site_scraper is not None:
            self.logger.log_decision(
                decision="use_site_scraper",
                reason=f"hostname matched {site_scraper.name}",
                url=url,
            )
            try:
                result = site_scraper.scrape(soup, url)
            except Exception as e:
                self.logger.log_fallback(
                    from_source=site_scraper.name,
                    to_source="generic_pipeline",
                    reason=f"site scraper failed: {str(e)}",
                    url=url,
                )
                issues.append(f"{site_scraper.name} scraper failed: {str(e)}")
            else:
                if result.recipe is not None:
                    result.confidence = clamp_confidence(
                        calculate_confidence(result.recipe, result.method) + config.SITE_SCRAPER_BONUS
                    )
                self._log_result(url, result, site=site_scraper.name)
                return result

        result = self._run_generic(soup, url)
        result.issues = issues + result.issues
        self._log_result(url, result)
        return result

    def _run_generic(self, soup: BeautifulSoup, url: str) -> ScraperResult:
        issues: List[str] = []
        for method, extract in self.generic_strategies:
            try:
                recipe = extract(soup, url)
            except Exception as e:
                # A strategy that blows up simply found nothing
                issues.append(f"{method.value} extraction failed: {str(e)}")
                self.logger.log_error(
                    f"{method.value} extraction failed: {str(e)}",
                    error_type="extraction_error",
                    url=url,
                )
                continue

            if recipe is not None and recipe.title:
                return ScraperResult(
                    confidence=calculate_confidence(recipe, method),
                    method=method,
                    recipe=recipe,
                    issues=issues + describe_gaps(recipe),
                )

        issues.append("No recipe data found on this page")
        return ScraperResult(confidence=0.0, method=ExtractionMethod.ERROR, issues=issues)

    def _log_result(self, url: str, result: ScraperResult, site: Optional[str] = None):
        recipe = result.recipe or ScrapedRecipe()
        self.logger.log_extraction(
            method=result.method.value,
            fields_present=recipe.present_fields(),
            fields_missing=recipe.missing_fields(),
            confidence=result.confidence,
            url=url,
            site=site,
        )


def fill_from_page_metadata(recipe: ScrapedRecipe, soup: BeautifulSoup, url: str) -> ScrapedRecipe:
    """
    Fill a missing image, times and servings from page metadata.

    Sources are social meta tags for the image and the JSON-LD Recipe node
    for times and yield. Populated fields are never overwritten.
    """
    updates = {}
    if not recipe.image:
        image = find_meta_image(soup, url)
        if image:
            updates["image"] = image

    if not (recipe.prep_time and recipe.cook_time and recipe.total_time and recipe.servings):
        node = None
        for document in parse_jsonld_scripts(soup):
            node = find_recipe_node(document)
            if node:
                break
        if node:
            for field_name, key in (("prep_time", "prepTime"), ("cook_time", "cookTime"), ("total_time", "totalTime")):
                if not getattr(recipe, field_name):
                    value = parse_duration(node.get(key))
                    if value:
                        updates[field_name] = value
            if not recipe.servings:
                servings = parse_yield(node.get("recipeYield") or node.get("yield"))
                if servings:
                    updates["servings"] = servings

    return recipe.model_copy(update=updates) if updates else recipe
