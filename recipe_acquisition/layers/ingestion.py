"""
Import Pipeline for the Recipe Acquisition Pipeline.
Top-level orchestration - URL in, classified recipe out.
"""
from typing import List, Optional

from bs4 import BeautifulSoup

from recipe_acquisition.adapters.claude_client import ClaudeClient
from recipe_acquisition.adapters.document_store import DocumentStore, create_document_store
from recipe_acquisition.adapters.request_service import RequestService
from recipe_acquisition.config import config
from recipe_acquisition.errors import (
    AIUnavailableError,
    InvalidUrlError,
    ModelResponseError,
    ModelTimeoutError,
    NotARecipeError,
    RecipeExtractionError,
    RecipePipelineError,
    RecipeValidationError,
)
from recipe_acquisition.layers.ai_fallback import (
    METHOD_BASIC_NO_AI,
    AIExtractionHints,
    AIExtractionResult,
    AIFallbackCascade,
    select_fallback_level,
)
from recipe_acquisition.layers.image_resolution import ImageResolver
from recipe_acquisition.layers.rate_limiter import RollingWindowRateLimiter
from recipe_acquisition.layers.recipe_cache import RecipeCache
from recipe_acquisition.layers.scraper_manager import ScraperManager, fill_from_page_metadata
from recipe_acquisition.layers.validation import (
    normalize_recipe_draft,
    penalize_confidence,
    validate_and_clean_recipe,
)
from recipe_acquisition.models.limits import ActionType
from recipe_acquisition.models.recipe import (
    CacheProvider,
    ExtractionMethod,
    ImportResult,
    ImportStatus,
    ScrapedRecipe,
    ScraperResult,
)
from recipe_acquisition.utils.logger import LayerLogger
from recipe_acquisition.utils.urls import is_valid_url

CACHE_CONFIDENCE = 1.0


def _merge_issues(*groups: List[str]) -> List[str]:
    merged: List[str] = []
    for group in groups:
        for issue in group:
            if issue and issue not in merged:
                merged.append(issue)
    return merged


class RecipeImportPipeline:
    """
    Recipe import pipeline.

    This layer:
    - Serves fresh cache entries without touching the page or the model
    - Runs deterministic scrapers first and the model only when they fall short
    - Degrades on partial failures (cache, image, model) instead of failing the import

    The document store is the only state shared between requests.
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        request_service: Optional[RequestService] = None,
        claude_client: Optional[ClaudeClient] = None,
        rate_limiter: Optional[RollingWindowRateLimiter] = None,
    ):
        self.logger = LayerLogger("ingestion_layer")
        self.store = store or create_document_store()
        self.request_service = request_service or RequestService()
        self.claude = claude_client or ClaudeClient()
        self.cache = RecipeCache(self.store)
        self.rate_limiter = rate_limiter or RollingWindowRateLimiter(self.store)
        self.scraper_manager = ScraperManager()
        self.image_resolver = ImageResolver(self.request_service)
        self.ai_cascade = AIFallbackCascade(self.claude)

    async def close(self):
        await self.store.close()

    # =========================================================================
    # IMPORT
    # =========================================================================

    async def import_recipe(
        self,
        url: str,
        html: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ImportResult:
        """
        Import a recipe from a URL.

        Args:
            url: The recipe page URL
            html: Pre-fetched page HTML (share-extension flows)
            user_id: Caller identity for the optional import quota

        Returns:
            ImportResult tagged complete, needs_review or not_recipe

        Raises InvalidUrlError, RateLimitExceededError and FetchError.
        Model and validation failures are reported as issues instead.
        """
        url = (url or "").strip()
        if not is_valid_url(url):
            raise InvalidUrlError("Invalid URL format")

        self.logger.log_action("import_recipe", "started", url=url, has_html=bool(html), user_id=user_id)

        if user_id and config.IMPORT_RATE_LIMIT_ENABLED:
            await self.rate_limiter.check_rate_limit(user_id, ActionType.IMPORT)

        cached = await self.cache.get(url)
        if cached is not None:
            return await self._from_cache(url, cached, html)

        html = await self._load_html(url, html)
        soup = BeautifulSoup(html, "lxml")
        result = self.scraper_manager.scrape_recipe(url, soup=soup)
        issues = list(result.issues)

        if result.recipe is not None and result.confidence > config.ACCEPT_CONFIDENCE_THRESHOLD:
            recipe = fill_from_page_metadata(result.recipe, soup, url)
            try:
                validated = validate_and_clean_recipe(recipe)
            except RecipeValidationError as e:
                issues.append(f"Validation failed: {e.message}")
                self.logger.log_fallback(
                    from_source=result.method.value,
                    to_source="ai_fallback",
                    reason=f"validation failed: {e.message}",
                    url=url,
                )
            else:
                return await self._finish(
                    url,
                    html,
                    validated,
                    confidence=result.confidence,
                    method=result.method.value,
                    issues=issues,
                    provider=CacheProvider.SCRAPE,
                )
        else:
            self.logger.log_fallback(
                from_source=result.method.value,
                to_source="ai_fallback",
                reason="low scraper confidence",
                url=url,
                confidence=result.confidence,
            )

        return await self._import_with_ai(url, html, result, issues)

    async def _load_html(self, url: str, html: Optional[str]) -> str:
        if html:
            self.logger.log_decision(decision="use_provided_html", reason="HTML supplied by caller", url=url)
            return html
        response = await self.request_service.fetch_with_retry(url)
        return response.html

    async def _from_cache(self, url: str, cached: ScrapedRecipe, html: Optional[str]) -> ImportResult:
        draft = normalize_recipe_draft(cached, url)
        recipe = draft.recipe
        if not recipe.image:
            image = await self._resolve_image(url, html)
            if image:
                recipe = recipe.model_copy(update={"image": image})

        self.logger.log_decision(decision="serve_from_cache", reason="fresh cache entry", url=url)
        return ImportResult(
            status=draft.status,
            recipe=recipe,
            confidence=CACHE_CONFIDENCE,
            method=ExtractionMethod.CACHE.value,
            issues=draft.issues,
        )

    async def _import_with_ai(
        self,
        url: str,
        html: str,
        result: ScraperResult,
        issues: List[str],
    ) -> ImportResult:
        level = select_fallback_level(result.confidence, result.has_title, result.recipe is not None)
        hints = AIExtractionHints.from_scraper_result(result)

        try:
            ai_result = await self.ai_cascade.extract_recipe_with_ai(url, html, hints=hints, level=level)
        except AIUnavailableError as e:
            self.logger.log_fallback(
                from_source="ai_fallback",
                to_source="scraped_draft",
                reason=e.message,
                url=url,
            )
            return self._partial_result(url, result, _merge_issues(issues, [f"AI fallback unavailable: {e.message}"]))
        except (ModelResponseError, ModelTimeoutError) as e:
            self.logger.log_error(
                f"AI fallback failed: {e.message}",
                error_type="ai_fallback_failed",
                url=url,
                level=level.value,
            )
            raise

        recipe = ai_result.recipe.model_copy(update={"source_url": url})
        confidence = ai_result.confidence
        validated = True
        try:
            recipe = validate_and_clean_recipe(recipe)
        except RecipeValidationError as e:
            validated = False
            issues.append(f"Validation failed: {e.message}")
            confidence = penalize_confidence(confidence)

        return await self._finish(
            url,
            html,
            recipe,
            confidence=confidence,
            method=self._reported_method(ai_result),
            issues=issues,
            provider=CacheProvider.SCRAPE if ai_result.method == METHOD_BASIC_NO_AI else CacheProvider.AI,
            cache=validated,
        )

    def _reported_method(self, ai_result: AIExtractionResult) -> str:
        if ai_result.method == METHOD_BASIC_NO_AI:
            return METHOD_BASIC_NO_AI
        return ExtractionMethod.AI_FALLBACK.value

    def _partial_result(self, url: str, result: ScraperResult, issues: List[str]) -> ImportResult:
        """Scraper data as a draft when the model could not help."""
        draft = normalize_recipe_draft(result.recipe, url)
        self.logger.log_decision(
            decision="return_partial",
            reason="AI fallback unavailable",
            url=url,
            status=draft.status.value,
        )
        return ImportResult(
            status=draft.status,
            recipe=draft.recipe,
            confidence=result.confidence,
            method=result.method.value,
            issues=_merge_issues(issues, draft.issues),
        )

    async def _finish(
        self,
        url: str,
        html: Optional[str],
        recipe: ScrapedRecipe,
        confidence: float,
        method: str,
        issues: List[str],
        provider: CacheProvider,
        cache: bool = True,
    ) -> ImportResult:
        image = await self._resolve_image(url, html)
        if image:
            recipe = recipe.model_copy(update={"image": image})

        draft = normalize_recipe_draft(recipe, url)

        if draft.status == ImportStatus.NOT_RECIPE:
            self.logger.log_decision(decision="skip_cache", reason="not a recipe", url=url)
        elif not cache:
            self.logger.log_decision(decision="skip_cache", reason="strict validation failed", url=url)
        else:
            await self.cache.save(url, draft.recipe, provider)

        self.logger.log_action(
            "import_recipe",
            "completed",
            url=url,
            import_status=draft.status.value,
            method=method,
            confidence=confidence,
        )
        return ImportResult(
            status=draft.status,
            recipe=draft.recipe,
            confidence=confidence,
            method=method,
            issues=_merge_issues(issues, draft.issues),
        )

    async def _resolve_image(self, url: str, html: Optional[str]) -> Optional[str]:
        try:
            return await self.image_resolver.resolve_with_refetch(url, html)
        except Exception as e:
            # Image metadata is best-effort
            self.logger.log_error(
                f"Image resolution failed: {str(e)}",
                error_type="image_resolution_error",
                url=url,
            )
            return None

    # =========================================================================
    # STRICT EXTRACTION
    # =========================================================================

    async def extract_recipe(self, url: str, html: Optional[str] = None) -> ScrapedRecipe:
        """
        Extract a validated recipe or fail.

        Unlike import_recipe, partial data is never returned: anything short
        of a strictly valid recipe raises RecipeExtractionError.
        """
        url = (url or "").strip()
        if not is_valid_url(url):
            raise InvalidUrlError("Invalid URL format")

        cached = await self.cache.get(url)
        if cached is not None:
            self.logger.log_decision(decision="serve_from_cache", reason="fresh cache entry", url=url)
            return cached

        html = await self._load_html(url, html)
        soup = BeautifulSoup(html, "lxml")
        result = self.scraper_manager.scrape_recipe(url, soup=soup)

        if result.recipe is not None and result.confidence > config.ACCEPT_CONFIDENCE_THRESHOLD:
            try:
                validated = validate_and_clean_recipe(fill_from_page_metadata(result.recipe, soup, url))
            except RecipeValidationError as e:
                result.issues.append(f"Validation failed: {e.message}")
            else:
                await self.cache.save(url, validated, CacheProvider.SCRAPE)
                return validated

        level = select_fallback_level(result.confidence, result.has_title, result.recipe is not None)
        try:
            ai_result = await self.ai_cascade.extract_recipe_with_ai(
                url,
                html,
                hints=AIExtractionHints.from_scraper_result(result),
                level=level,
            )
        except RecipePipelineError as e:
            self._raise_extraction_error(url, result, e)

        try:
            recipe = validate_and_clean_recipe(ai_result.recipe.model_copy(update={"source_url": url}))
        except RecipeValidationError as e:
            if normalize_recipe_draft(ai_result.recipe, url).status == ImportStatus.NOT_RECIPE:
                self.logger.log_decision(decision="reject", reason="not a recipe", url=url)
                raise NotARecipeError("This page does not appear to contain a recipe") from e
            self._raise_extraction_error(url, result, e)

        provider = CacheProvider.SCRAPE if ai_result.method == METHOD_BASIC_NO_AI else CacheProvider.AI
        await self.cache.save(url, recipe, provider)
        return recipe

    def _raise_extraction_error(self, url: str, result: ScraperResult, error: RecipePipelineError):
        self.logger.log_error(
            f"Strict extraction failed: {error.message}",
            error_type="extraction_failed",
            url=url,
        )
        partial = result.recipe
        if partial is not None and (partial.title or partial.ingredients):
            issues = ", ".join(result.issues) or "Unknown"
            raise RecipeExtractionError(f"Partial recipe data found but incomplete. Issues: {issues}") from error
        raise RecipeExtractionError("No recipe data found on this page and AI extraction failed") from error
