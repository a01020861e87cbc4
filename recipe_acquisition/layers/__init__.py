"""Layers package initialization."""
from recipe_acquisition.layers.ai_fallback import AIExtractionHints, AIFallbackCascade, FallbackLevel
from recipe_acquisition.layers.conversion import KidConversionService
from recipe_acquisition.layers.image_resolution import ImageResolver
from recipe_acquisition.layers.ingestion import RecipeImportPipeline
from recipe_acquisition.layers.rate_limiter import RollingWindowRateLimiter
from recipe_acquisition.layers.recipe_cache import RecipeCache
from recipe_acquisition.layers.scraper_manager import ScraperManager

__all__ = [
    "AIExtractionHints",
    "AIFallbackCascade",
    "FallbackLevel",
    "KidConversionService",
    "ImageResolver",
    "RecipeImportPipeline",
    "RollingWindowRateLimiter",
    "RecipeCache",
    "ScraperManager",
]
