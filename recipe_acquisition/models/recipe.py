"""
Recipe models for the Recipe Acquisition Pipeline.
ScrapedRecipe is the canonical shape for every strategy's output, whether
it came from JSON-LD, a site scraper, the cache or the language model.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ExtractionMethod(str, Enum):
    """Tag naming which strategy produced a result."""
    JSON_LD = "json-ld"
    MICRODATA = "microdata"
    CSS_SELECTORS = "css-selectors"
    SITE_SPECIFIC = "site-specific"
    CACHE = "cache"
    AI_FALLBACK = "ai-fallback"
    ERROR = "error"


class ImportStatus(str, Enum):
    """Completeness classification of an imported recipe."""
    COMPLETE = "complete"
    NEEDS_REVIEW = "needs_review"
    NOT_RECIPE = "not_recipe"


class CacheProvider(str, Enum):
    """Provenance of a cached recipe."""
    SCRAPE = "scrape"
    AI = "ai"


class ScrapedRecipe(BaseModel):
    """Recipe record. Partial while extracting, canonical once validated."""
    title: str = ""
    description: Optional[str] = None
    image: Optional[str] = None
    prep_time: Optional[str] = None
    cook_time: Optional[str] = None
    total_time: Optional[str] = None
    servings: Optional[int] = None
    difficulty: Optional[str] = None
    ingredients: List[str] = Field(default_factory=list)
    instructions: List[str] = Field(default_factory=list)
    source_url: str = ""
    tags: List[str] = Field(default_factory=list)

    def present_fields(self) -> List[str]:
        """Names of populated fields (for logging)."""
        return [name for name, value in self.model_dump().items() if value]

    def missing_fields(self) -> List[str]:
        return [name for name, value in self.model_dump().items() if not value]

    def has_timing(self) -> bool:
        return bool(self.prep_time or self.cook_time or self.total_time)


@dataclass
class ScraperResult:
    """Transient result of one extraction pass."""
    confidence: float
    method: ExtractionMethod
    recipe: Optional[ScrapedRecipe] = None
    issues: List[str] = field(default_factory=list)

    @property
    def has_title(self) -> bool:
        return bool(self.recipe and self.recipe.title)


@dataclass
class RecipeDraft:
    """Draft normalization output: canonical recipe plus completeness status."""
    recipe: ScrapedRecipe
    status: ImportStatus
    issues: List[str] = field(default_factory=list)


class ImportResult(BaseModel):
    """Payload returned to import callers."""
    status: ImportStatus
    recipe: ScrapedRecipe
    confidence: float = Field(ge=0.0, le=1.0)
    method: str
    issues: List[str] = Field(default_factory=list)


class RecipeCacheEntry(ScrapedRecipe):
    """Persisted cache record keyed by the normalized-URL hash."""
    normalized_url: str
    created_at: datetime
    updated_at: datetime
    provider: CacheProvider = CacheProvider.SCRAPE

    def to_recipe(self, source_url: str) -> ScrapedRecipe:
        """Return the cached recipe attributed to the requested URL."""
        data = self.model_dump(include=set(ScrapedRecipe.model_fields))
        data["source_url"] = source_url
        return ScrapedRecipe(**data)
