"""
Recipe Cache for the Recipe Acquisition Pipeline.

Stores extracted recipes keyed by the hash of the normalized URL. Entries
expire at read time; the pipeline never deletes them. A cache failure never
fails an import.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from recipe_acquisition.adapters.document_store import DocumentStore
from recipe_acquisition.config import config
from recipe_acquisition.models.recipe import CacheProvider, RecipeCacheEntry, ScrapedRecipe
from recipe_acquisition.utils.logger import LayerLogger
from recipe_acquisition.utils.urls import cache_key_for_url, normalize_url_for_cache

CACHE_COLLECTION = "recipeCache"


class RecipeCache:
    """Read-through recipe cache over the document store."""

    def __init__(self, store: DocumentStore, ttl_days: Optional[int] = None):
        self.store = store
        self.ttl = timedelta(days=config.CACHE_TTL_DAYS if ttl_days is None else ttl_days)
        self.logger = LayerLogger("recipe_cache")

    async def get(self, url: str, now: Optional[datetime] = None) -> Optional[ScrapedRecipe]:
        """Cached recipe attributed to `url`, or None when absent or stale."""
        now = now or datetime.now(timezone.utc)
        key = cache_key_for_url(url)
        try:
            document = await self.store.get(CACHE_COLLECTION, key)
            if document is None:
                return None

            entry = RecipeCacheEntry.model_validate(document.data)
            created_at = entry.created_at
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)

            if created_at <= now - self.ttl:
                self.logger.log_decision(
                    decision="cache_stale",
                    reason=f"entry older than {self.ttl.days} days",
                    url=url,
                    created_at=created_at.isoformat(),
                )
                return None

            self.logger.log_action("cache_lookup", "hit", url=url, provider=entry.provider.value)
            return entry.to_recipe(url)

        except Exception as e:
            self.logger.log_error(f"Error reading recipe cache: {str(e)}", error_type="cache_read_error", url=url)
            return None

    async def save(
        self,
        url: str,
        recipe: ScrapedRecipe,
        provider: CacheProvider = CacheProvider.SCRAPE,
        now: Optional[datetime] = None,
    ) -> None:
        """Overwrite the entry for `url` (last write wins)."""
        now = now or datetime.now(timezone.utc)
        normalized = normalize_url_for_cache(url)
        try:
            entry = RecipeCacheEntry(
                **recipe.model_dump(exclude={"source_url"}),
                source_url=url,
                normalized_url=normalized,
                created_at=now,
                updated_at=now,
                provider=provider,
            )
            await self.store.put(CACHE_COLLECTION, cache_key_for_url(url), entry.model_dump(mode="json"))
            self.logger.log_action("cache_save", "completed", url=normalized, provider=provider.value)
        except Exception as e:
            self.logger.log_error(f"Error saving recipe to cache: {str(e)}", error_type="cache_write_error", url=url)
