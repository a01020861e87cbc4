"""Adapters package initialization."""
from recipe_acquisition.adapters.claude_client import ClaudeClient
from recipe_acquisition.adapters.document_store import (
    DocumentStore,
    MemoryDocumentStore,
    MongoDocumentStore,
    create_document_store,
)
from recipe_acquisition.adapters.request_service import FetchResponse, RequestService
from recipe_acquisition.adapters.site_scrapers import SITE_SCRAPERS, SiteScraper, find_site_scraper
from recipe_acquisition.adapters.structured_data import (
    CssSelectorExtractor,
    JsonLdExtractor,
    MicrodataExtractor,
)

__all__ = [
    "ClaudeClient",
    "DocumentStore",
    "MemoryDocumentStore",
    "MongoDocumentStore",
    "create_document_store",
    "FetchResponse",
    "RequestService",
    "SITE_SCRAPERS",
    "SiteScraper",
    "find_site_scraper",
    "CssSelectorExtractor",
    "JsonLdExtractor",
    "MicrodataExtractor",
]
