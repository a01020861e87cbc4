"""
Shared fixtures: an in-memory store, a fake web served through
httpx.MockTransport, and a scripted stand-in for the Claude client.
"""
import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from recipe_acquisition.adapters.document_store import MemoryDocumentStore
from recipe_acquisition.adapters.request_service import RequestService
from recipe_acquisition.errors import AIUnavailableError, ModelResponseError
from recipe_acquisition.layers.ingestion import RecipeImportPipeline


class FakeWeb:
    """Routes GET pages and HEAD image probes for MockTransport."""

    def __init__(self):
        self.pages: Dict[str, Tuple[int, str]] = {}
        self.images: Dict[str, Tuple[str, int]] = {}
        self.requests: List[httpx.Request] = []

    def add_page(self, url: str, html: str, status: int = 200):
        self.pages[url] = (status, html)

    def add_image(self, url: str, size: int = 40000, content_type: str = "image/jpeg"):
        self.images[url] = (content_type, size)

    def gets(self) -> List[str]:
        return [str(r.url) for r in self.requests if r.method == "GET"]

    def heads(self) -> List[str]:
        return [str(r.url) for r in self.requests if r.method == "HEAD"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if request.method == "HEAD":
            if url not in self.images:
                return httpx.Response(404)
            content_type, size = self.images[url]
            return httpx.Response(200, headers={"content-type": content_type, "content-length": str(size)})

        if url not in self.pages:
            return httpx.Response(404, text="not found")
        status, html = self.pages[url]
        return httpx.Response(status, text=html, headers={"content-type": "text/html; charset=utf-8"})


class FakeClaudeClient:
    """Returns scripted completions; exceptions in the script are raised."""

    def __init__(self, responses: Optional[List[Any]] = None, available: bool = True):
        self.responses = list(responses or [])
        self.available = available
        self.calls: List[Dict[str, Any]] = []

    def is_available(self) -> bool:
        return self.available

    async def complete(self, prompt, system=None, max_tokens=None, temperature=0.1, timeout=None):
        if not self.available:
            raise AIUnavailableError("AI service not available - API key not configured")
        self.calls.append({"prompt": prompt, "system": system, "max_tokens": max_tokens, "timeout": timeout})
        if not self.responses:
            raise ModelResponseError("No scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, (dict, list)):
            return json.dumps(response)
        return response


# =========================================================================
# SAMPLE PAGES
# =========================================================================

INGREDIENTS = [
    "2 cups all-purpose flour",
    "1 tsp baking soda",
    "1/2 tsp salt",
    "1 cup butter, softened",
    "3/4 cup granulated sugar",
    "3/4 cup brown sugar",
    "2 large eggs",
    "2 cups chocolate chips",
]

STEPS = [
    "Preheat oven to 375°F",
    "Whisk flour, baking soda and salt",
    "Beat butter and sugars until creamy",
    "Add eggs one at a time",
    "Stir in the flour mixture and chocolate chips",
    "Bake for 9 to 11 minutes",
]


def jsonld_page(recipe: Dict[str, Any], extra_head: str = "", body: str = "") -> str:
    return f"""<html><head><title>{recipe.get("name", "Recipe")}</title>
<script type="application/ld+json">{json.dumps(recipe)}</script>{extra_head}
</head><body>{body}</body></html>"""


@pytest.fixture
def cookie_recipe_node() -> Dict[str, Any]:
    return {
        "@context": "https://schema.org",
        "@type": "Recipe",
        "name": "Chocolate Chip Cookies",
        "description": "Classic chewy cookies.",
        "prepTime": "PT15M",
        "cookTime": "PT10M",
        "recipeYield": "24 cookies",
        "recipeIngredient": list(INGREDIENTS),
        "recipeInstructions": [{"@type": "HowToStep", "text": step} for step in STEPS],
    }


@pytest.fixture
def cookie_page(cookie_recipe_node) -> str:
    return jsonld_page(cookie_recipe_node)


@pytest.fixture
def title_only_page() -> str:
    return "<html><head><title>About Us</title></head><body><h1>About Our Family Kitchen</h1><p>We love food.</p></body></html>"


@pytest.fixture
def sparse_page() -> str:
    """CSS-only page with two ingredients and two steps."""
    return """<html><head><title>Quick Salad</title></head><body>
<h1>Quick Garden Salad</h1>
<ul class="ingredients"><li>1 head lettuce</li><li>2 tomatoes</li></ul>
<ol class="instructions"><li>Chop the lettuce and tomatoes</li><li>Toss with dressing</li></ol>
</body></html>"""


# =========================================================================
# FIXTURES
# =========================================================================

@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def fake_web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture
def request_service(fake_web) -> RequestService:
    return RequestService(transport=httpx.MockTransport(fake_web.handler), min_interval=0)


@pytest.fixture
def fake_claude() -> FakeClaudeClient:
    return FakeClaudeClient()


@pytest.fixture
def pipeline(store, request_service, fake_claude) -> RecipeImportPipeline:
    return RecipeImportPipeline(store=store, request_service=request_service, claude_client=fake_claude)
