"""
Structured-Data Extractors for the Recipe Acquisition Pipeline.

Three strategies, most trusted first:
1. JSON-LD <script type="application/ld+json"> Recipe nodes
2. schema.org microdata (itemtype/itemprop)
3. Generic CSS-selector heuristics

Every extractor returns None when it cannot find a title.
"""
import json
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup, Tag

from recipe_acquisition.models.recipe import ScrapedRecipe
from recipe_acquisition.utils.json_repair import sanitize_json_string
from recipe_acquisition.utils.logger import LayerLogger
from recipe_acquisition.utils.text import (
    clean_instruction,
    clean_text,
    ensure_terminal_punctuation,
    extract_text,
    extract_text_list,
    parse_duration,
    parse_time_text,
    parse_yield,
)
from recipe_acquisition.utils.urls import absolutize

MAX_JSONLD_DEPTH = 12
MAX_JSONLD_NODES = 5000
MIN_INSTRUCTION_LENGTH = 3

INGREDIENT_KEYS = ["recipeIngredient", "ingredients", "recipeIngredients", "ingredient", "recipeMaterial"]
INSTRUCTION_TEXT_FIELDS = ["text", "name", "description", "instruction", "step"]
INSTRUCTION_ALTERNATE_KEYS = ["steps", "method", "directions", "preparation"]

LAZY_IMAGE_ATTRIBUTES = [
    "src",
    "data-src",
    "data-lazy-src",
    "data-original",
    "data-lazy",
    "data-real-src",
    "data-enlarge-src",
    "data-srcset",
]


# =========================================================================
# SHARED HELPERS
# =========================================================================

def element_text(element: Tag) -> str:
    return clean_text(element.get_text(" ", strip=True))


def select_first_text(root: Tag, selectors: Iterable[str]) -> str:
    """First non-empty text (or meta content) across ranked selectors."""
    for selector in selectors:
        for element in root.select(selector):
            if element.name == "meta":
                text = clean_text(element.get("content", ""))
            else:
                text = element_text(element)
            if text:
                return text
    return ""


def select_all_texts(root: Tag, selectors: Iterable[str]) -> List[str]:
    """Texts of the first selector that matches any non-empty elements."""
    for selector in selectors:
        texts = [text for text in (element_text(el) for el in root.select(selector)) if text]
        if texts:
            return texts
    return []


def first_srcset_url(srcset: str) -> Optional[str]:
    first = srcset.split(",")[0].strip()
    return first.split()[0] if first else None


def image_attribute(element: Tag) -> Optional[str]:
    """Image URL from src or the first populated lazy-loading attribute."""
    for attribute in LAZY_IMAGE_ATTRIBUTES:
        value = element.get(attribute)
        if not value:
            continue
        value = value.strip()
        if attribute == "data-srcset":
            value = first_srcset_url(value) or ""
        if value and not value.startswith("data:"):
            return value
    return None


def select_image(root: Tag, selectors: Iterable[str], base_url: str) -> Optional[str]:
    for selector in selectors:
        for element in root.select(selector):
            src = image_attribute(element)
            if src:
                return absolutize(src, base_url)
    return None


def finalize_instructions(steps: Iterable[str]) -> List[str]:
    """Strip numbering, drop fragments, guarantee terminal punctuation."""
    cleaned = []
    for step in steps:
        text = clean_instruction(clean_text(step))
        if len(text) >= MIN_INSTRUCTION_LENGTH:
            cleaned.append(ensure_terminal_punctuation(text))
    return cleaned


# =========================================================================
# JSON-LD
# =========================================================================

def is_recipe_type(schema_type: Any) -> bool:
    if isinstance(schema_type, list):
        return any(is_recipe_type(t) for t in schema_type)
    if not isinstance(schema_type, str):
        return False
    return schema_type == "Recipe" or schema_type.endswith((":Recipe", "/Recipe"))


def _has_type(node: Dict[str, Any], type_name: str) -> bool:
    schema_type = node.get("@type")
    if isinstance(schema_type, list):
        return type_name in schema_type
    return schema_type == type_name


def parse_jsonld_scripts(soup: BeautifulSoup) -> List[Any]:
    """
    Parse every JSON-LD script once.

    Malformed scripts get one pass through the JSON sanitizer before being
    skipped.
    """
    documents = []
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            documents.append(json.loads(raw))
            continue
        except json.JSONDecodeError:
            pass
        try:
            documents.append(json.loads(sanitize_json_string(raw)))
        except json.JSONDecodeError:
            continue
    return documents


def find_recipe_node(data: Any, max_depth: int = MAX_JSONLD_DEPTH) -> Optional[Dict[str, Any]]:
    """
    Breadth-first search for a node whose @type is (or includes) Recipe.

    Walks @graph containers, arrays and nested objects; depth and node
    caps bound pathological input.
    """
    queue = deque([(data, 0)])
    visited = 0
    while queue and visited < MAX_JSONLD_NODES:
        node, depth = queue.popleft()
        visited += 1
        if depth > max_depth:
            continue
        if isinstance(node, dict):
            if is_recipe_type(node.get("@type")):
                return node
            for value in node.values():
                if isinstance(value, (dict, list)):
                    queue.append((value, depth + 1))
        elif isinstance(node, list):
            for item in node:
                if isinstance(item, (dict, list)):
                    queue.append((item, depth + 1))
    return None


def _instruction_texts(value: Any, depth: int = 0) -> List[str]:
    if value is None or depth > MAX_JSONLD_DEPTH:
        return []

    if isinstance(value, str):
        # One step per line for newline-separated blobs
        return [line for line in value.splitlines() if line.strip()]

    if isinstance(value, list):
        steps = []
        for item in value:
            steps.extend(_instruction_texts(item, depth + 1))
        return steps

    if not isinstance(value, dict):
        return []

    if _has_type(value, "HowToStep"):
        text = extract_text(value.get("text") or value.get("name") or value.get("description"))
        if text:
            return [text]

    for container in ("itemListElement", "hasStep"):
        if value.get(container):
            return _instruction_texts(value[container], depth + 1)

    for key in INSTRUCTION_TEXT_FIELDS:
        text = value.get(key)
        if isinstance(text, str) and text.strip():
            return [text]

    # Unknown object: keep any sentence-length string values
    return [v for v in value.values() if isinstance(v, str) and len(v) > 10 and not v.startswith(("http", "@"))]


def flatten_instructions(value: Any) -> List[str]:
    """
    Flatten recipeInstructions of any published shape into clean steps.

    Handles plain strings, lists, HowToStep, HowToSection (itemListElement
    or hasStep), ItemList, position-numbered objects and generic text
    fields. Each step loses its leading numbering and ends in punctuation.
    """
    steps = finalize_instructions(_instruction_texts(value))
    if not steps and isinstance(value, dict):
        for key in INSTRUCTION_ALTERNATE_KEYS:
            if value.get(key):
                steps = finalize_instructions(_instruction_texts(value[key]))
                if steps:
                    break
    return steps


def extract_ingredients(node: Dict[str, Any]) -> List[str]:
    for key in INGREDIENT_KEYS:
        ingredients = [clean_text(i) for i in extract_text_list(node.get(key))]
        ingredients = [i for i in ingredients if i]
        if ingredients:
            return ingredients

    for key, value in node.items():
        if "ingredient" in key.lower() and value:
            ingredients = [clean_text(i) for i in extract_text_list(value)]
            ingredients = [i for i in ingredients if i]
            if ingredients:
                return ingredients
    return []


def normalize_jsonld_images(image_data: Any) -> List[Dict[str, Any]]:
    """
    Normalize a JSON-LD image field to [{url, width, height}].

    Handles:
    - String: single URL
    - List[str]: array of URLs
    - List[dict]: array of ImageObject
    - dict: single ImageObject
    """
    entries: List[Dict[str, Any]] = []
    items = image_data if isinstance(image_data, list) else [image_data]
    for img in items:
        if isinstance(img, str) and img.strip():
            entries.append({"url": img.strip(), "width": None, "height": None})
        elif isinstance(img, dict):
            url = img.get("url") or img.get("contentUrl") or img.get("@id")
            if isinstance(url, list):
                url = url[0] if url else None
            if isinstance(url, str) and url.strip():
                entries.append({
                    "url": url.strip(),
                    "width": _to_int(img.get("width")),
                    "height": _to_int(img.get("height")),
                })
    return entries


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, dict):
        value = value.get("value") or value.get("@value")
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip().rstrip("px"))
    except ValueError:
        return None
    return int(number) if math.isfinite(number) else None


def _category_tags(node: Dict[str, Any]) -> List[str]:
    tags: List[str] = []
    for key in ("recipeCategory", "recipeCuisine"):
        value = node.get(key)
        if isinstance(value, str):
            parts = [p.strip() for p in value.split(",")]
        else:
            parts = extract_text_list(value)
        for tag in parts:
            tag = clean_text(tag)
            if tag and tag not in tags:
                tags.append(tag)
    return tags


def parse_recipe_node(node: Dict[str, Any], url: str) -> ScrapedRecipe:
    """Build a (possibly partial) recipe from a JSON-LD Recipe node."""
    images = normalize_jsonld_images(node.get("image"))
    return ScrapedRecipe(
        title=clean_text(extract_text(node.get("name") or node.get("headline"))),
        description=clean_text(extract_text(node.get("description"))) or None,
        image=absolutize(images[0]["url"], url) if images else None,
        prep_time=parse_duration(node.get("prepTime")),
        cook_time=parse_duration(node.get("cookTime")),
        total_time=parse_duration(node.get("totalTime")),
        servings=parse_yield(node.get("recipeYield") or node.get("yield")),
        ingredients=extract_ingredients(node),
        instructions=flatten_instructions(node.get("recipeInstructions")),
        source_url=url,
        tags=_category_tags(node),
    )


class JsonLdExtractor:
    """Extracts the first JSON-LD Recipe node on the page."""

    def __init__(self):
        self.logger = LayerLogger("jsonld_extractor")

    def extract(self, soup: BeautifulSoup, url: str) -> Optional[ScrapedRecipe]:
        for document in parse_jsonld_scripts(soup):
            node = find_recipe_node(document)
            if node is None:
                continue
            recipe = parse_recipe_node(node, url)
            if recipe.title:
                return recipe
            self.logger.log_decision(
                decision="skip_recipe_node",
                reason="Recipe node has no name",
                url=url,
            )
        return None


# =========================================================================
# MICRODATA
# =========================================================================

def _itemprop_value(element: Tag) -> str:
    for attribute in ("content", "datetime"):
        if element.get(attribute):
            return clean_text(element[attribute])
    if element.name == "img":
        return element.get("src", "")
    if element.name in ("a", "link") and element.get("href"):
        return element["href"]
    return element_text(element)


class MicrodataExtractor:
    """Reads itemprop children of a schema.org/Recipe item scope."""

    SCOPE_SELECTOR = '[itemtype*="schema.org/Recipe"]'

    def extract(self, soup: BeautifulSoup, url: str) -> Optional[ScrapedRecipe]:
        scope = soup.select_one(self.SCOPE_SELECTOR)
        if scope is None:
            return None

        def values(prop: str) -> List[str]:
            return [v for v in (_itemprop_value(el) for el in scope.select(f'[itemprop="{prop}"]')) if v]

        def first(prop: str) -> str:
            found = values(prop)
            return found[0] if found else ""

        title = first("name")
        if not title:
            return None

        instruction_texts: List[str] = []
        for element in scope.select('[itemprop="recipeInstructions"]'):
            items = element.select("li")
            if items:
                instruction_texts.extend(element_text(li) for li in items)
            else:
                instruction_texts.extend(element.get_text("\n", strip=True).splitlines())

        image = first("image")
        return ScrapedRecipe(
            title=title,
            description=first("description") or None,
            image=absolutize(image, url) if image else None,
            prep_time=parse_duration(first("prepTime")),
            cook_time=parse_duration(first("cookTime")),
            total_time=parse_duration(first("totalTime")),
            servings=parse_yield(first("recipeYield")),
            ingredients=values("recipeIngredient") or values("ingredients"),
            instructions=finalize_instructions(instruction_texts),
            source_url=url,
            tags=values("recipeCategory") + values("recipeCuisine"),
        )


# =========================================================================
# CSS SELECTORS
# =========================================================================

@dataclass
class SelectorProfile:
    """Ranked selectors per recipe field."""
    title: List[str]
    ingredients: List[str]
    instructions: List[str]
    description: List[str] = field(default_factory=list)
    image: List[str] = field(default_factory=list)
    prep_time: List[str] = field(default_factory=list)
    cook_time: List[str] = field(default_factory=list)
    total_time: List[str] = field(default_factory=list)
    servings: List[str] = field(default_factory=list)
    difficulty: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)


GENERIC_PROFILE = SelectorProfile(
    title=["h1", ".recipe-title", ".entry-title", '[itemprop="name"]', "title"],
    ingredients=[
        ".recipe-ingredient",
        ".ingredients li",
        '[itemprop="recipeIngredient"]',
        ".ingredient",
        ".recipe-ingredients li",
        ".ingredients-section li",
    ],
    instructions=[
        ".recipe-instruction",
        ".instructions li",
        ".directions li",
        '[itemprop="recipeInstructions"]',
        ".instruction",
        ".recipe-instructions li",
        ".method li",
        ".directions-section li",
    ],
    description=[
        ".recipe-description",
        ".recipe-summary",
        ".entry-summary",
        '[itemprop="description"]',
        'meta[name="description"]',
    ],
    image=[
        ".recipe-image img",
        ".recipe-photo img",
        ".featured-image img",
        ".entry-content img",
        "article img",
    ],
    prep_time=[".prep-time", ".recipe-prep-time"],
    cook_time=[".cook-time", ".recipe-cook-time"],
    total_time=[".total-time", ".recipe-total-time"],
    servings=[".servings", ".recipe-yield", ".recipe-servings", ".yield"],
    difficulty=[".difficulty", ".recipe-difficulty"],
)


def extract_with_selectors(soup: BeautifulSoup, profile: SelectorProfile, url: str) -> Optional[ScrapedRecipe]:
    """Apply a selector profile; returns None without a title."""
    title = select_first_text(soup, profile.title)
    if not title:
        return None

    def time_field(selectors: List[str]) -> Optional[str]:
        text = select_first_text(soup, selectors)
        return parse_time_text(text) if text else None

    servings_text = select_first_text(soup, profile.servings)
    tags = select_all_texts(soup, profile.tags) if profile.tags else []

    return ScrapedRecipe(
        title=title,
        description=select_first_text(soup, profile.description) or None,
        image=select_image(soup, profile.image, url),
        prep_time=time_field(profile.prep_time),
        cook_time=time_field(profile.cook_time),
        total_time=time_field(profile.total_time),
        servings=parse_yield(servings_text) if servings_text else None,
        difficulty=select_first_text(soup, profile.difficulty) or None,
        ingredients=select_all_texts(soup, profile.ingredients),
        instructions=finalize_instructions(select_all_texts(soup, profile.instructions)),
        source_url=url,
        tags=tags,
    )


class CssSelectorExtractor:
    """Last-resort extraction using common recipe class names."""

    def __init__(self, profile: SelectorProfile = GENERIC_PROFILE):
        self.profile = profile

    def extract(self, soup: BeautifulSoup, url: str) -> Optional[ScrapedRecipe]:
        return extract_with_selectors(soup, self.profile, url)
