"""
Image Resolution Engine for the Recipe Acquisition Pipeline.

Collects hero-image candidates from structured data, social meta tags and
scored <img> elements, then validates them in order with HEAD probes. The
first candidate that is really a reasonably large image wins; every failure
degrades to "no image".
"""
import re
from typing import Any, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup, Tag

from recipe_acquisition.adapters.request_service import RequestService
from recipe_acquisition.adapters.structured_data import (
    find_recipe_node,
    first_srcset_url,
    image_attribute,
    normalize_jsonld_images,
    parse_jsonld_scripts,
)
from recipe_acquisition.config import config
from recipe_acquisition.errors import FetchError
from recipe_acquisition.utils.logger import LayerLogger
from recipe_acquisition.utils.urls import absolutize

BAD_IMAGE_TOKENS = ["logo", "icon", "sprite", "avatar", "ad", "banner", "placeholder", "pixel", "spacer"]
_BAD_TOKEN_RE = re.compile(r"\b(?:" + "|".join(BAD_IMAGE_TOKENS) + r")\b", re.IGNORECASE)
_SRCSET_WIDTH_RE = re.compile(r"^(\d+)w$")
_LEADING_INT_RE = re.compile(r"^\s*(\d+)")

MIN_JSONLD_IMAGE_WIDTH = 400
MIN_IMG_WIDTH = 300
SRCSET_UPGRADE_WIDTH = 600
_RECIPE_CONTAINER_CLASSES = {"recipe", "entry-content", "post-content"}

# (attribute, value) pairs checked in order after JSON-LD
META_IMAGE_TAGS = [
    ("property", "og:image"),
    ("property", "og:image:url"),
    ("name", "twitter:image"),
    ("name", "twitter:image:src"),
    ("property", "instagram:image"),
    ("name", "pinterest:media"),
]


def is_likely_bad_image_url(url: str) -> bool:
    """Reject vector/icon files and URLs naming logos, ads, sprites and the like."""
    lowered = url.lower()
    if lowered.endswith((".svg", ".ico")):
        return True
    return bool(_BAD_TOKEN_RE.search(lowered))


def _parse_dimension(value: Any) -> Optional[int]:
    if value is None:
        return None
    match = _LEADING_INT_RE.match(str(value))
    return int(match.group(1)) if match else None


def _meta_content(soup: BeautifulSoup, attribute: str, value: str) -> Optional[str]:
    tag = soup.find("meta", attrs={attribute: value})
    if tag is None:
        # Publishers mix up property= and name=
        other = "name" if attribute == "property" else "property"
        tag = soup.find("meta", attrs={other: value})
    content = tag.get("content") if tag else None
    return content.strip() if content and content.strip() else None


def find_meta_image(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    """First usable og/twitter/link image, without probing it."""
    for attribute, value in META_IMAGE_TAGS[:4]:
        resolved = absolutize(_meta_content(soup, attribute, value), base_url)
        if resolved and not is_likely_bad_image_url(resolved):
            return resolved
    link = soup.find("link", rel="image_src")
    if link and link.get("href"):
        resolved = absolutize(link["href"], base_url)
        if resolved and not is_likely_bad_image_url(resolved):
            return resolved
    return None


class ImageResolver:
    """
    Hero-image resolution with HEAD validation.

    Candidate order: JSON-LD, og:image, twitter:image, instagram:image,
    pinterest:media, link[rel=image_src], <picture> sources, scored <img>.
    """

    def __init__(self, request_service: Optional[RequestService] = None):
        self.logger = LayerLogger("image_resolution")
        self.request_service = request_service or RequestService()

    # =========================================================================
    # CANDIDATES
    # =========================================================================

    def _pick_best_jsonld_image(self, image_data: Any, base_url: str) -> Optional[str]:
        entries = []
        for entry in normalize_jsonld_images(image_data):
            url = absolutize(entry["url"], base_url)
            if not url or is_likely_bad_image_url(url):
                continue
            if entry["width"] is not None and entry["width"] < MIN_JSONLD_IMAGE_WIDTH:
                continue
            entries.append({**entry, "url": url})
        if not entries:
            return None

        def score(entry: Dict[str, Any]) -> int:
            if entry["width"] is not None:
                return entry["width"]
            if entry["height"] is not None:
                return entry["height"]
            return 0

        return max(entries, key=score)["url"]

    def jsonld_candidate(self, soup: BeautifulSoup, base_url: str) -> Optional[str]:
        for document in parse_jsonld_scripts(soup):
            node = find_recipe_node(document)
            if node:
                candidate = self._pick_best_jsonld_image(node.get("image"), base_url)
                if candidate:
                    return candidate
                rating = node.get("aggregateRating")
                if isinstance(rating, dict) and rating.get("image"):
                    candidate = self._pick_best_jsonld_image(rating["image"], base_url)
                    if candidate:
                        return candidate

            if isinstance(document, dict):
                if document.get("image"):
                    candidate = self._pick_best_jsonld_image(document["image"], base_url)
                    if candidate:
                        return candidate
                main_entity = document.get("mainEntity")
                if isinstance(main_entity, dict) and main_entity.get("image"):
                    candidate = self._pick_best_jsonld_image(main_entity["image"], base_url)
                    if candidate:
                        return candidate
        return None

    def meta_candidates(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        candidates = []
        for attribute, value in META_IMAGE_TAGS:
            resolved = absolutize(_meta_content(soup, attribute, value), base_url)
            if resolved:
                candidates.append(resolved)
        link = soup.find("link", rel="image_src")
        if link and link.get("href"):
            resolved = absolutize(link["href"], base_url)
            if resolved:
                candidates.append(resolved)
        return candidates

    def picture_candidate(self, soup: BeautifulSoup, base_url: str) -> Optional[str]:
        for picture in soup.find_all("picture"):
            for source in picture.find_all("source"):
                first = first_srcset_url(source.get("srcset") or "")
                resolved = absolutize(first, base_url)
                if resolved and not is_likely_bad_image_url(resolved):
                    return resolved
            img = picture.find("img")
            width = _parse_dimension(img.get("width")) if img is not None else None
            if img is not None and (width is None or width >= MIN_IMG_WIDTH):
                resolved = absolutize(img.get("src"), base_url)
                if resolved and not is_likely_bad_image_url(resolved):
                    return resolved
        return None

    def _best_srcset_source(self, srcset: str) -> Optional[str]:
        best_url, best_width = None, 0
        for source in srcset.split(","):
            parts = source.strip().split()
            if len(parts) < 2:
                continue
            match = _SRCSET_WIDTH_RE.match(parts[1])
            if match and int(match.group(1)) > best_width:
                best_width = int(match.group(1))
                best_url = parts[0]
        return best_url if best_width >= SRCSET_UPGRADE_WIDTH else None

    def score_img(self, img: Tag, url: str) -> Optional[int]:
        """Heuristic hero score; None means rejected outright."""
        width = _parse_dimension(img.get("width"))
        height = _parse_dimension(img.get("height"))
        if width is not None and width < MIN_IMG_WIDTH:
            return None

        score = 0
        if width is not None:
            if width >= 600:
                score += 3
            elif width >= 400:
                score += 2
        if height is not None:
            if height >= 400:
                score += 2
            elif height >= 300:
                score += 1
        if width is not None and height:
            if 1.2 <= width / height <= 2.2:
                score += 2

        own_class = " ".join(img.get("class") or [])
        parent_class = " ".join(img.parent.get("class") or []) if isinstance(img.parent, Tag) else ""
        class_text = f"{own_class} {parent_class}".lower()
        if any(word in class_text for word in ("recipe", "hero", "featured")):
            score += 2
        if any(word in class_text for word in ("nav", "footer", "aside")):
            score -= 4

        if self._in_recipe_container(img):
            score += 3

        lowered = url.lower()
        if any(word in lowered for word in ("recipe", "hero", "featured", "main")):
            score += 2
        if is_likely_bad_image_url(lowered):
            score -= 5
        return score

    def _in_recipe_container(self, img: Tag) -> bool:
        for parent in img.parents:
            if parent.name == "article":
                return True
            if _RECIPE_CONTAINER_CLASSES.intersection(parent.get("class") or []):
                return True
        return False

    def img_candidates(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        """Every <img> URL that is not rejected outright, highest score first."""
        scored = []
        for img in soup.find_all("img"):
            resolved = absolutize(image_attribute(img), base_url)
            if not resolved or is_likely_bad_image_url(resolved):
                continue

            srcset = img.get("srcset")
            if srcset:
                upgraded = absolutize(self._best_srcset_source(srcset), base_url)
                if upgraded and not is_likely_bad_image_url(upgraded):
                    resolved = upgraded

            score = self.score_img(img, resolved)
            if score is not None:
                scored.append((score, resolved))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [url for _, url in scored]

    def collect_candidates(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        """All candidates in priority order, de-duplicated."""
        ordered: List[Optional[str]] = [self.jsonld_candidate(soup, base_url)]
        ordered.extend(self.meta_candidates(soup, base_url))
        ordered.append(self.picture_candidate(soup, base_url))
        ordered.extend(self.img_candidates(soup, base_url))

        seen = set()
        candidates = []
        for url in ordered:
            if url and url not in seen:
                seen.add(url)
                candidates.append(url)
        return candidates

    # =========================================================================
    # VALIDATION
    # =========================================================================

    async def validate_image_url(self, image_url: str) -> bool:
        """HEAD-probe a candidate: 2xx/3xx, image content type, not tiny."""
        if not image_url or is_likely_bad_image_url(image_url):
            return False

        try:
            response = await self.request_service.head(
                image_url,
                timeout=config.IMAGE_PROBE_TIMEOUT_SECONDS,
                max_redirects=3,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.logger.log_fetch_attempt(image_url, 1, None, "failed", error=str(e))
            return False

        if not 200 <= response.status_code < 400:
            self.logger.log_fetch_attempt(image_url, 1, response.status_code, "rejected", reason="status")
            return False

        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("image/"):
            self.logger.log_fetch_attempt(
                image_url, 1, response.status_code, "rejected", reason="content_type", content_type=content_type
            )
            return False

        content_length = _parse_dimension(response.headers.get("content-length"))
        if content_length and content_length < config.IMAGE_MIN_BYTES:
            self.logger.log_fetch_attempt(
                image_url, 1, response.status_code, "rejected", reason="too_small", content_length=content_length
            )
            return False

        return True

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    async def resolve(self, url: str, html: Optional[str]) -> Optional[str]:
        """First validated candidate from the page, or None."""
        if not html:
            return None

        soup = BeautifulSoup(html, "lxml")
        candidates = self.collect_candidates(soup, url)
        self.logger.log_action("resolve_image", "started", url=url, candidate_count=len(candidates))

        for index, candidate in enumerate(candidates, start=1):
            if await self.validate_image_url(candidate):
                self.logger.log_action("resolve_image", "success", url=url, image=candidate, candidate_index=index)
                return candidate

        self.logger.log_decision(
            decision="no_image",
            reason="no candidate passed validation",
            url=url,
            candidate_count=len(candidates),
        )
        return None

    async def resolve_with_refetch(self, url: str, html: Optional[str] = None) -> Optional[str]:
        """
        Re-fetch the page with a desktop browser identity, then resolve.

        Client-supplied or first-pass HTML is used when the re-fetch fails.
        """
        fresh_html = None
        try:
            response = await self.request_service.fetch_with_retry(
                url,
                timeout=config.IMAGE_REFETCH_TIMEOUT_SECONDS,
                retries=config.IMAGE_REFETCH_RETRIES,
                delay=config.IMAGE_REFETCH_DELAY_SECONDS,
                user_agent="chrome",
            )
            fresh_html = response.html
        except FetchError as e:
            self.logger.log_fallback(
                from_source="fresh_html",
                to_source="existing_html",
                reason=e.message,
                url=url,
            )

        return await self.resolve(url, fresh_html or html)
