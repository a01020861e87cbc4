"""
URL helpers: validation, cache-key normalization and hashing.
"""
from typing import Optional
from urllib.parse import urljoin, urlparse, urlunparse

_UINT32_MASK = 0xFFFFFFFF
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def is_valid_url(url: str) -> bool:
    """Accept absolute http(s) URLs with a host."""
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def get_hostname(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def normalize_url_for_cache(url: str) -> str:
    """
    Normalize a URL for cache lookups.

    Keeps scheme, host and path; drops query string, fragment and
    trailing slashes so cosmetic variants share one cache entry.
    """
    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/")
    normalized = urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, "", "", ""))
    return normalized.rstrip("/")


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def hash_string(text: str) -> str:
    """Stable djb2 hash (uint32) rendered in base 36."""
    value = 5381
    for char in text:
        value = ((value << 5) + value + ord(char)) & _UINT32_MASK
    return _to_base36(value)


def cache_key_for_url(url: str) -> str:
    return hash_string(normalize_url_for_cache(url))


def absolutize(url: Optional[str], base_url: str) -> Optional[str]:
    """Resolve a possibly relative or protocol-relative URL against the page URL."""
    if not url:
        return None
    url = url.strip()
    if not url or url.startswith("data:"):
        return None
    if url.startswith("//"):
        scheme = urlparse(base_url).scheme or "https"
        return f"{scheme}:{url}"
    if not url.startswith("http"):
        try:
            return urljoin(base_url, url)
        except ValueError:
            return None
    return url
