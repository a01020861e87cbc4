"""
Text normalization helpers shared by extractors, validation and the AI layer.
"""
import math
import re
from html.entities import html5
from typing import Any, List, Optional

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
_ENTITY_RE = re.compile(r"&(#[xX][0-9a-fA-F]+|#[0-9]+|[A-Za-z][A-Za-z0-9]*);")
_MAX_CODE_POINT = 0x10FFFF

# Named entities that decode differently from the HTML5 table
_NAMED_OVERRIDES = {"nbsp": " "}

_STEP_NUMBER_RE = re.compile(r"^\d+\.\s*")
_STEP_LABEL_RE = re.compile(r"^Step\s+\d+:?\s*", re.IGNORECASE)

_ISO_DURATION_RE = re.compile(
    r"P(?:(\d+)D)?T(?:(\d+(?:\.\d+)?)H)?(?:(\d+(?:\.\d+)?)M)?", re.IGNORECASE
)
_HOURS_RE = re.compile(r"(\d+)\s*(?:hours?|hrs?|h)\b", re.IGNORECASE)
_MINUTES_RE = re.compile(r"(\d+)\s*(?:minutes?|mins?|m)\b", re.IGNORECASE)

_MIXED_NUMBER_RE = re.compile(r"(\d+)\s+(\d+)\s*/\s*(\d+)")
_FRACTION_RE = re.compile(r"(\d+)\s*/\s*(\d+)")
_RANGE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:-|–|—|to)\s*(\d+(?:\.\d+)?)")
_APPROX_RE = re.compile(r"(?:about|approximately|around|~)\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


def decode_html_entities(text: str) -> str:
    """
    Decode named and numeric (decimal/hex) HTML entities.

    Numeric references outside 1..0x10FFFF and unknown names are left as-is.
    """
    if not text or "&" not in text:
        return text

    def replace(match: re.Match) -> str:
        body = match.group(1)
        if body.startswith("#"):
            if body[1] in "xX":
                code = int(body[2:], 16)
            else:
                code = int(body[1:])
            if 0 < code <= _MAX_CODE_POINT:
                return chr(code)
            return match.group(0)

        if body in _NAMED_OVERRIDES:
            return _NAMED_OVERRIDES[body]
        decoded = html5.get(body + ";")
        return decoded if decoded is not None else match.group(0)

    return _ENTITY_RE.sub(replace, text)


def strip_tags(text: str) -> str:
    return _TAG_RE.sub("", text)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def clean_text(text: Optional[str]) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    if not text:
        return ""
    return collapse_whitespace(decode_html_entities(strip_tags(str(text))))


def ensure_terminal_punctuation(text: str) -> str:
    text = text.rstrip()
    if text and text[-1] not in ".!?":
        return text + "."
    return text


def clean_instruction(text: str) -> str:
    """Remove leading step numbering ("1.", "Step 2:")."""
    text = text.strip()
    text = _STEP_NUMBER_RE.sub("", text)
    text = _STEP_LABEL_RE.sub("", text)
    return text.strip()


def extract_text(value: Any) -> str:
    """Pull a display string out of a JSON-LD value of unknown shape."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in ("text", "name", "@value"):
            inner = value.get(key)
            if isinstance(inner, str) and inner:
                return inner
        return ""
    if isinstance(value, list):
        for item in value:
            text = extract_text(item)
            if text:
                return text
        return ""
    if isinstance(value, bool):
        return ""
    return str(value)


def extract_text_list(value: Any) -> List[str]:
    """Normalize a JSON-LD value (string, list, object) to a list of strings."""
    if not value:
        return []
    items = value if isinstance(value, list) else [value]
    texts = []
    for item in items:
        text = extract_text(item).strip()
        if text:
            texts.append(text)
    return texts


def format_duration(hours: int, minutes: int) -> Optional[str]:
    if hours and minutes:
        return f"{hours}h {minutes}min"
    if hours:
        return f"{hours}h"
    if minutes:
        return f"{minutes}min"
    return None


def parse_time_text(text: str) -> Optional[str]:
    """Parse free text like "1 hour 20 mins" into "1h 20min"."""
    if not text:
        return None
    hours_match = _HOURS_RE.search(text)
    minutes_match = _MINUTES_RE.search(text)
    hours = int(hours_match.group(1)) if hours_match else 0
    minutes = int(minutes_match.group(1)) if minutes_match else 0
    return format_duration(hours, minutes)


def parse_duration(value: Any) -> Optional[str]:
    """
    Render an ISO-8601 duration (PT1H30M) as "1h 30min".

    Non-ISO strings are parsed as free text; unparseable text is returned
    trimmed so that no publisher-provided information is lost.
    """
    text = extract_text(value).strip()
    if not text:
        return None

    match = _ISO_DURATION_RE.search(text)
    if match and any(match.groups()):
        days = int(match.group(1) or 0)
        hours = float(match.group(2) or 0)
        minutes = float(match.group(3) or 0)
        total = days * 24 * 60 + hours * 60 + minutes
        if not math.isfinite(total):
            return text
        total_minutes = int(round(total))
        return format_duration(total_minutes // 60, total_minutes % 60)

    return parse_time_text(text) or text


def _round_servings(value: float) -> Optional[int]:
    if not math.isfinite(value) or value <= 0:
        return None
    return max(1, int(value + 0.5))


def parse_yield(value: Any) -> Optional[int]:
    """
    Parse a recipe yield into a serving count.

    Handles plain numbers, fractions ("1/2"), mixed numbers ("1 1/2"),
    ranges ("2-3", averaged), approximations ("about 6"), and otherwise
    takes the first number in the text.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _round_servings(float(value))
    if isinstance(value, list):
        for item in value:
            parsed = parse_yield(item)
            if parsed:
                return parsed
        return None

    text = extract_text(value).strip().lower()
    if not text:
        return None

    match = _MIXED_NUMBER_RE.search(text)
    if match:
        whole, numerator, denominator = (int(g) for g in match.groups())
        if denominator:
            return _round_servings(whole + numerator / denominator)

    match = _FRACTION_RE.search(text)
    if match:
        numerator, denominator = (int(g) for g in match.groups())
        if denominator:
            return _round_servings(numerator / denominator)

    match = _RANGE_RE.search(text)
    if match:
        low, high = (float(g) for g in match.groups())
        return _round_servings((low + high) / 2)

    match = _APPROX_RE.search(text)
    if match:
        return _round_servings(float(match.group(1)))

    match = _NUMBER_RE.search(text)
    if match:
        return _round_servings(float(match.group(1)))

    return None
