"""
Safe JSON parsing for language-model output.

Models occasionally return near-JSON: code fences, comments, trailing commas,
bare keys, unescaped quotes inside values. Parsing is an ordered list of
repair attempts; the first one that yields valid JSON wins.
"""
import json
import re
from typing import Any, Callable, List, Optional, Tuple

from recipe_acquisition.errors import ModelResponseError
from recipe_acquisition.utils.logger import LayerLogger

logger = LayerLogger("json_repair")

_CODE_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*")
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_]\w*)\s*:")
_DOUBLE_COMMA_RE = re.compile(r",\s*,")

DIAGNOSTIC_PREVIEW_CHARS = 500


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE_RE.sub("", text).strip()


def _split_segments(text: str) -> List[Tuple[bool, str]]:
    """Split text into (is_string_literal, chunk) pieces, honoring escapes."""
    segments: List[Tuple[bool, str]] = []
    buffer: List[str] = []
    in_string = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            buffer.append(ch)
            if ch == "\\" and i + 1 < len(text):
                buffer.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                segments.append((True, "".join(buffer)))
                buffer = []
                in_string = False
        else:
            if ch == '"':
                if buffer:
                    segments.append((False, "".join(buffer)))
                buffer = [ch]
                in_string = True
            else:
                buffer.append(ch)
        i += 1
    if buffer:
        segments.append((in_string, "".join(buffer)))
    return segments


def _map_outside_strings(text: str, transform: Callable[[str], str]) -> str:
    return "".join(
        chunk if is_string else transform(chunk)
        for is_string, chunk in _split_segments(text)
    )


def escape_stray_quotes(text: str) -> str:
    """
    Escape quotes that appear inside string values.

    A quote closes a string only when the next non-space character is a
    structural one (`:` `,` `}` `]`) or the end of input.
    """
    out: List[str] = []
    in_string = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            if ch == "\\" and i + 1 < n:
                out.append(text[i:i + 2])
                i += 2
                continue
            if ch == '"':
                j = i + 1
                while j < n and text[j] in " \t\r\n":
                    j += 1
                if j >= n or text[j] in ",:}]":
                    in_string = False
                    out.append(ch)
                else:
                    out.append('\\"')
                i += 1
                continue
            out.append(ch)
        else:
            if ch == '"':
                in_string = True
            out.append(ch)
        i += 1
    return "".join(out)


def _strip_comments(chunk: str) -> str:
    chunk = _BLOCK_COMMENT_RE.sub("", chunk)
    return _LINE_COMMENT_RE.sub("", chunk)


def _repair_structure(chunk: str) -> str:
    chunk = _TRAILING_COMMA_RE.sub(r"\1", chunk)
    chunk = _BARE_KEY_RE.sub(r'\1"\2":', chunk)
    chunk = _TRAILING_COMMA_RE.sub(r"\1", chunk)
    chunk = _DOUBLE_COMMA_RE.sub(",", chunk)
    return chunk


def sanitize_json_string(text: str) -> str:
    """Apply every structural repair to near-JSON text."""
    text = strip_code_fences(text.strip())
    # Comments go first so a quote before one still reads as closing
    text = _map_outside_strings(text, _strip_comments)
    text = escape_stray_quotes(text)
    text = _map_outside_strings(text, _repair_structure)
    return text.replace("\x00", "").strip()


def slice_outer_braces(text: str) -> Optional[str]:
    """Substring from the first `{` to the last `}`."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def extract_balanced_object(text: str) -> Optional[str]:
    """Find the first complete top-level object by tracking brace depth."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        ch = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def _sanitized(extract: Callable[[str], Optional[str]]) -> Callable[[str], Optional[str]]:
    def attempt(text: str) -> Optional[str]:
        candidate = extract(text)
        return sanitize_json_string(candidate) if candidate else None
    return attempt


# Ordered repair attempts: first successful parse wins
PARSE_ATTEMPTS: List[Tuple[str, Callable[[str], Optional[str]]]] = [
    ("raw", lambda text: text),
    ("sanitized", sanitize_json_string),
    ("outer_braces", _sanitized(slice_outer_braces)),
    ("brace_depth", _sanitized(extract_balanced_object)),
]


def parse_with_attempts(content: str, context: str = "AI response") -> Tuple[Any, str]:
    """
    Parse near-JSON content, returning the value and the attempt that worked.

    Raises ModelResponseError when every attempt fails.
    """
    errors: List[str] = []
    for name, transform in PARSE_ATTEMPTS:
        candidate = transform(content or "")
        if not candidate:
            errors.append(f"{name}: nothing to parse")
            continue
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError as e:
            errors.append(f"{name}: {e.msg}")
            continue
        if name != "raw":
            logger.log_action("json_repair", "completed", context=context, attempt=name)
        return value, name

    logger.log_error(
        f"All JSON parse attempts failed for {context}",
        error_type="json_parse_error",
        attempts=errors,
        content_preview=(content or "")[:DIAGNOSTIC_PREVIEW_CHARS],
    )
    raise ModelResponseError(f"Invalid JSON response from {context}: {errors[-1]}")


def safe_json_parse(content: str, context: str = "AI response") -> Any:
    """Parse near-JSON content through the ordered repair attempts."""
    value, _ = parse_with_attempts(content, context)
    return value
