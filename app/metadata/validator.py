"""Response validator: turn free-form backend text into a GenerationResult.

Only invalid JSON is fatal. Every field is sanitized on its own, so a bad
value in one field never discards the others:

  - category: exact member of MovieCategory, else "Drama"
  - year: integer (leading digits of a string, truncated float), else the
    current calendar year; 0 counts as missing
  - strings: non-string or missing becomes "", unpaired surrogates are
    dropped, then truncated to the limit
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from app.schemas.generation import GenerationResult, MovieCategory

DEFAULT_CATEGORY = MovieCategory.DRAMA

# Field name → maximum length
STRING_FIELD_LIMITS: dict[str, int] = {
    "description": 3000,
    "summary": 200,
    "director": 100,
    "cast": 300,
    "rating": 20,
    "tags": 200,
}

_FENCE_OPEN = re.compile(r"^\s*```[\w-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?[ \t]*```\s*$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_SURROGATES = re.compile("[\ud800-\udfff]")
_CATEGORIES = {c.value: c for c in MovieCategory}


class MalformedOutputError(ValueError):
    """Backend output is not a JSON object."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` (or bare ```) wrapper, if any."""
    cleaned = _FENCE_OPEN.sub("", text, count=1)
    cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def _current_year() -> int:
    return datetime.now(timezone.utc).year


def sanitize_category(value: Any) -> MovieCategory:
    if isinstance(value, str) and value in _CATEGORIES:
        return _CATEGORIES[value]
    return DEFAULT_CATEGORY


def parse_year(value: Any) -> int | None:
    """Integer value of ``value``, or None if it has none."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else None
    return None


def sanitize_string(value: Any, max_length: int) -> str:
    if not isinstance(value, str):
        return ""
    # json.loads accepts escaped lone surrogates that cannot be encoded
    return _SURROGATES.sub("", value)[:max_length]


class ResponseValidator:
    """Parse and sanitize raw model output into the fixed result schema."""

    def __init__(self, current_year: Callable[[], int] = _current_year):
        self._current_year = current_year

    def validate(self, raw_text: str) -> GenerationResult:
        """
        Raises:
            MalformedOutputError: the text (minus code fences) is not a JSON object.
        """
        cleaned = strip_code_fences(raw_text or "")
        try:
            parsed = json.loads(cleaned)
        except ValueError as e:
            raise MalformedOutputError(f"Invalid JSON from backend: {e}", raw_text=raw_text) from e

        if not isinstance(parsed, dict):
            raise MalformedOutputError(
                f"Expected a JSON object, got {type(parsed).__name__}",
                raw_text=raw_text,
            )

        return self.sanitize(parsed)

    def sanitize(self, data: dict[str, Any]) -> GenerationResult:
        year = parse_year(data.get("year"))
        fields = {name: sanitize_string(data.get(name), limit) for name, limit in STRING_FIELD_LIMITS.items()}
        return GenerationResult(
            category=sanitize_category(data.get("category")),
            year=year or self._current_year(),
            **fields,
        )
