"""
interviewmate/utils/validators.py — Safe JSON extraction and value coercion
Model output is free text; these helpers pull structured data out of it
without raising.
"""
from __future__ import annotations

import json
import math
from typing import Any, Optional

from loguru import logger

_decoder = json.JSONDecoder()


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    return text


def _first_json(text: str, opener: str, expected: type) -> Optional[Any]:
    text = strip_code_fences(text)
    start = text.find(opener)
    while start != -1:
        try:
            value, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(value, expected):
                return value
        start = text.find(opener, start + 1)
    logger.debug(f"No JSON {expected.__name__} found in text: {text[:200]!r}")
    return None


def extract_json_object(text: str) -> Optional[dict[str, Any]]:
    """Return the first decodable JSON object in `text`, or None."""
    return _first_json(text or "", "{", dict)


def extract_json_array(text: str) -> Optional[list[Any]]:
    """Return the first decodable JSON array in `text`, or None."""
    return _first_json(text or "", "[", list)


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp a float value between min and max."""
    return max(min_val, min(max_val, value))


def coerce_score(value: Any, default: float) -> float:
    """
    Numeric value clamped to [0, 100]; anything non-numeric (including bools,
    NaN and numeric strings that fail to parse) takes `default`.
    """
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return default
    if isinstance(value, int):
        # JSON integers are unbounded; clamp before converting
        return float(clamp(value, 0, 100))
    if not isinstance(value, float) or math.isnan(value):
        return default
    return clamp(value, 0.0, 100.0)


def string_list(value: Any, default: list[str], max_items: int) -> list[str]:
    """Keep the non-empty string items of a list, truncated; non-lists take `default`."""
    if not isinstance(value, list):
        return list(default)
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return items[:max_items]
