from __future__ import annotations

import json
from typing import Any


def _strip_code_fence(text: str) -> str:
    if not text.startswith("```"):
        return text
    parts = text.split("```")
    if len(parts) >= 2:
        text = parts[1]
    if text.startswith("json"):
        text = text[4:]
    return text.strip()


def extract_json_object(raw_text: str | None) -> dict[str, Any] | None:
    """Pull the first-to-last brace span out of a model response and parse it.

    The model is asked for bare JSON but routinely wraps it in commentary or a
    fenced block. Returns None when nothing parseable is found; callers treat
    that as an empty result, never as an error.
    """
    if not raw_text:
        return None
    text = raw_text.strip()
    fenced = _strip_code_fence(text)
    # A leading fence without an object inside is commentary; scan everything.
    if "{" in fenced:
        text = fenced
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
