"""Utilities for pulling JSON objects out of free-form LLM responses."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract the first JSON object found in *text* and return it as a dict.

    The outermost ``{ ... }`` span wins; a fenced code block is only used when
    no braces are present at all.
    """

    cleaned = text.strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end != -1 and end > start:
        snippet = cleaned[start : end + 1]
    else:
        match = _FENCE_RE.search(cleaned)
        if not match:
            raise ValueError("No JSON object found in LLM response")
        snippet = match.group(1).strip()
    data = json.loads(snippet)
    if not isinstance(data, dict):
        raise ValueError("LLM response JSON is not an object")
    return data
