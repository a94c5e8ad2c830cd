"""JSON extraction from model output.

Models asked for raw JSON still wrap it in markdown fences or prose now and then; these helpers
recover the first JSON object instead of failing the whole expansion.
"""

from __future__ import annotations

import json
import re
from typing import Any

from researchtree.logging import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(?P<body>.*?)\n?```", re.DOTALL | re.IGNORECASE)
_DECODER = json.JSONDecoder()


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first JSON object found in `text`, or None.

    Tried in order: a fenced code block, the whole text, then every `{` position scanning
    left to right.
    """

    if not text:
        return None

    cleaned = text.strip()
    m = _FENCE_RE.search(cleaned)
    if m:
        obj = _loads_object(m.group("body").strip())
        if obj is not None:
            return obj

    obj = _loads_object(cleaned)
    if obj is not None:
        return obj

    for i, ch in enumerate(cleaned):
        if ch != "{":
            continue
        try:
            candidate, _end = _DECODER.raw_decode(cleaned, i)
        except json.JSONDecodeError:
            continue
        if isinstance(candidate, dict):
            return candidate

    logger.debug("extract_json_object: no JSON object found")
    return None


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None
