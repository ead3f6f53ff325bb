"""Lenient parsing of JSON objects embedded in model replies."""

from __future__ import annotations

import json
from typing import Any

_FENCE = "```"


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def parse_json_object(response_text: str | None) -> dict[str, Any] | None:
    """Parse the first JSON object in a model reply.

    Tries, in order: the whole text, a fenced code block, and the span from
    the first ``{`` to the last ``}``.

    Args:
        response_text: Raw message content from the model.

    Returns:
        The parsed object, or ``None`` when no JSON object can be recovered.
    """
    if not response_text:
        return None
    text = response_text.strip()

    parsed = _loads_object(text)
    if parsed is not None:
        return parsed

    if _FENCE in text:
        start = text.find(_FENCE) + len(_FENCE)
        # Skip an optional language tag such as ```json
        newline = text.find("\n", start)
        end = text.find(_FENCE, start)
        if newline != -1 and newline < end:
            start = newline + 1
        if end > start:
            parsed = _loads_object(text[start:end].strip())
            if parsed is not None:
                return parsed

    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        return _loads_object(text[first : last + 1])
    return None
