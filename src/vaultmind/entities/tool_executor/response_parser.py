"""Normalize model replies into a canonical ``ToolCall``.

Providers disagree on where a tool call lives: the legacy ``function_call``
field, the ``tool_calls`` array, or a ``{thought, action: {tool, args}}``
JSON object in plain content. Each shape has one extractor; they run in
order and the first non-``None`` result wins.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Sequence
from typing import Any

from vaultmind.entities.shared.llm_json import parse_json_object
from vaultmind.models import ToolCall

logger = logging.getLogger(__name__)

RAW_SNIPPET_MAX_CHARS = 500
UNKNOWN_REASON = "An unknown error occurred while processing the AI response."

_THOUGHT_RE = re.compile(r'"thought":\s*"(.*?)(?<!\\)"', re.DOTALL)
_EXPLANATION_RE = re.compile(r'"explanation":\s*"(.*?)(?<!\\)"', re.DOTALL)

Extractor = Callable[[dict[str, Any]], "ToolCall | None"]


def _arguments_text(arguments: Any) -> str:
    if isinstance(arguments, str):
        return arguments or "{}"
    if arguments is None:
        return "{}"
    return json.dumps(arguments, ensure_ascii=False)


def from_function_call(message: dict[str, Any]) -> ToolCall | None:
    """Read the legacy ``function_call`` field."""
    call = message.get("function_call")
    if not isinstance(call, dict) or not call.get("name"):
        return None
    return ToolCall(tool_name=call["name"], arguments=_arguments_text(call.get("arguments")))


def from_tool_calls(message: dict[str, Any]) -> ToolCall | None:
    """Read the first function entry of the ``tool_calls`` array."""
    calls = message.get("tool_calls")
    if not isinstance(calls, list) or not calls:
        return None
    first = calls[0]
    if not isinstance(first, dict) or first.get("type", "function") != "function":
        return None
    function = first.get("function")
    if not isinstance(function, dict) or not function.get("name"):
        return None
    return ToolCall(tool_name=function["name"], arguments=_arguments_text(function.get("arguments")))


def from_content_json(message: dict[str, Any]) -> ToolCall | None:
    """Read a ``{thought, action: {tool, args}}`` object from the content."""
    content = message.get("content")
    if not isinstance(content, str):
        return None
    parsed = parse_json_object(content)
    if parsed is None:
        return None
    action = parsed.get("action")
    if not isinstance(action, dict) or not isinstance(action.get("tool"), str) or not action["tool"]:
        return None
    thought = parsed.get("thought")
    return ToolCall(
        tool_name=action["tool"],
        arguments=_arguments_text(action.get("args") or {}),
        thought=thought if isinstance(thought, str) and thought else None,
    )


DEFAULT_EXTRACTORS: tuple[Extractor, ...] = (
    from_function_call,
    from_tool_calls,
    from_content_json,
)


def extract_tool_call(
    message: dict[str, Any],
    extractors: Sequence[Extractor] = DEFAULT_EXTRACTORS,
) -> ToolCall | None:
    """Run ``extractors`` in order and return the first tool call found."""
    for extractor in extractors:
        call = extractor(message)
        if call is not None:
            logger.debug("Tool call extracted by %s: %s", extractor.__name__, call.tool_name)
            return call
    return None


def parse_tool_arguments(arguments: str) -> dict[str, Any]:
    """Decode tool arguments; anything but a JSON object becomes ``{}``."""
    try:
        value = json.loads(arguments or "{}")
    except (json.JSONDecodeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


def raw_snippet(message: dict[str, Any]) -> str:
    content = message.get("content")
    return content[:RAW_SNIPPET_MAX_CHARS] if isinstance(content, str) else ""


def extract_failure_reason(message: dict[str, Any]) -> str:
    """Explain why no tool call could be extracted, from whatever the model said.

    Tries the JSON ``thought`` or ``action.args.explanation``, then a regex
    over malformed JSON, then a raw snippet of the content.

    Args:
        message: The model message with no recognisable tool call.

    Returns:
        A human-readable reason; never empty.
    """
    content = message.get("content")
    if not isinstance(content, str) or not content:
        return UNKNOWN_REASON

    reason = ""
    parsed = parse_json_object(content)
    if parsed is not None:
        thought = parsed.get("thought")
        action = parsed.get("action")
        args = action.get("args") if isinstance(action, dict) else None
        explanation = args.get("explanation") if isinstance(args, dict) else None
        if isinstance(thought, str) and thought:
            reason = thought
        elif isinstance(explanation, str) and explanation:
            reason = explanation
    else:
        match = _THOUGHT_RE.search(content) or _EXPLANATION_RE.search(content)
        if match and match.group(1):
            reason = match.group(1).replace('\\"', '"')

    return reason or content[:RAW_SNIPPET_MAX_CHARS]
