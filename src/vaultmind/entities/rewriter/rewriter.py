"""Query rewrite step.

Turns the raw question into a structured directive (task type, table scope,
risk flags, clarification gate) with exactly one LLM call. The directive
decides whether schema discovery runs and whether the pipeline stops to ask
the user a question before any SQL is generated.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from vaultmind.entities.shared.cancellation import CancellationToken
from vaultmind.entities.shared.llm_json import parse_json_object
from vaultmind.entities.shared.protocols import ChatCompletionClient
from vaultmind.models import RISK_FLAGS, RewriteResult

logger = logging.getLogger(__name__)

DEFAULT_REWRITE = RewriteResult()

_TASK_TYPES = frozenset({"data_qna", "profiling", "sql_debug", "workflow"})

SYSTEM_PROMPT = (
    "You are a strict JSON rewriting engine. "
    "You must output ONLY one valid JSON object and nothing else."
)

USER_PROMPT_TEMPLATE = """Rewrite the user query into a compact JSON directive.

Rules:
- Output MUST be a single JSON object.
- Do not include markdown.
- confidence must be a number between 0 and 1.
- tableScope must be either "auto" or an array of table names.
- If columns/tables are unclear, set riskFlags to include "needs_schema_discovery".
- If information is missing to run any query, set needClarification=true and provide 1-3 clarifyingQuestions.

Return schema:
{{
  "taskType": "data_qna" | "profiling" | "sql_debug" | "workflow",
  "tableScope": "auto" | string[],
  "confidence": number,
  "riskFlags": string[],
  "assumptions": string[],
  "needClarification": boolean,
  "clarifyingQuestions": string[]
}}

User query:
{user_input}

Schema digest:
{schema_digest}
"""


def _clamp01(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def parse_rewrite(content: str | None) -> RewriteResult:
    """Coerce a model reply into a ``RewriteResult``.

    Unusable replies yield the default directive; individual bad fields
    fall back field by field.

    Args:
        content: Raw message content.

    Returns:
        The normalized directive.
    """
    obj = parse_json_object(content)
    if obj is None:
        return DEFAULT_REWRITE

    task_type = obj.get("taskType")
    if task_type not in _TASK_TYPES:
        task_type = "data_qna"

    raw_scope = obj.get("tableScope")
    table_scope: str | list[str] = _string_list(raw_scope) if isinstance(raw_scope, list) else "auto"

    risk_flags: list[str] = []
    if isinstance(obj.get("riskFlags"), list):
        for flag in obj["riskFlags"]:
            normalized = flag if isinstance(flag, str) and flag in RISK_FLAGS else "unknown"
            if normalized not in risk_flags:
                risk_flags.append(normalized)

    return RewriteResult(
        task_type=task_type,
        table_scope=table_scope,
        confidence=_clamp01(obj.get("confidence"), DEFAULT_REWRITE.confidence),
        risk_flags=risk_flags,
        assumptions=_string_list(obj.get("assumptions")),
        need_clarification=bool(obj.get("needClarification")),
        clarifying_questions=_string_list(obj.get("clarifyingQuestions")),
    )


async def rewrite_query(
    llm: ChatCompletionClient,
    user_input: str,
    schema_digest: str,
    cancellation: CancellationToken | None = None,
) -> RewriteResult:
    """Produce the rewrite directive for one question.

    Args:
        llm: Chat completion client.
        user_input: The user's question.
        schema_digest: Compact schema context.
        cancellation: Run token; checked before the call is issued.

    Returns:
        The directive; the default one when the reply is unusable.

    Raises:
        RunCancelledError: If the run was cancelled before the call.
        Exception: Provider errors propagate unchanged.
    """
    if cancellation is not None:
        cancellation.raise_if_cancelled()

    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": USER_PROMPT_TEMPLATE.format(
                user_input=user_input, schema_digest=schema_digest
            ),
        },
    ]
    reply = await llm.complete(messages)
    content = reply.get("content")
    if not isinstance(content, str):
        logger.warning("Rewrite reply had no text content, using default directive")
        return DEFAULT_REWRITE

    result = parse_rewrite(content)
    logger.info(
        "Rewrite: task=%s confidence=%.2f flags=%s clarify=%s",
        result.task_type,
        result.confidence,
        result.risk_flags,
        result.need_clarification,
    )
    return result
