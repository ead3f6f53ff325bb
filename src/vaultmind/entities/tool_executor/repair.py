"""Single-shot SQL auto-repair.

When ``sql_query_tool`` fails with a recoverable error, the failing SQL,
the engine message and the schema digest go to the model once, asking for
strict ``{patchedSql, explanation}`` JSON. The patched SQL still passes the
policy before it runs.
"""

from __future__ import annotations

import logging
import re

from vaultmind.entities.shared.errors import (
    MissingColumnError,
    SqlExecutionError,
    SqlRepairError,
    is_timestamptz_interval_error,
)
from vaultmind.entities.shared.llm_json import parse_json_object
from vaultmind.entities.shared.protocols import ChatCompletionClient
from vaultmind.models import SqlRepairResult

from .tools import SQL_QUERY_TOOL

logger = logging.getLogger(__name__)

DEFAULT_EXPLANATION = "Auto-repaired the SQL based on the error message."
SCHEMA_DIGEST_MAX_CHARS = 4000

SYSTEM_PROMPT = (
    "You are a SQL debugging engine for DuckDB. "
    "Output ONLY one valid JSON object. No markdown. No extra text."
)

USER_PROMPT_TEMPLATE = """Fix the SQL query based on the execution error.

Rules:
- Output MUST be a single JSON object.
- patchedSql must be DuckDB-compatible.
- IMPORTANT: Use double quotes for identifiers (e.g., "column"). Do NOT use backticks.
- Do NOT use tables/columns outside the schema digest.
- Prefer minimal changes.
- If you see type errors involving TIMESTAMP WITH TIME ZONE and INTERVAL (e.g., "-(TIMESTAMP WITH TIME ZONE, INTERVAL)"), fix it by explicitly casting to TIMESTAMP or DATE before subtracting intervals.
  Examples:
  - CAST("ts" AS TIMESTAMP) - INTERVAL '30 days'
  - CAST("ts" AS DATE) >= CURRENT_DATE - INTERVAL '30 days'

Return schema:
{{
  "patchedSql": string,
  "explanation": string
}}

Failed SQL:
{failed_sql}

Error message:
{error_message}

Schema digest:
{schema_digest}
"""

_SYNTAX_ERROR_RE = re.compile(r"syntax\s+error", re.IGNORECASE)


def error_message_of(error: BaseException) -> str:
    """Prefer the raw engine message over the user-facing one."""
    if isinstance(error, SqlExecutionError) and error.engine_message:
        return error.engine_message
    return str(error) or "Unknown SQL tool error."


def is_repairable(tool_name: str, failed_sql: str, error: BaseException) -> bool:
    """Decide whether a failed tool call qualifies for auto-repair.

    Args:
        tool_name: The tool that failed.
        failed_sql: The SQL the model asked for (may be empty).
        error: The raised exception.

    Returns:
        True for ``sql_query_tool`` failures with known SQL that are a
        missing column, a syntax error, or the TIMESTAMPTZ-INTERVAL binder error.
    """
    if tool_name != SQL_QUERY_TOOL or not failed_sql:
        return False
    if isinstance(error, MissingColumnError):
        return True
    message = error_message_of(error)
    return bool(_SYNTAX_ERROR_RE.search(message)) or is_timestamptz_interval_error(message)


async def debug_sql_once(
    llm: ChatCompletionClient,
    failed_sql: str,
    error_message: str,
    schema_digest: str,
) -> SqlRepairResult:
    """Ask the model for one patched query.

    Args:
        llm: Chat completion client.
        failed_sql: The SQL that failed.
        error_message: The engine's error text.
        schema_digest: Schema context; capped before sending.

    Returns:
        The patched SQL and an explanation.

    Raises:
        SqlRepairError: If the reply carries no usable SQL.
    """
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": USER_PROMPT_TEMPLATE.format(
                failed_sql=failed_sql,
                error_message=error_message,
                schema_digest=schema_digest[:SCHEMA_DIGEST_MAX_CHARS],
            ),
        },
    ]
    reply = await llm.complete(messages)
    content = reply.get("content")
    if not isinstance(content, str) or not content:
        raise SqlRepairError("SQL debug failed: empty model response.")

    parsed = parse_json_object(content)
    if parsed is None:
        raise SqlRepairError("SQL debug failed: model output is not valid JSON.")

    patched = parsed.get("patchedSql")
    patched_sql = patched.strip() if isinstance(patched, str) else ""
    if not patched_sql:
        raise SqlRepairError("SQL debug failed: patchedSql is empty.")

    explanation = parsed.get("explanation")
    explanation = explanation.strip() if isinstance(explanation, str) else ""

    logger.info("SQL repair proposed a patched query")
    return SqlRepairResult(patched_sql=patched_sql, explanation=explanation or DEFAULT_EXPLANATION)
