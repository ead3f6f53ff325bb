"""Tools the model may call, and their function-calling schemas.

Only two tools exist: ``sql_query_tool`` runs one policy-checked query and
``cannot_answer_tool`` lets the model decline with an explanation.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from vaultmind.entities.query_validator.policy import validate_sql
from vaultmind.entities.shared.errors import (
    AgentError,
    CannotAnswerError,
    engine_error_from_exception,
)
from vaultmind.entities.shared.protocols import QueryExecutor
from vaultmind.models import QueryResult

logger = logging.getLogger(__name__)

SQL_QUERY_TOOL = "sql_query_tool"
CANNOT_ANSWER_TOOL = "cannot_answer_tool"

SQL_LOG_MAX_CHARS = 200

TOOL_SCHEMAS: list[dict[str, Any]] = [
    {
        "tool": SQL_QUERY_TOOL,
        "description": (
            "Executes a valid SQL query against the database to answer a user's question. "
            "Use this for any data retrieval or calculation."
        ),
        "params": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "A complete and valid SQL query to run on the available tables.",
                },
            },
            "required": ["query"],
        },
    },
    {
        "tool": CANNOT_ANSWER_TOOL,
        "description": (
            "Call this tool if you determine that the user's question cannot be answered with "
            "the available tables and columns. Provide a clear explanation."
        ),
        "params": {
            "type": "object",
            "properties": {
                "explanation": {
                    "type": "string",
                    "description": (
                        "A clear and concise explanation to the user about why their question "
                        "cannot be answered. For example, mention which specific columns are missing."
                    ),
                },
            },
            "required": ["explanation"],
        },
    },
]


def function_definitions() -> list[dict[str, Any]]:
    """Return the tool schemas in OpenAI ``functions`` format."""
    return [
        {"name": t["tool"], "description": t["description"], "parameters": t["params"]}
        for t in TOOL_SCHEMAS
    ]


def truncate_sql(sql: str) -> str:
    return sql if len(sql) <= SQL_LOG_MAX_CHARS else sql[:SQL_LOG_MAX_CHARS] + "..."


@dataclass(frozen=True)
class SqlToolResult:
    """Outcome of one ``sql_query_tool`` execution."""

    sql: str
    result: QueryResult
    warnings: list[str] = field(default_factory=list)


async def sql_query_tool(
    execute_query: QueryExecutor,
    args: dict[str, Any],
    *,
    allowed_tables: Iterable[str],
    max_rows: int,
) -> SqlToolResult:
    """Validate ``args["query"]`` against the policy and execute it.

    Args:
        execute_query: Query executor.
        args: Tool arguments from the model (or a template).
        allowed_tables: Tables the query may reference.
        max_rows: Row cap enforced by the policy.

    Returns:
        The executed SQL, its result and any policy warnings.

    Raises:
        SqlPolicyError: If the SQL violates the policy.
        MissingColumnError: If the engine reports a missing column.
        SqlExecutionError: For any other engine failure.
    """
    query = args.get("query")
    policy = validate_sql(
        query if isinstance(query, str) else "",
        allowed_tables=allowed_tables,
        max_rows=max_rows,
    )
    if policy.warnings:
        logger.info("SQL policy warnings: %s", policy.warnings)

    logger.info("Executing query: %s", truncate_sql(policy.normalized_sql))
    try:
        result = await execute_query.execute(policy.normalized_sql)
    except AgentError:
        raise
    except Exception as exc:
        error = engine_error_from_exception(exc)
        logger.warning("Query failed (%s): %s", error.category.value, exc)
        raise error from exc

    logger.info("Query returned %d rows", result.row_count)
    return SqlToolResult(sql=policy.normalized_sql, result=result, warnings=policy.warnings)


async def cannot_answer_tool(
    execute_query: QueryExecutor,
    args: dict[str, Any],
    **_: Any,
) -> SqlToolResult:
    """Raise ``CannotAnswerError`` with the model's explanation."""
    explanation = args.get("explanation")
    if not isinstance(explanation, str) or not explanation.strip():
        explanation = "The question cannot be answered with the available data."
    logger.info("Model declined to answer: %s", explanation)
    raise CannotAnswerError(explanation)


ToolFn = Callable[..., Awaitable[SqlToolResult]]

TOOLS: dict[str, ToolFn] = {
    SQL_QUERY_TOOL: sql_query_tool,
    CANNOT_ANSWER_TOOL: cannot_answer_tool,
}
