"""User-facing messages for failed runs.

Pure functions that turn a typed pipeline error into a message safe to show
in the UI: raw SQL echoed back by the engine is stripped, and each category
gets a short hint on how to rephrase.
"""

from __future__ import annotations

import re

from .errors import (
    AgentError,
    ClarificationNeededError,
    ErrorCategory,
    SqlExecutionError,
    SqlPolicyError,
)

# ── Engine echo patterns ────────────────────────────────────────────────

# DuckDB appends the offending query as "LINE 1: SELECT ..." plus a caret line
_ENGINE_ECHO_RE = re.compile(r"\n\s*LINE \d+:.*", re.DOTALL)
_SQL_FRAGMENT_RE = re.compile(r"\bselect\b.+?\bfrom\b.*", re.IGNORECASE | re.DOTALL)

_CATEGORY_HINTS: dict[ErrorCategory, str] = {
    ErrorCategory.UNKNOWN_COLUMN_OR_TABLE: (
        "Check the column names in your file, or mention the column you mean explicitly."
    ),
    ErrorCategory.SQL_SYNTAX_ERROR: (
        "I had trouble constructing a valid query. Could you rephrase your question?"
    ),
    ErrorCategory.SCHEMA_INSUFFICIENT: (
        "The loaded data does not seem to contain what this question needs."
    ),
    ErrorCategory.LLM_ERROR: "The model reply could not be used. Please try again.",
}

CANCELLED_MESSAGE = "Cancelled."
UNKNOWN_MESSAGE = "Unknown error."


def strip_sql_echo(message: str) -> str:
    """Remove query text that engine errors echo back.

    Args:
        message: Raw engine or pipeline message.

    Returns:
        The message without ``LINE n:`` echoes or trailing SQL statements.
    """
    cleaned = _ENGINE_ECHO_RE.sub("", message)
    # Only strip a trailing statement when something precedes it
    match = _SQL_FRAGMENT_RE.search(cleaned)
    if match and match.start() > 0:
        cleaned = cleaned[: match.start()].rstrip(" :\n")
    return cleaned.strip()


def budget_exceeded_message(max_duration_ms: int) -> str:
    seconds = max_duration_ms / 1000
    return f"The request exceeded the time budget of {seconds:g}s. Try a narrower question."


def build_error_message(error: BaseException) -> str:
    """Build the message returned to the caller for a failed run.

    Clarification and policy messages are already user-facing and pass
    through unchanged. Other typed errors get their cleaned message plus a
    category hint when one exists.

    Args:
        error: The exception that ended the run.

    Returns:
        A message free of raw SQL.
    """
    if isinstance(error, (ClarificationNeededError, SqlPolicyError)):
        return str(error)
    if not isinstance(error, AgentError):
        return strip_sql_echo(str(error)) or UNKNOWN_MESSAGE
    if error.category is ErrorCategory.CANCELLED:
        return CANCELLED_MESSAGE

    if isinstance(error, SqlExecutionError):
        text = strip_sql_echo(str(error))
    else:
        text = str(error).strip()
    text = text or UNKNOWN_MESSAGE

    hint = _CATEGORY_HINTS.get(error.category)
    if hint and hint not in text:
        return f"{text}\n{hint}"
    return text


def error_category_of(error: BaseException) -> ErrorCategory:
    """Return the category carried by ``error`` (``UNKNOWN`` for foreign exceptions)."""
    if isinstance(error, AgentError):
        return error.category
    return ErrorCategory.UNKNOWN
