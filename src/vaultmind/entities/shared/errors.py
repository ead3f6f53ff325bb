"""Typed error hierarchy for the agent core.

Every failure the pipeline raises on purpose carries its category and the
stop reason it maps to, set at the throw site. The supervisor reads these
attributes instead of pattern-matching exception messages.
"""

from __future__ import annotations

import re
from enum import Enum

from vaultmind.models import StopReason


class ErrorCategory(str, Enum):
    """Observability category attached to errors and ``agent.error`` events."""

    QUERY_MISUNDERSTOOD = "QUERY_MISUNDERSTOOD"
    SCHEMA_INSUFFICIENT = "SCHEMA_INSUFFICIENT"
    SQL_SYNTAX_ERROR = "SQL_SYNTAX_ERROR"
    UNKNOWN_COLUMN_OR_TABLE = "UNKNOWN_COLUMN_OR_TABLE"
    SEMANTIC_MISMATCH = "SEMANTIC_MISMATCH"
    POLICY_DENIED = "POLICY_DENIED"
    TOOL_ERROR = "TOOL_ERROR"
    LLM_ERROR = "LLM_ERROR"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


class PolicyReason(str, Enum):
    """Machine-readable reason codes for SQL policy rejections."""

    EMPTY_SQL = "EMPTY_SQL"
    MULTI_STATEMENT = "MULTI_STATEMENT"
    NOT_SELECT = "NOT_SELECT"
    WRITE_KEYWORD = "WRITE_KEYWORD"
    TABLE_NOT_ALLOWED = "TABLE_NOT_ALLOWED"


class AgentError(Exception):
    """Base class for failures raised deliberately by the pipeline."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    stop_reason: StopReason = StopReason.TOOL_ERROR


class ClarificationNeededError(AgentError):
    """The run cannot continue without more input from the user."""

    category = ErrorCategory.QUERY_MISUNDERSTOOD
    stop_reason = StopReason.NEED_CLARIFICATION

    def __init__(self, questions: list[str] | None = None, message: str | None = None) -> None:
        self.questions: list[str] = [q for q in (questions or []) if q]
        if message is None:
            if self.questions:
                message = "Need clarification:\n- " + "\n- ".join(self.questions)
            else:
                message = "Need clarification to proceed."
        super().__init__(message)


class SqlPolicyError(AgentError):
    """Candidate SQL violated the read-only policy."""

    category = ErrorCategory.POLICY_DENIED
    stop_reason = StopReason.POLICY_DENIED

    def __init__(
        self,
        message: str,
        reason: PolicyReason,
        *,
        tables: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.tables: list[str] = list(tables or [])


class SqlExecutionError(AgentError):
    """The engine rejected or failed to run a query."""

    category = ErrorCategory.TOOL_ERROR

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        engine_message: str | None = None,
    ) -> None:
        super().__init__(message)
        if category is not None:
            self.category = category
        self.engine_message = engine_message


class MissingColumnError(SqlExecutionError):
    """The query referenced a column the table does not have."""

    def __init__(
        self, message: str, missing_column: str, *, engine_message: str | None = None
    ) -> None:
        super().__init__(
            message, category=ErrorCategory.UNKNOWN_COLUMN_OR_TABLE, engine_message=engine_message
        )
        self.missing_column = missing_column


class CannotAnswerError(AgentError):
    """The model declared the question unanswerable with the loaded data."""

    category = ErrorCategory.SCHEMA_INSUFFICIENT


class ToolCallParseError(AgentError):
    """The model reply carried no recognisable tool call."""

    category = ErrorCategory.LLM_ERROR

    def __init__(self, message: str, *, raw_snippet: str = "") -> None:
        super().__init__(message)
        self.raw_snippet = raw_snippet


class LlmRequestError(AgentError):
    """The chat-completions endpoint failed or sent back no reply."""

    category = ErrorCategory.LLM_ERROR


class ToolNotRegisteredError(AgentError):
    """The model asked for a tool that does not exist."""

    category = ErrorCategory.UNKNOWN
    stop_reason = StopReason.UNKNOWN


class SqlRepairError(AgentError):
    """The auto-repair round produced no usable SQL."""

    category = ErrorCategory.LLM_ERROR


class SchemaUnavailableError(AgentError):
    """No user tables could be introspected."""

    category = ErrorCategory.SCHEMA_INSUFFICIENT


class RunCancelledError(AgentError):
    """The run's cancellation token fired."""

    category = ErrorCategory.CANCELLED
    stop_reason = StopReason.CANCELLED

    def __init__(self, message: str = "Request was cancelled.") -> None:
        super().__init__(message)


# ── Engine message classification ───────────────────────────────────────

_MISSING_COLUMN_PATTERNS = (
    re.compile(r'Column "([^"]+)" not found', re.IGNORECASE),
    re.compile(r"Unknown column '([^']+)'", re.IGNORECASE),
)
_MISSING_TABLE_RE = re.compile(r"Table with name \S+ does not exist", re.IGNORECASE)
_SYNTAX_RE = re.compile(r"syntax\s+error", re.IGNORECASE)
_TIMESTAMPTZ_BINDER_RE = re.compile(
    r"Binder Error:.*-\(TIMESTAMP WITH TIME ZONE, INTERVAL\)", re.IGNORECASE | re.DOTALL
)


def find_missing_column(message: str) -> str | None:
    """Return the column named by a column-not-found engine message."""
    for pattern in _MISSING_COLUMN_PATTERNS:
        match = pattern.search(message)
        if match and match.group(1):
            return match.group(1)
    return None


def is_timestamptz_interval_error(message: str) -> bool:
    """True for DuckDB's ``-(TIMESTAMP WITH TIME ZONE, INTERVAL)`` binder error."""
    return bool(_TIMESTAMPTZ_BINDER_RE.search(message))


def classify_engine_error(message: str) -> ErrorCategory:
    """Map a raw engine error message to an ``ErrorCategory``.

    Args:
        message: Exception text raised by the query-execution callback.

    Returns:
        The best-matching category; ``TOOL_ERROR`` when nothing matches.
    """
    if find_missing_column(message) or _MISSING_TABLE_RE.search(message):
        return ErrorCategory.UNKNOWN_COLUMN_OR_TABLE
    if _SYNTAX_RE.search(message) or is_timestamptz_interval_error(message):
        return ErrorCategory.SQL_SYNTAX_ERROR
    return ErrorCategory.TOOL_ERROR


def engine_error_from_exception(exc: Exception) -> SqlExecutionError:
    """Convert an exception from the execution callback into a typed error.

    Args:
        exc: Whatever the query-execution callback raised.

    Returns:
        ``MissingColumnError`` for column-not-found messages, otherwise a
        ``SqlExecutionError`` carrying the classified category.
    """
    if isinstance(exc, SqlExecutionError):
        return exc
    message = str(exc) or exc.__class__.__name__
    missing = find_missing_column(message)
    if missing:
        return MissingColumnError(
            f"The column '{missing}' was not found in the table.",
            missing,
            engine_message=message,
        )
    return SqlExecutionError(
        message, category=classify_engine_error(message), engine_message=message
    )
