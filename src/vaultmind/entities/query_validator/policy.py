"""Pure read-only SQL policy.

Normalizes and validates a candidate SQL string before it reaches the
engine: single SELECT/WITH statements only, no write keywords, tables
restricted to an allowlist, and a hard row cap. No I/O, no engine access.

This is a lightweight guard, not a SQL parser: it targets the common ways
a model (or a user) produces unsafe or unbounded SQL.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable

from vaultmind.entities.shared.errors import PolicyReason, SqlPolicyError
from vaultmind.models import SqlPolicyResult

logger = logging.getLogger(__name__)

WRITE_KEYWORDS: tuple[str, ...] = (
    "insert",
    "update",
    "delete",
    "drop",
    "alter",
    "create",
    "attach",
    "detach",
    "copy",
    "export",
    "pragma",
    "vacuum",
)

TIMESTAMP_FIX_WARNING = "Applied TIMESTAMPTZ-INTERVAL normalization (CAST to TIMESTAMP)."

# Single-quoted literals and double-quoted identifiers, with doubled-quote escapes
_QUOTED = r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\""
_QUOTED_RE = re.compile(_QUOTED)
_COMMENT_RE = re.compile(rf"({_QUOTED})|/\*.*?\*/|--[^\n]*", re.DOTALL)
_BACKTICK_RE = re.compile(rf"({_QUOTED})|`([^`]+)`")
_WHITESPACE_RE = re.compile(rf"({_QUOTED})|\s+")
_TRAILING_SEMICOLONS_RE = re.compile(r"(?:\s*;)+\s*$")

# <ident> - INTERVAL '...' where <ident> is not already the tail of a CAST(...)
_IDENT_MINUS_INTERVAL_RE = re.compile(
    r"(?<![\w$\"])([A-Za-z_][\w$]*|\"[^\"]+\")(\s*-\s*INTERVAL\s*'[^']+')",
    re.IGNORECASE,
)
_CURRENT_TS_MINUS_INTERVAL_RE = re.compile(
    r"\bCURRENT_TIMESTAMP(\s*-\s*INTERVAL\s*'[^']+')",
    re.IGNORECASE,
)

_WRITE_KEYWORD_RES: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (kw, re.compile(rf"\b{kw}\b", re.IGNORECASE)) for kw in WRITE_KEYWORDS
)

_NAME = r"(?:\"[^\"]+\"|`[^`]+`|\[[^\]]+\]|[A-Za-z_][\w$]*)"
_NAME_SEGMENT_RE = re.compile(_NAME)
_QUALIFIED_NAME = rf"{_NAME}(?:\s*\.\s*{_NAME})*"
_TABLE_KEYWORD_RE = re.compile(r"\b(from|join)\b", re.IGNORECASE)
_FROM_ITEM_RE = re.compile(
    rf"\s*(?:lateral\s+)?(?!lateral\b)({_QUALIFIED_NAME})", re.IGNORECASE
)
# Keywords that end a FROM list at its own nesting level
_FROM_LIST_END_RE = re.compile(
    r"\b(?:where|group|order|limit|offset|having|qualify|window|union|intersect|except)\b",
    re.IGNORECASE,
)
_STRING_LITERAL_RE = re.compile(r"'(?:[^']|'')*'")
# EXTRACT(part FROM col) and friends use FROM without naming a table
_FROM_FUNCTION_RE = re.compile(r"\b(?:extract|trim|substring|overlay)\s*\([^()]*\)", re.IGNORECASE)
_WITH_RE = re.compile(r"\bwith(?:\s+recursive)?\s+", re.IGNORECASE)
_CTE_HEAD_RE = re.compile(
    r"\s*(\"[^\"]+\"|[A-Za-z_][\w$]*)\s*(?:\([^()]*\)\s*)?as\s*(?:(?:not\s+)?materialized\s*)?\(",
    re.IGNORECASE,
)
_CTE_SEPARATOR_RE = re.compile(r"\)\s*,")
_LIMIT_RE = re.compile(r"\blimit\s+(\d+)\b", re.IGNORECASE)


def _outside_quotes(
    pattern: re.Pattern[str], replace: Callable[[re.Match[str]], str], sql: str
) -> str:
    """Apply ``replace`` to matches of ``pattern`` whose first group is not a quoted span."""
    return pattern.sub(lambda m: m.group(1) or replace(m), sql)


def strip_comments(sql: str) -> str:
    """Replace block and line comments outside quotes with a space."""
    return _outside_quotes(_COMMENT_RE, lambda m: " ", sql)


def normalize_identifiers(sql: str) -> str:
    """Convert MySQL-style backtick identifiers to DuckDB double quotes."""
    return _outside_quotes(_BACKTICK_RE, lambda m: f'"{m.group(2)}"', sql)


def collapse_whitespace(sql: str) -> str:
    return _outside_quotes(_WHITESPACE_RE, lambda m: " ", sql).strip()


def mask_quoted(sql: str) -> str:
    """Blank the inside of literals and quoted identifiers, keeping every offset."""
    return _QUOTED_RE.sub(lambda m: m.group()[0] + " " * (len(m.group()) - 2) + m.group()[-1], sql)


def normalize_timestamp_interval(sql: str) -> tuple[str, bool]:
    """Cast the left operand of ``x - INTERVAL '...'`` to ``TIMESTAMP``.

    DuckDB has no ``-(TIMESTAMP WITH TIME ZONE, INTERVAL)`` overload, so
    ``CURRENT_TIMESTAMP - INTERVAL '7 day'`` fails to bind. Already-cast
    operands end in ``)`` and are left alone, which keeps this idempotent.

    Args:
        sql: Comment-free SQL.

    Returns:
        Tuple of (patched SQL, whether anything changed).
    """
    patched, n_ident = _IDENT_MINUS_INTERVAL_RE.subn(r"CAST(\1 AS TIMESTAMP)\2", sql)
    patched, n_current = _CURRENT_TS_MINUS_INTERVAL_RE.subn(
        r"CAST(CURRENT_TIMESTAMP AS TIMESTAMP)\1", patched
    )
    return patched, (n_ident + n_current) > 0


def _has_multiple_statements(sql: str) -> bool:
    """True when a semicolon appears anywhere but the very end."""
    return ";" in _TRAILING_SEMICOLONS_RE.sub("", sql)


def _is_select_like(sql: str) -> bool:
    lowered = sql.lstrip().lower()
    return lowered.startswith("select") or lowered.startswith("with")


def _find_write_keyword(sql: str) -> str | None:
    for keyword, pattern in _WRITE_KEYWORD_RES:
        if pattern.search(sql):
            return keyword
    return None


def _unquote(name: str) -> str:
    if len(name) >= 2 and (name[0], name[-1]) in {('"', '"'), ("`", "`"), ("[", "]")}:
        return name[1:-1]
    return name


def _group_end(masked: str, start: int) -> int:
    """Index of the ``)`` closing the group open at ``start``, or ``len(masked)``."""
    depth = 0
    for i in range(start, len(masked)):
        char = masked[i]
        if char == "(":
            depth += 1
        elif char == ")":
            if depth == 0:
                return i
            depth -= 1
    return len(masked)


def _next_from_item(masked: str, start: int) -> int | None:
    """Offset just past the comma ending the FROM item at ``start``.

    ``None`` when the item is the last one of its FROM list.
    """
    depth = 0
    for i in range(start, len(masked)):
        char = masked[i]
        if char == "(":
            depth += 1
        elif char == ")":
            if depth == 0:
                return None
            depth -= 1
        elif depth == 0:
            if char == ",":
                return i + 1
            if _FROM_LIST_END_RE.match(masked, i):
                return None
    return None


def _table_refs(sql: str, masked: str) -> list[tuple[int, str]]:
    """(offset, name) for every FROM list item and JOIN target, in text order.

    Keywords are found in ``masked`` and names read from ``sql`` at the
    same offsets.
    """
    refs: list[tuple[int, str]] = []
    for keyword in _TABLE_KEYWORD_RE.finditer(masked):
        position: int | None = keyword.end()
        while position is not None:
            item = _FROM_ITEM_RE.match(sql, position)
            if item is not None:
                refs.append((item.start(1), item.group(1)))
            if keyword.group(1).lower() == "join":
                break
            position = _next_from_item(masked, position)
    return sorted(refs)


def _cte_scopes(sql: str, masked: str) -> list[tuple[str, int, int]]:
    """(name, visible_from, visible_to) for each CTE.

    A CTE name resolves after its own body closes and until the end of the
    group that holds its ``WITH``. References inside its own body, and so
    recursive self-references, still name a real table.
    """
    scopes: list[tuple[str, int, int]] = []
    for with_match in _WITH_RE.finditer(masked):
        scope_end = _group_end(masked, with_match.end())
        position = with_match.end()
        while True:
            head = _CTE_HEAD_RE.match(sql, position)
            if head is None:
                break
            body_end = _group_end(masked, head.end())
            scopes.append((_unquote(head.group(1)).lower(), body_end, scope_end))
            separator = _CTE_SEPARATOR_RE.match(masked, body_end)
            if separator is None:
                break
            position = separator.end()
    return scopes


def extract_table_identifiers(sql: str) -> list[str]:
    """Return the distinct table names referenced after ``FROM``/``JOIN``.

    Every item of a comma-separated FROM list counts. Quotes are stripped
    and schema-qualified names reduce to their last segment. A bare name is
    skipped only where one of the statement's CTEs is in scope.

    Args:
        sql: Normalized SQL.

    Returns:
        Table names in first-seen order.
    """
    scrubbed = _STRING_LITERAL_RE.sub("''", sql)
    scrubbed = _FROM_FUNCTION_RE.sub(" ", scrubbed)
    masked = mask_quoted(scrubbed)
    scopes = _cte_scopes(scrubbed, masked)

    tables: list[str] = []
    for position, reference in _table_refs(scrubbed, masked):
        segments = _NAME_SEGMENT_RE.findall(reference)
        name = _unquote(segments[-1])
        if len(segments) == 1 and any(
            cte == name.lower() and start < position < end for cte, start, end in scopes
        ):
            continue
        if name and name not in tables:
            tables.append(name)
    return tables


def _top_level_limit(sql: str) -> re.Match[str] | None:
    masked = mask_quoted(sql)
    for match in _LIMIT_RE.finditer(masked):
        if _group_end(masked, match.end()) == len(masked):
            return match
    return None


def enforce_limit(sql: str, max_rows: int) -> tuple[str, list[str]]:
    """Append, replace or keep the outermost ``LIMIT`` so at most ``max_rows`` return.

    A ``LIMIT`` inside a subquery, a CTE or a literal does not cap the
    result and is ignored.

    Args:
        sql: Normalized SQL without a trailing semicolon.
        max_rows: Hard row cap.

    Returns:
        Tuple of (capped SQL, warnings).
    """
    match = _top_level_limit(sql)
    if match is None:
        return f"{sql} LIMIT {max_rows}", [f"LIMIT was not specified. Added LIMIT {max_rows}."]

    capped = f"{sql[:match.start()]}LIMIT {max_rows}{sql[match.end():]}"
    value = int(match.group(1))
    if value <= 0:
        return capped, [f"Invalid LIMIT value. Replaced with LIMIT {max_rows}."]
    if value > max_rows:
        return capped, [f"LIMIT {value} exceeded maxRows. Clamped to LIMIT {max_rows}."]
    return sql, []


def validate_sql(
    sql: str,
    *,
    allowed_tables: Iterable[str],
    max_rows: int,
) -> SqlPolicyResult:
    """Validate and normalize SQL according to the read-only policy.

    Steps run in a fixed order: strip comments, backticks to double quotes,
    TIMESTAMPTZ-INTERVAL fix, whitespace collapse, then the rejection
    checks, then the row cap. Normalization leaves quoted text alone, and
    the statement and keyword checks do not look inside it.

    Args:
        sql: SQL produced by a template or by the model.
        allowed_tables: Engine tables the query may reference.
        max_rows: Maximum rows the query may return.

    Returns:
        The normalized SQL and any non-fatal warnings.

    Raises:
        SqlPolicyError: If the SQL violates the policy.
    """
    warnings: list[str] = []

    stripped = normalize_identifiers(strip_comments(sql))
    patched, changed = normalize_timestamp_interval(stripped)
    if changed:
        warnings.append(TIMESTAMP_FIX_WARNING)

    normalized = collapse_whitespace(patched)

    if not normalized or not normalized.strip(" ;"):
        raise SqlPolicyError("SQL is empty after normalization.", PolicyReason.EMPTY_SQL)

    if _has_multiple_statements(mask_quoted(normalized)):
        raise SqlPolicyError(
            "Policy denied: multi-statement SQL is not allowed.", PolicyReason.MULTI_STATEMENT
        )
    normalized = _TRAILING_SEMICOLONS_RE.sub("", normalized)

    if not _is_select_like(normalized):
        raise SqlPolicyError(
            "Policy denied: only SELECT queries are allowed.", PolicyReason.NOT_SELECT
        )

    forbidden = _find_write_keyword(mask_quoted(normalized))
    if forbidden:
        raise SqlPolicyError(
            f"Policy denied: keyword '{forbidden}' is not allowed.", PolicyReason.WRITE_KEYWORD
        )

    allowed = set(allowed_tables)
    denied = [t for t in extract_table_identifiers(normalized) if t not in allowed]
    if denied:
        raise SqlPolicyError(
            f"Policy denied: table(s) not allowed: {', '.join(denied)}",
            PolicyReason.TABLE_NOT_ALLOWED,
            tables=denied,
        )

    capped, limit_warnings = enforce_limit(normalized, max_rows)
    warnings.extend(limit_warnings)

    if warnings:
        logger.debug("SQL policy warnings: %s", warnings)
    return SqlPolicyResult(normalized_sql=capped, warnings=warnings)
