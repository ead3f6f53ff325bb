"""Schema digest construction.

Introspects the engine with cheap metadata queries and renders a compact,
human-readable description of the loaded tables for prompt context. Only
column names and types are read; no row data ever reaches the digest.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable, Sequence
from typing import Any

from vaultmind.entities.shared.errors import SchemaUnavailableError
from vaultmind.entities.shared.filter_compiler import quote_identifier
from vaultmind.entities.shared.protocols import QueryExecutor
from vaultmind.models import Attachment, ColumnInfo, DiscoveredTable

logger = logging.getLogger(__name__)

DEFAULT_TABLE_PREFIX = "main_table_"
DEFAULT_MAX_CHARS = 4000

_TABLE_LINE_RE = re.compile(r"^Table:? ([^\s:]+)")
_COLUMN_LINE_RE = re.compile(r"^\s+- (.+) \(([^()]*)\)$")
_COMPACT_LINE_RE = re.compile(r"^Table [^\s:]+: (.*)$")


def _column_from_row(row: Any) -> ColumnInfo:
    """Normalize one ``DESCRIBE`` row into a ``ColumnInfo``."""
    if not isinstance(row, dict):
        return ColumnInfo(name="unknown_column")
    name = row.get("column_name")
    col_type = row.get("column_type")
    return ColumnInfo(
        name=name if isinstance(name, str) else "unknown_column",
        type=col_type if isinstance(col_type, str) else "unknown_type",
    )


async def describe_table(execute_query: QueryExecutor, table_name: str) -> list[ColumnInfo]:
    """Run ``DESCRIBE`` for one table and return its columns."""
    result = await execute_query.execute(f"DESCRIBE {quote_identifier(table_name)};")
    return [_column_from_row(row) for row in result.data]


async def discover_table_names(
    execute_query: QueryExecutor,
    prefix: str = DEFAULT_TABLE_PREFIX,
) -> list[str]:
    """List engine tables created from loaded files.

    Args:
        execute_query: Query executor.
        prefix: Table naming convention, e.g. ``main_table_``.

    Returns:
        Matching table names in the engine's order.
    """
    escaped = prefix.replace("'", "''")
    result = await execute_query.execute(
        f"SELECT table_name FROM information_schema.tables WHERE table_name LIKE '{escaped}%';"
    )
    names = [
        row["table_name"]
        for row in result.data
        if isinstance(row, dict) and isinstance(row.get("table_name"), str) and row["table_name"]
    ]
    logger.info("Discovered %d user tables", len(names))
    return names


def format_table_block(
    table_name: str,
    columns: Sequence[ColumnInfo],
    sheet_name: str | None = None,
) -> str:
    """Render one ``Table: ...`` block with a ``Columns:`` list."""
    sheet_hint = f' (from sheet: "{sheet_name}")' if sheet_name else ""
    lines = [f"  - {c.name} ({c.type})" for c in columns]
    return f"Table: {table_name}{sheet_hint}\nColumns:\n" + "\n".join(lines)


def _failed_block(table_name: str) -> str:
    return f"// Failed to retrieve schema for table: {table_name}"


async def build_schema_digest(
    execute_query: QueryExecutor,
    table_names: Sequence[str] | None = None,
    attachments: Iterable[Attachment] = (),
    *,
    prefix: str = DEFAULT_TABLE_PREFIX,
    max_chars: int = DEFAULT_MAX_CHARS,
) -> str:
    """Build the schema digest for every user table.

    One ``DESCRIBE`` is issued per table; a table that fails to describe is
    rendered as a placeholder line instead of failing the whole digest.

    Args:
        execute_query: Query executor.
        table_names: Tables to describe; discovered from the engine when ``None``.
        attachments: Table-to-file bindings used for sheet hints.
        prefix: Table naming convention for discovery and the fallback table.
        max_chars: Hard cap on the digest length.

    Returns:
        The digest, at most ``max_chars`` characters.

    Raises:
        SchemaUnavailableError: If no table can be described at all.
    """
    names = list(table_names) if table_names is not None else await discover_table_names(
        execute_query, prefix
    )

    if not names:
        fallback = prefix.rstrip("_") or "main_table"
        try:
            result = await execute_query.execute(f"DESCRIBE {fallback};")
        except Exception as exc:
            logger.warning("Fallback describe of %s failed: %s", fallback, exc)
            raise SchemaUnavailableError("No user tables found in the database.") from exc
        columns = [_column_from_row(row) for row in result.data]
        return format_table_block(fallback, columns)[:max_chars]

    sheets = {a.table_name: a.sheet_name for a in attachments}

    async def render(name: str) -> str:
        try:
            columns = await describe_table(execute_query, name)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Failed to get schema for table %s: %s", name, exc)
            return _failed_block(name)
        return format_table_block(name, columns, sheets.get(name))

    blocks = await asyncio.gather(*(render(name) for name in names))
    digest = "\n\n".join(blocks)
    if len(digest) > max_chars:
        logger.info("Schema digest truncated from %d to %d chars", len(digest), max_chars)
    return digest[:max_chars]


# ── Compact discovery form ──────────────────────────────────────────────


async def discover_schema(
    execute_query: QueryExecutor,
    table_names: Sequence[str],
) -> list[DiscoveredTable]:
    """Describe each table sequentially; errors propagate to the caller."""
    tables: list[DiscoveredTable] = []
    for name in table_names:
        tables.append(DiscoveredTable(table_name=name, columns=await describe_table(execute_query, name)))
    return tables


def format_compact_digest(tables: Sequence[DiscoveredTable]) -> str:
    """Render ``Table t: a:INT, b:VARCHAR`` lines."""
    return "\n".join(
        f"Table {t.table_name}: " + ", ".join(f"{c.name}:{c.type}" for c in t.columns)
        for t in tables
    )


# ── Digest parsing ──────────────────────────────────────────────────────


def table_names_from_digest(digest: str) -> list[str]:
    """Recover table names from the ``Table: <name>`` lines of a digest."""
    names: list[str] = []
    for line in digest.splitlines():
        if not line.startswith("Table: "):
            continue
        name = line[len("Table: "):].split(" ")[0]
        if name and name not in names:
            names.append(name)
    return names


def column_names_from_digest(digest: str, table_name: str | None = None) -> list[str]:
    """Recover column names from a digest, optionally for a single table.

    Both the block form (``  - name (type)``) and the compact form
    (``Table t: name:type, ...``) are understood.

    Args:
        digest: Schema digest text.
        table_name: Restrict to this table's block; all tables when ``None``.

    Returns:
        Column names in first-seen order, without duplicates.
    """
    columns: list[str] = []
    current: str | None = None

    def add(name: str) -> None:
        name = name.strip()
        if name and name not in columns:
            columns.append(name)

    for line in digest.splitlines():
        table_match = _TABLE_LINE_RE.match(line)
        if table_match:
            current = table_match.group(1)
            compact = _COMPACT_LINE_RE.match(line)
            if compact and (table_name is None or current == table_name):
                for part in compact.group(1).split(", "):
                    add(part.rsplit(":", 1)[0])
            continue
        if table_name is not None and current != table_name:
            continue
        column_match = _COLUMN_LINE_RE.match(line)
        if column_match:
            add(column_match.group(1))
    return columns
