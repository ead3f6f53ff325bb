"""Pure-function SQL templates per query archetype.

Each archetype maps to one fixed, single-table query shape. A template that
lacks the column it needs returns ``None`` so the caller can fall back to
freeform generation; that is never an error. Output still goes through the
SQL policy before execution.
"""

from dataclasses import dataclass

from vaultmind.entities.shared.filter_compiler import quote_identifier

TEMPLATE_ROW_CAP = 500


@dataclass(frozen=True, slots=True)
class TemplateColumns:
    """Columns resolved for a template.

    Attributes:
        time_column: Timestamp column for ``trend_time``.
        metric_column: Numeric column for ``distribution``.
        dimension_column: Grouping column for ``kpi_grouped``.
    """

    time_column: str | None = None
    metric_column: str | None = None
    dimension_column: str | None = None


def template_limit(max_rows: int) -> int:
    return max(1, min(TEMPLATE_ROW_CAP, max_rows))


def _join(*parts: str | None) -> str:
    return " ".join(p for p in parts if p)


def build_template_sql(
    table_name: str,
    archetype: str,
    columns: TemplateColumns,
    max_rows: int,
    where_clause: str | None = None,
) -> str | None:
    """Build the template query for ``archetype``.

    Args:
        table_name: Engine table to query.
        archetype: A query type from the router.
        columns: Resolved role columns.
        max_rows: Caller row cap; clamped to 1..500.
        where_clause: Optional compiled ``WHERE ...`` clause.

    Returns:
        The SQL, or ``None`` when no template applies.
    """
    limit = f"LIMIT {template_limit(max_rows)}"

    if archetype == "kpi_single":
        return _join(f"SELECT COUNT(*) AS total_count FROM {table_name}", where_clause, limit)

    if archetype == "kpi_grouped":
        if not columns.dimension_column:
            return None
        dim = quote_identifier(columns.dimension_column)
        return _join(
            f"SELECT {dim} AS dimension, COUNT(*) AS total_count FROM {table_name}",
            where_clause,
            f"GROUP BY {dim} ORDER BY total_count DESC",
            limit,
        )

    if archetype == "trend_time":
        if not columns.time_column:
            return None
        ts = quote_identifier(columns.time_column)
        return _join(
            f"SELECT DATE_TRUNC('day', CAST({ts} AS TIMESTAMP)) AS day, COUNT(*) AS total_count"
            f" FROM {table_name}",
            where_clause,
            "GROUP BY day ORDER BY day",
            limit,
        )

    if archetype == "distribution":
        if not columns.metric_column:
            return None
        x = quote_identifier(columns.metric_column)
        return _join(
            f"SELECT AVG({x}) AS mean_value, MEDIAN({x}) AS median_value,"
            f" STDDEV_POP({x}) AS stddev_value, MIN({x}) AS min_value, MAX({x}) AS max_value"
            f" FROM {table_name}",
            where_clause,
            limit,
        )

    if archetype == "topn":
        return _join(f"SELECT * FROM {table_name}", where_clause, limit)

    # comparison and unknown go to freeform generation
    return None
