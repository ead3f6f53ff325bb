"""Pure-function compilation of user filters and metrics into SQL fragments.

Every identifier is double-quoted and every string literal single-quoted
with embedded quotes doubled, so a stored configuration can only ever
contribute data, never SQL syntax. Fragments are DuckDB dialect.
"""

import math
from collections.abc import Sequence

from vaultmind.models import FilterExpr, MetricDefinition, RelativeTimeValue

_COMPARISON_OPS: frozenset[str] = frozenset({"=", "!=", ">", ">=", "<", "<="})

_LIKE_ESCAPE = "\\"

_AGGREGATE_FUNCS: dict[str, str] = {
    "sum": "SUM",
    "avg": "AVG",
    "min": "MIN",
    "max": "MAX",
}


def quote_identifier(name: str) -> str:
    """Double-quote ``name``, doubling embedded double quotes."""
    return '"' + name.replace('"', '""') + '"'


def quote_string(value: str) -> str:
    """Single-quote ``value``, doubling embedded single quotes."""
    return "'" + value.replace("'", "''") + "'"


def render_literal(value: object) -> str:
    """Render a scalar literal.

    Raises:
        ValueError: For non-finite numbers or unsupported types.
    """
    # bool is a subclass of int, so test it first
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Numeric literal must be finite, got {value!r}")
        return repr(value)
    if isinstance(value, str):
        return quote_string(value)
    raise ValueError(f"Unsupported literal type: {type(value).__name__}")


def render_relative_time(value: RelativeTimeValue) -> str:
    """Render ``NOW() -/+ INTERVAL 'n unit'``."""
    sign = "-" if value.direction == "past" else "+"
    return f"NOW() {sign} INTERVAL '{value.amount} {value.unit}'"


def _escape_like(text: str) -> str:
    return (
        text.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


def compile_filter(expr: FilterExpr) -> str:
    """Compile one filter into a ``column OP value`` predicate.

    Args:
        expr: A validated filter expression.

    Returns:
        The SQL predicate without a leading ``WHERE``.

    Raises:
        ValueError: If the operator and value shape disagree.
    """
    column = quote_identifier(expr.column)
    value = expr.value

    if expr.op in ("in", "not_in"):
        if not isinstance(value, list) or not value:
            raise ValueError(f"Operator '{expr.op}' requires a non-empty array value")
        items = ", ".join(render_literal(item) for item in value)
        keyword = "IN" if expr.op == "in" else "NOT IN"
        return f"{column} {keyword} ({items})"

    if isinstance(value, list):
        raise ValueError(f"Operator '{expr.op}' does not accept an array value")

    if expr.op == "contains":
        if isinstance(value, RelativeTimeValue):
            raise ValueError("Operator 'contains' does not accept a relative time value")
        pattern = "%" + _escape_like(str(value)) + "%"
        return f"{column} LIKE {quote_string(pattern)} ESCAPE {quote_string(_LIKE_ESCAPE)}"

    if expr.op not in _COMPARISON_OPS:
        raise ValueError(f"Unsupported filter operator: {expr.op}")

    if isinstance(value, RelativeTimeValue):
        rendered = render_relative_time(value)
    else:
        rendered = render_literal(value)
    return f"{column} {expr.op} {rendered}"


def compile_conditions(filters: Sequence[FilterExpr] | None) -> str | None:
    """Join compiled filters with ``AND``; ``None`` when there are none."""
    if not filters:
        return None
    return " AND ".join(compile_filter(f) for f in filters)


def compile_where_clause(filters: Sequence[FilterExpr] | None) -> str | None:
    """Compile filters into a full ``WHERE`` clause.

    Args:
        filters: Default filters from the table's skill configuration.

    Returns:
        ``"WHERE a AND b"`` or ``None`` when there is nothing to filter.
    """
    conditions = compile_conditions(filters)
    return f"WHERE {conditions}" if conditions else None


def compile_metric(metric: MetricDefinition) -> str:
    """Compile a metric definition into an aggregate expression.

    Metric-level filters become a ``FILTER (WHERE ...)`` clause so several
    metrics can share one scan.

    Raises:
        ValueError: If a column-based aggregation has no column.
    """
    if metric.aggregation == "count":
        expression = "COUNT(*)"
    else:
        if not metric.column:
            raise ValueError(f"Aggregation '{metric.aggregation}' requires a column")
        column = quote_identifier(metric.column)
        if metric.aggregation == "count_distinct":
            expression = f"COUNT(DISTINCT {column})"
        else:
            expression = f"{_AGGREGATE_FUNCS[metric.aggregation]}({column})"

    conditions = compile_conditions(metric.where)
    if conditions:
        expression += f" FILTER (WHERE {conditions})"
    return expression
