"""Compact, budgeted rendering of a table's user skill configuration.

The digest is injected into the tool-selection prompt so the model uses the
user's column roles, default filters and metric definitions. It is text for
the model only; compiled SQL comes from ``filter_compiler``.
"""

import json
from dataclasses import dataclass

from vaultmind.models import (
    FilterExpr,
    MetricDefinition,
    RelativeTimeValue,
    TableSkillConfig,
    UserSkillConfig,
)

DEFAULT_MAX_FILTERS = 5
DEFAULT_MAX_METRICS = 10
DEFAULT_MAX_CHARS = 1200

TRUNCATION_MARKER = "\n... (digest truncated)"

_FIELD_LABELS: tuple[tuple[str, str], ...] = (
    ("order_id_column", "orderId"),
    ("user_id_column", "userId"),
    ("time_column", "time"),
    ("amount_column", "amount"),
)


@dataclass(frozen=True, slots=True)
class DigestStats:
    """Size of a rendered digest."""

    chars: int
    lines: int


@dataclass(frozen=True, slots=True)
class DigestBudgetCheck:
    """Whether a digest fits its character budget."""

    within_budget: bool
    chars: int
    limit: int


def _format_value(value: object) -> str:
    if isinstance(value, RelativeTimeValue):
        return f"{value.direction} {value.amount} {value.unit}"
    return json.dumps(value, ensure_ascii=False)


def format_filter(expr: FilterExpr) -> str:
    """Render a filter for humans and models, e.g. ``status = "completed"``."""
    return f"{expr.column} {expr.op} {_format_value(expr.value)}"


def format_metric(name: str, metric: MetricDefinition) -> str:
    """Render a metric, e.g. ``gmv: sum(total_amount)``."""
    target = metric.column if metric.column else "*"
    line = f"{name}: {metric.aggregation}({target})"
    if metric.where:
        line += " where " + " and ".join(format_filter(f) for f in metric.where)
    return line


def build_table_skill_digest(
    table_name: str,
    config: TableSkillConfig,
    *,
    max_filters: int = DEFAULT_MAX_FILTERS,
    max_metrics: int = DEFAULT_MAX_METRICS,
) -> str:
    """Render one table's configuration with Top-N filters and Top-K metrics.

    Args:
        table_name: Engine table the configuration belongs to.
        config: The table's skill configuration.
        max_filters: Default filters listed before summarizing the rest.
        max_metrics: Metrics listed before summarizing the rest.

    Returns:
        The digest; just ``Active table: <name>`` for an empty configuration.
    """
    lines = [f"Active table: {table_name}"]

    mapping = config.field_mapping
    if mapping is not None:
        mapped = [
            f"  - {label}: {getattr(mapping, attr)}"
            for attr, label in _FIELD_LABELS
            if getattr(mapping, attr)
        ]
        if mapped:
            lines.append("Field mapping:")
            lines.extend(mapped)

    filters = config.default_filters or []
    if filters:
        lines.append("Default filters:")
        lines.extend(f"  - {format_filter(f)}" for f in filters[:max_filters])
        if len(filters) > max_filters:
            lines.append(f"  +{len(filters) - max_filters} more filters")

    metrics = list((config.metrics or {}).items())
    if metrics:
        lines.append("Metrics overrides:")
        lines.extend(f"  - {format_metric(name, m)}" for name, m in metrics[:max_metrics])
        if len(metrics) > max_metrics:
            lines.append(f"  +{len(metrics) - max_metrics} more metrics")

    return "\n".join(lines)


def build_user_skill_digest(
    config: UserSkillConfig | None,
    table_name: str | None,
    *,
    max_chars: int = DEFAULT_MAX_CHARS,
    max_filters: int = DEFAULT_MAX_FILTERS,
    max_metrics: int = DEFAULT_MAX_METRICS,
) -> str:
    """Render the digest for the active table under a hard character budget.

    Args:
        config: The user's configuration, if any.
        table_name: The active table.
        max_chars: Hard budget; longer digests are cut and marked.
        max_filters: Passed to ``build_table_skill_digest``.
        max_metrics: Passed to ``build_table_skill_digest``.

    Returns:
        The digest, or ``""`` when there is nothing configured for the table.
    """
    if config is None:
        return ""
    table_config = config.for_table(table_name)
    if table_config is None or table_name is None:
        return ""

    digest = build_table_skill_digest(
        table_name, table_config, max_filters=max_filters, max_metrics=max_metrics
    )
    if len(digest) > max_chars:
        return digest[:max_chars] + TRUNCATION_MARKER
    return digest


def get_digest_stats(digest: str) -> DigestStats:
    return DigestStats(chars=len(digest), lines=len(digest.splitlines()) if digest else 0)


def check_digest_budget(digest: str, limit: int = DEFAULT_MAX_CHARS) -> DigestBudgetCheck:
    return DigestBudgetCheck(within_budget=len(digest) <= limit, chars=len(digest), limit=limit)
