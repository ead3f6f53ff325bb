"""
User skill configuration models.

The settings subsystem owns and persists these; the agent core only reads
them. Constraints mirror what the settings form enforces so that a
configuration loaded from disk cannot smuggle unsafe identifiers into
compiled SQL fragments.
"""

import math
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Letters, digits, underscore and CJK unified ideographs
COLUMN_NAME_PATTERN = r"^[A-Za-z0-9_一-龥]+$"

FilterOp = Literal["=", "!=", ">", ">=", "<", "<=", "in", "not_in", "contains"]
Aggregation = Literal["count", "count_distinct", "sum", "avg", "min", "max"]

_ARRAY_OPS = frozenset({"in", "not_in"})

MAX_TABLES = 10
MAX_DEFAULT_FILTERS = 20
MAX_METRICS_PER_TABLE = 50
MAX_FILTERS_PER_METRIC = 10


class _ConfigModel(BaseModel):
    """Base for stored configuration: camelCase on disk, snake_case in code."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class RelativeTimeValue(_ConfigModel):
    """A time offset relative to now, e.g. "last 30 days"."""

    kind: Literal["relative_time"] = "relative_time"
    unit: Literal["day", "week", "month", "year"]
    amount: int = Field(gt=0, le=3650)
    direction: Literal["past", "future"] = "past"


LiteralValue = Union[
    bool,
    int,
    float,
    str,
    list[Union[int, float, str]],
]


class FilterExpr(_ConfigModel):
    """A single ``column OP value`` predicate with a restricted operator set."""

    column: str = Field(min_length=1, max_length=200, pattern=COLUMN_NAME_PATTERN)
    op: FilterOp
    value: Union[RelativeTimeValue, LiteralValue]

    @field_validator("value")
    @classmethod
    def _check_literal_bounds(cls, value: object) -> object:
        if isinstance(value, str) and len(value) > 1000:
            raise ValueError("string literal longer than 1000 characters")
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("numeric literal must be finite")
        if isinstance(value, list):
            if len(value) > 1000:
                raise ValueError("array literal longer than 1000 items")
            for item in value:
                if isinstance(item, str) and len(item) > 500:
                    raise ValueError("array item longer than 500 characters")
                if isinstance(item, float) and not math.isfinite(item):
                    raise ValueError("array items must be finite numbers")
        return value

    @model_validator(mode="after")
    def _check_op_matches_value(self) -> "FilterExpr":
        is_array = isinstance(self.value, list)
        if self.op in _ARRAY_OPS and not is_array:
            raise ValueError(f"operator '{self.op}' requires an array value")
        if self.op not in _ARRAY_OPS and is_array:
            raise ValueError(f"operator '{self.op}' does not accept an array value")
        if self.op in _ARRAY_OPS and not self.value:
            raise ValueError(f"operator '{self.op}' requires a non-empty array")
        if isinstance(self.value, RelativeTimeValue) and self.op == "contains":
            raise ValueError("'contains' cannot be used with a relative time value")
        return self


class MetricDefinition(_ConfigModel):
    """A named aggregate the user wants to reuse across questions."""

    label: str = Field(min_length=1, max_length=100)
    aggregation: Aggregation
    column: str | None = Field(
        default=None, min_length=1, max_length=200, pattern=COLUMN_NAME_PATTERN
    )
    where: list[FilterExpr] | None = Field(default=None, max_length=MAX_FILTERS_PER_METRIC)

    @model_validator(mode="after")
    def _column_required(self) -> "MetricDefinition":
        if self.aggregation != "count" and not self.column:
            raise ValueError('column is required for aggregations other than "count"')
        return self


class FieldMapping(_ConfigModel):
    """Semantic column roles declared by the user for one table."""

    order_id_column: str | None = Field(
        default=None, min_length=1, max_length=200, pattern=COLUMN_NAME_PATTERN
    )
    user_id_column: str | None = Field(
        default=None, min_length=1, max_length=200, pattern=COLUMN_NAME_PATTERN
    )
    time_column: str | None = Field(
        default=None, min_length=1, max_length=200, pattern=COLUMN_NAME_PATTERN
    )
    amount_column: str | None = Field(
        default=None, min_length=1, max_length=200, pattern=COLUMN_NAME_PATTERN
    )


class TableSkillConfig(_ConfigModel):
    """Per-table configuration; industry is table-level to allow mixed domains."""

    industry: str = Field(min_length=1, max_length=50)
    field_mapping: FieldMapping | None = None
    default_filters: list[FilterExpr] | None = Field(default=None, max_length=MAX_DEFAULT_FILTERS)
    metrics: dict[str, MetricDefinition] | None = None

    @field_validator("metrics")
    @classmethod
    def _limit_metrics(
        cls, metrics: dict[str, MetricDefinition] | None
    ) -> dict[str, MetricDefinition] | None:
        if metrics is not None and len(metrics) > MAX_METRICS_PER_TABLE:
            raise ValueError(f"Maximum {MAX_METRICS_PER_TABLE} metrics allowed per table")
        return metrics


class UserSkillConfig(_ConfigModel):
    """Versioned mapping from table name to its skill configuration."""

    version: Literal["v1"] = "v1"
    tables: dict[str, TableSkillConfig] = Field(default_factory=dict)

    @field_validator("tables")
    @classmethod
    def _limit_tables(cls, tables: dict[str, TableSkillConfig]) -> dict[str, TableSkillConfig]:
        if len(tables) > MAX_TABLES:
            raise ValueError(f"Maximum {MAX_TABLES} tables allowed in user skill configuration")
        return tables

    def for_table(self, table_name: str | None) -> TableSkillConfig | None:
        """Return the configuration for ``table_name``, if any."""
        if not table_name:
            return None
        return self.tables.get(table_name)
