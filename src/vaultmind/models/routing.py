"""
Routing models: the rewrite directive and the query-type classification.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

TaskType = Literal["data_qna", "profiling", "sql_debug", "workflow"]

RiskFlag = Literal[
    "ambiguous_column",
    "multiple_possible_tables",
    "time_range_missing",
    "needs_schema_discovery",
    "unknown",
]

QueryType = Literal[
    "kpi_single",
    "kpi_grouped",
    "trend_time",
    "distribution",
    "topn",
    "comparison",
    "unknown",
]

QUERY_TYPES: tuple[str, ...] = (
    "kpi_single",
    "kpi_grouped",
    "trend_time",
    "distribution",
    "topn",
    "comparison",
    "unknown",
)

RISK_FLAGS: frozenset[str] = frozenset(
    {
        "ambiguous_column",
        "multiple_possible_tables",
        "time_range_missing",
        "needs_schema_discovery",
        "unknown",
    }
)


class RewriteResult(BaseModel):
    """Structured directive produced once per query by the rewriter."""

    model_config = ConfigDict(frozen=True)

    task_type: TaskType = "data_qna"
    table_scope: Literal["auto"] | list[str] = "auto"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    risk_flags: list[RiskFlag] = Field(default_factory=lambda: ["unknown"])
    assumptions: list[str] = Field(default_factory=list)
    need_clarification: bool = False
    clarifying_questions: list[str] = Field(default_factory=list)

    @property
    def needs_schema_discovery(self) -> bool:
        return "needs_schema_discovery" in self.risk_flags


class QueryTypeClassification(BaseModel):
    """Archetype assigned to a user question and how it was decided."""

    model_config = ConfigDict(frozen=True)

    query_type: QueryType = "unknown"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    matched_keywords: list[str] = Field(default_factory=list)
    method: Literal["keyword", "llm"] = "keyword"
