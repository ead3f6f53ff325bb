"""
Execution models: per-run context, policy output, tool calls and the
terminal ``SkillResult`` returned to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from .routing import RewriteResult
from .schema import Attachment, ColumnInfo
from .skill_config import UserSkillConfig

if TYPE_CHECKING:
    from vaultmind.entities.shared.cancellation import CancellationToken
    from vaultmind.entities.shared.protocols import ChatCompletionClient, QueryExecutor
    from vaultmind.entities.shared.telemetry import EventEmitter


class StopReason(str, Enum):
    """Closed set of run outcomes used by callers to decide UI behaviour."""

    SUCCESS = "SUCCESS"
    NEED_CLARIFICATION = "NEED_CLARIFICATION"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    POLICY_DENIED = "POLICY_DENIED"
    TOOL_ERROR = "TOOL_ERROR"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


class SqlPolicyResult(BaseModel):
    """Normalized SQL plus any non-fatal rewrites applied by the policy."""

    model_config = ConfigDict(frozen=True)

    normalized_sql: str
    warnings: list[str] = Field(default_factory=list)


class ToolCall(BaseModel):
    """Canonical tool invocation extracted from a model reply."""

    model_config = ConfigDict(frozen=True)

    tool_name: str
    arguments: str = "{}"
    thought: str | None = None


class SqlRepairResult(BaseModel):
    """Output of the single auto-repair round."""

    model_config = ConfigDict(frozen=True)

    patched_sql: str
    explanation: str


class AgentBudget(BaseModel):
    """Budget limits enforced by the supervisor."""

    model_config = ConfigDict(frozen=True)

    max_steps: int = Field(default=2, ge=1)
    """Maximum LLM tool decisions (one decision plus one repair)."""

    max_tool_calls: int = Field(default=2, ge=1)
    """Maximum tool executions (one call plus one repaired retry)."""

    max_duration_ms: int = Field(default=20_000, gt=0)
    """Wall-clock budget for the whole run."""


class SkillResult(BaseModel):
    """Terminal, caller-facing artifact; built exactly once per run."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    stop_reason: StopReason
    message: str | None = None
    tool: str | None = None
    params: dict[str, Any] | None = None
    result: Any = None
    schema_: list[ColumnInfo] | None = Field(default=None, alias="schema")
    thought: str | None = None
    llm_duration_ms: float | None = None
    query_duration_ms: float | None = None
    cancelled: bool | None = None

    @property
    def ok(self) -> bool:
        return self.stop_reason is StopReason.SUCCESS


class ExecutionOutcome(BaseModel):
    """Successful tool execution produced by a skill before supervision."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tool: str
    params: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    schema_: list[ColumnInfo] = Field(default_factory=list, alias="schema")
    thought: str = ""
    llm_duration_ms: float | None = None
    query_duration_ms: float | None = None

    def to_skill_result(self) -> SkillResult:
        return SkillResult(
            stop_reason=StopReason.SUCCESS,
            tool=self.tool,
            params=self.params,
            result=self.result,
            schema=self.schema_,
            thought=self.thought,
            llm_duration_ms=self.llm_duration_ms,
            query_duration_ms=self.query_duration_ms,
        )


@dataclass(frozen=True)
class SkillRuntime:
    """I/O collaborators a skill may touch during one run."""

    execute_query: QueryExecutor
    llm: ChatCompletionClient | None
    cancellation: CancellationToken
    events: EventEmitter | None = None
    mock_enabled: bool = False


@dataclass(frozen=True)
class SkillContext:
    """Immutable per-invocation input to a skill."""

    user_input: str
    runtime: SkillRuntime
    schema_digest: str = ""
    max_rows: int = 500
    attachments: tuple[Attachment, ...] = ()
    persona_id: str | None = None
    session_id: str | None = None
    run_id: str | None = None
    industry: str | None = None
    user_skill_config: UserSkillConfig | None = None
    active_table: str | None = None
    allowed_tables: frozenset[str] = field(default_factory=frozenset)
    rewrite: RewriteResult | None = None
    user_skill_digest_max_chars: int = 1200
