"""
Shared models for the agent core.

Models are grouped by concern and re-exported here so callers can import
from ``vaultmind.models`` directly.
"""

from .events import (
    AgentEvent,
    ErrorEvent,
    RunEndEvent,
    RunStartEvent,
    SchemaReadyEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from .execution import (
    AgentBudget,
    ExecutionOutcome,
    SkillContext,
    SkillResult,
    SkillRuntime,
    SqlPolicyResult,
    SqlRepairResult,
    StopReason,
    ToolCall,
)
from .routing import (
    QUERY_TYPES,
    RISK_FLAGS,
    QueryType,
    QueryTypeClassification,
    RewriteResult,
    RiskFlag,
    TaskType,
)
from .schema import Attachment, ColumnInfo, DiscoveredTable, QueryResult
from .skill_config import (
    FieldMapping,
    FilterExpr,
    MetricDefinition,
    RelativeTimeValue,
    TableSkillConfig,
    UserSkillConfig,
)

__all__ = [
    # Engine
    "Attachment",
    "ColumnInfo",
    "DiscoveredTable",
    "QueryResult",
    # User skill configuration
    "FieldMapping",
    "FilterExpr",
    "MetricDefinition",
    "RelativeTimeValue",
    "TableSkillConfig",
    "UserSkillConfig",
    # Routing
    "QUERY_TYPES",
    "RISK_FLAGS",
    "QueryType",
    "QueryTypeClassification",
    "RewriteResult",
    "RiskFlag",
    "TaskType",
    # Execution
    "AgentBudget",
    "ExecutionOutcome",
    "SkillContext",
    "SkillResult",
    "SkillRuntime",
    "SqlPolicyResult",
    "SqlRepairResult",
    "StopReason",
    "ToolCall",
    # Telemetry
    "AgentEvent",
    "ErrorEvent",
    "RunEndEvent",
    "RunStartEvent",
    "SchemaReadyEvent",
    "ToolCallEvent",
    "ToolResultEvent",
]
