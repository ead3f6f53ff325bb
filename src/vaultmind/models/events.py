"""
Agent telemetry events.

Payloads stay small: never row data or file content. Consumers can switch
on ``type`` or use the ``AgentEvent`` discriminated union.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .execution import StopReason


class _BaseEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str = Field(description="Stable id for the whole run")
    session_id: str | None = Field(default=None, description="UI session id, if any")
    ts: int = Field(description="Epoch milliseconds")


class RunStartEvent(_BaseEvent):
    type: Literal["agent.run.start"] = "agent.run.start"
    user_input: str
    persona_id: str | None = None
    table_names: list[str] | None = None


class SchemaReadyEvent(_BaseEvent):
    type: Literal["agent.schema.ready"] = "agent.schema.ready"
    table_names: list[str] = Field(default_factory=list)


class ToolCallEvent(_BaseEvent):
    type: Literal["agent.tool.call"] = "agent.tool.call"
    tool_name: str
    args_preview: str | None = Field(default=None, description="Argument summary, max 200 chars")


class ToolResultEvent(_BaseEvent):
    type: Literal["agent.tool.result"] = "agent.tool.result"
    tool_name: str
    row_count: int | None = None
    columns: list[str] | None = None
    query_duration_ms: float | None = None


class ErrorEvent(_BaseEvent):
    type: Literal["agent.error"] = "agent.error"
    error_category: str
    error_message: str
    raw_model_output_snippet: str | None = None


class RunEndEvent(_BaseEvent):
    type: Literal["agent.run.end"] = "agent.run.end"
    ok: bool
    stop_reason: StopReason | None = None
    error_category: str | None = None
    error_message: str | None = None
    llm_duration_ms: float | None = None
    query_duration_ms: float | None = None


AgentEvent = Annotated[
    Union[
        RunStartEvent,
        SchemaReadyEvent,
        ToolCallEvent,
        ToolResultEvent,
        ErrorEvent,
        RunEndEvent,
    ],
    Field(discriminator="type"),
]
