"""Unit tests for the freeform tool-calling executor.

Covers every reply shape, the rewrite gate, the single repair round, mock
mode and the telemetry emitted along the way.
"""

from __future__ import annotations

import json

import pytest
from vaultmind.entities.shared.cancellation import CancellationToken
from vaultmind.entities.shared.errors import (
    CannotAnswerError,
    ClarificationNeededError,
    MissingColumnError,
    RunCancelledError,
    SqlPolicyError,
    ToolCallParseError,
    ToolNotRegisteredError,
)
from vaultmind.entities.shared.telemetry import EventEmitter
from vaultmind.entities.tool_executor.executor import DEFAULT_THOUGHT, ToolCallingExecutor
from vaultmind.models import RewriteResult

from tests.conftest import (
    ORDERS_COLUMNS,
    ORDERS_TABLE,
    FakeChatClient,
    FakeQueryExecutor,
    SpyListener,
    content_reply,
    function_call_reply,
    make_context,
    make_digest,
    rewrite_reply,
)

DIGEST = make_digest(ORDERS_TABLE, ORDERS_COLUMNS)
CLEAR_REWRITE = RewriteResult(confidence=0.9, risk_flags=[])
MISSING_AMT = 'Binder Error: Referenced column "amt" not found in FROM clause!'


def _executor(
    executor: FakeQueryExecutor,
    llm: FakeChatClient | None,
    events: EventEmitter | None = None,
    **kwargs,
) -> ToolCallingExecutor:
    return ToolCallingExecutor(
        executor, llm, allowed_tables={ORDERS_TABLE}, events=events, **kwargs
    )


def _count_executor() -> FakeQueryExecutor:
    return FakeQueryExecutor(rows=[{"cnt": 3}], columns=[("cnt", "BIGINT")])


# ── Reply shapes ─────────────────────────────────────────────────────────


class TestToolSelection:
    """Whatever shape the reply takes, the tool runs once."""

    async def test_function_call_reply(self, spy_events: EventEmitter) -> None:
        """Legacy function_call replies run the query through the policy."""
        executor = _count_executor()
        llm = FakeChatClient(
            [function_call_reply("sql_query_tool", {"query": "SELECT COUNT(*) AS cnt FROM main_table_1"})]
        )
        outcome = await _executor(executor, llm, spy_events).execute(
            "订单总数", CancellationToken(), schema_digest=DIGEST, rewrite=CLEAR_REWRITE
        )
        assert outcome.tool == "sql_query_tool"
        assert outcome.params == {"query": "SELECT COUNT(*) AS cnt FROM main_table_1"}
        assert outcome.result == {"data": [{"cnt": 3}], "schema": [{"name": "cnt", "type": "BIGINT"}]}
        assert [c.name for c in outcome.schema_] == ["cnt"]
        assert outcome.thought == DEFAULT_THOUGHT
        assert executor.queries == ["SELECT COUNT(*) AS cnt FROM main_table_1 LIMIT 500"]

    async def test_function_definitions_sent(self) -> None:
        """The decision call offers both tools in auto mode."""
        llm = FakeChatClient([function_call_reply("sql_query_tool", {"query": "SELECT 1"})])
        await _executor(_count_executor(), llm).execute(
            "q", CancellationToken(), schema_digest=DIGEST, rewrite=CLEAR_REWRITE
        )
        call = llm.calls[0]
        assert call["function_call"] == "auto"
        assert [f["name"] for f in call["functions"]] == ["sql_query_tool", "cannot_answer_tool"]
        assert call["messages"][0]["role"] == "system"
        assert DIGEST in call["messages"][1]["content"]

    async def test_content_json_reply(self) -> None:
        """A {thought, action} object in content carries the thought through."""
        llm = FakeChatClient(
            [
                content_reply(
                    {
                        "thought": "Count the orders.",
                        "action": {"tool": "sql_query_tool", "args": {"query": "SELECT 1 AS cnt"}},
                    }
                )
            ]
        )
        outcome = await _executor(_count_executor(), llm).execute(
            "q", CancellationToken(), schema_digest=DIGEST, rewrite=CLEAR_REWRITE
        )
        assert outcome.thought == "Count the orders."
        assert outcome.llm_duration_ms is not None
        assert outcome.query_duration_ms is not None

    async def test_no_tool_call(self, spy_listener: SpyListener, spy_events: EventEmitter) -> None:
        """Prose without a tool call raises with the model's reason."""
        llm = FakeChatClient([content_reply({"thought": "I am not sure what you mean."})])
        with pytest.raises(ToolCallParseError) as exc_info:
            await _executor(_count_executor(), llm, spy_events).execute(
                "q", CancellationToken(), schema_digest=DIGEST, rewrite=CLEAR_REWRITE
            )
        assert str(exc_info.value) == "I am not sure what you mean."
        errors = spy_listener.of_type("agent.error")
        assert errors[0].error_category == "LLM_ERROR"
        assert "not sure" in errors[0].raw_model_output_snippet

    async def test_unknown_tool(self, spy_listener: SpyListener, spy_events: EventEmitter) -> None:
        llm = FakeChatClient([function_call_reply("delete_everything", {})])
        with pytest.raises(ToolNotRegisteredError, match="Tool 'delete_everything' is not registered."):
            await _executor(_count_executor(), llm, spy_events).execute(
                "q", CancellationToken(), schema_digest=DIGEST, rewrite=CLEAR_REWRITE
            )
        assert spy_listener.of_type("agent.error")[0].error_category == "UNKNOWN"

    async def test_cannot_answer(self, spy_listener: SpyListener, spy_events: EventEmitter) -> None:
        """The model may decline with an explanation."""
        llm = FakeChatClient(
            [function_call_reply("cannot_answer_tool", {"explanation": "No price column."})]
        )
        executor = _count_executor()
        with pytest.raises(CannotAnswerError, match="No price column."):
            await _executor(executor, llm, spy_events).execute(
                "q", CancellationToken(), schema_digest=DIGEST, rewrite=CLEAR_REWRITE
            )
        assert executor.queries == []
        assert spy_listener.of_type("agent.error")[0].error_category == "SCHEMA_INSUFFICIENT"

    async def test_no_llm_configured(self) -> None:
        with pytest.raises(ToolCallParseError):
            await _executor(_count_executor(), None).execute(
                "q", CancellationToken(), schema_digest=DIGEST
            )

    async def test_cancelled_before_start(self) -> None:
        token = CancellationToken()
        token.cancel()
        llm = FakeChatClient()
        with pytest.raises(RunCancelledError):
            await _executor(_count_executor(), llm).execute("q", token, schema_digest=DIGEST)
        assert llm.calls == []


# ── Rewrite gate ─────────────────────────────────────────────────────────


class TestRewriteGate:
    """The directive is requested once and can stop the run."""

    async def test_rewrite_requested_when_missing(self) -> None:
        llm = FakeChatClient(
            [rewrite_reply(), function_call_reply("sql_query_tool", {"query": "SELECT 1"})]
        )
        await _executor(_count_executor(), llm).execute("q", CancellationToken(), schema_digest=DIGEST)
        assert len(llm.calls) == 2

    async def test_clarification_stops_before_sql(self) -> None:
        llm = FakeChatClient(
            [rewrite_reply(needClarification=True, clarifyingQuestions=["Which month?"])]
        )
        executor = _count_executor()
        with pytest.raises(ClarificationNeededError) as exc_info:
            await _executor(executor, llm).execute("q", CancellationToken(), schema_digest=DIGEST)
        assert exc_info.value.questions == ["Which month?"]
        assert executor.queries == []
        assert len(llm.calls) == 1

    async def test_schema_discovery_appended(self) -> None:
        """needs_schema_discovery adds a compact digest to the prompt."""
        llm = FakeChatClient(
            [
                rewrite_reply(riskFlags=["needs_schema_discovery"]),
                function_call_reply("sql_query_tool", {"query": "SELECT 1"}),
            ]
        )
        await _executor(_count_executor(), llm).execute("q", CancellationToken(), schema_digest=DIGEST)
        prompt = llm.calls[1]["messages"][1]["content"]
        assert "// SchemaDigest (discovered)" in prompt
        assert "Table main_table_1: order_id:BIGINT, 下单时间:TIMESTAMP" in prompt

    async def test_digest_built_when_missing(
        self, spy_listener: SpyListener, spy_events: EventEmitter
    ) -> None:
        executor = _count_executor()
        await _executor(executor, None, spy_events, mock_enabled=True).execute(
            "q", CancellationToken()
        )
        assert executor.calls[1] == 'DESCRIBE "main_table_1";'
        assert spy_listener.of_type("agent.schema.ready")[0].table_names == [ORDERS_TABLE]


# ── Auto repair ──────────────────────────────────────────────────────────


class TestAutoRepair:
    """At most one repaired retry; failures surface the original error."""

    async def test_repair_success(self, spy_listener: SpyListener, spy_events: EventEmitter) -> None:
        executor = FakeQueryExecutor(
            rows=[{"amount": 9.5}], columns=[("amount", "DOUBLE")], errors=[RuntimeError(MISSING_AMT)]
        )
        llm = FakeChatClient(
            [
                function_call_reply("sql_query_tool", {"query": "SELECT amt FROM main_table_1"}),
                content_reply(
                    {"patchedSql": "SELECT amount FROM main_table_1", "explanation": "amt is amount"}
                ),
            ]
        )
        outcome = await _executor(executor, llm, spy_events).execute(
            "q", CancellationToken(), schema_digest=DIGEST, rewrite=CLEAR_REWRITE
        )
        assert outcome.params == {"query": "SELECT amount FROM main_table_1"}
        assert outcome.thought == f"{DEFAULT_THOUGHT}\n\n[Auto SQL Debug]\namt is amount"
        assert executor.queries == [
            "SELECT amt FROM main_table_1 LIMIT 500",
            "SELECT amount FROM main_table_1 LIMIT 500",
        ]
        calls = spy_listener.of_type("agent.tool.call")
        assert len(calls) == 2
        assert json.loads(calls[1].args_preview) == {"query": "SELECT amount FROM main_table_1"}
        assert MISSING_AMT in llm.calls[1]["messages"][1]["content"]

    async def test_repair_retry_fails_returns_original(self) -> None:
        executor = FakeQueryExecutor(
            errors=[RuntimeError(MISSING_AMT), RuntimeError("Catalog Error: something else")]
        )
        llm = FakeChatClient(
            [
                function_call_reply("sql_query_tool", {"query": "SELECT amt FROM main_table_1"}),
                content_reply({"patchedSql": "SELECT amount2 FROM main_table_1"}),
            ]
        )
        with pytest.raises(MissingColumnError) as exc_info:
            await _executor(executor, llm).execute(
                "q", CancellationToken(), schema_digest=DIGEST, rewrite=CLEAR_REWRITE
            )
        assert exc_info.value.missing_column == "amt"
        assert len(executor.queries) == 2

    async def test_unusable_repair_returns_original(self) -> None:
        executor = FakeQueryExecutor(errors=[RuntimeError(MISSING_AMT)])
        llm = FakeChatClient(
            [
                function_call_reply("sql_query_tool", {"query": "SELECT amt FROM main_table_1"}),
                content_reply("no idea"),
            ]
        )
        with pytest.raises(MissingColumnError):
            await _executor(executor, llm).execute(
                "q", CancellationToken(), schema_digest=DIGEST, rewrite=CLEAR_REWRITE
            )
        assert len(executor.queries) == 1

    async def test_policy_denial_not_repaired(self) -> None:
        llm = FakeChatClient([function_call_reply("sql_query_tool", {"query": "DROP TABLE main_table_1"})])
        executor = _count_executor()
        with pytest.raises(SqlPolicyError):
            await _executor(executor, llm).execute(
                "q", CancellationToken(), schema_digest=DIGEST, rewrite=CLEAR_REWRITE
            )
        assert len(llm.calls) == 1
        assert executor.queries == []


# ── Mock mode ────────────────────────────────────────────────────────────


class TestMockMode:
    """Mock mode runs a canned query without any model call."""

    async def test_canned_query(self) -> None:
        executor = _count_executor()
        outcome = await _executor(executor, None, mock_enabled=True).execute(
            "订单总数", CancellationToken(), schema_digest=DIGEST
        )
        assert executor.queries == [
            "SELECT 'mocked_value' AS mock_result, '订单总数' AS user_query, "
            "CURRENT_TIMESTAMP AS create_at FROM main_table_1 LIMIT 10"
        ]
        assert outcome.thought.startswith('Mocking LLM response for query: "订单总数"')

    async def test_mock_ignores_llm(self) -> None:
        llm = FakeChatClient()
        await _executor(_count_executor(), llm, mock_enabled=True).execute(
            "q", CancellationToken(), schema_digest=DIGEST
        )
        assert llm.calls == []

    async def test_mock_skips_repair(self) -> None:
        """A repairable failure in mock mode surfaces without a model call."""
        llm = FakeChatClient()
        executor = FakeQueryExecutor(errors=[RuntimeError(MISSING_AMT)])
        with pytest.raises(MissingColumnError):
            await _executor(executor, llm, mock_enabled=True).execute(
                "q", CancellationToken(), schema_digest=DIGEST
            )
        assert llm.calls == []
        assert len(executor.queries) == 1

    async def test_from_context(self) -> None:
        """Executors built from a skill context share its runtime."""
        executor = _count_executor()
        context = make_context("q", executor=executor, mock_enabled=True, max_rows=5)
        outcome = await ToolCallingExecutor.from_context(context).execute(
            "q", context.runtime.cancellation, schema_digest=context.schema_digest
        )
        assert outcome.tool == "sql_query_tool"
        assert executor.queries[0].endswith("LIMIT 5")
