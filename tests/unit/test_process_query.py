"""Unit tests for the process_query pipeline entry point.

Runs the full pipeline over in-memory fakes: skill configuration loading,
schema discovery, context assembly and the supervised skill run.
"""

from __future__ import annotations

import pytest
from vaultmind.config.settings import Settings
from vaultmind.entities.shared.cancellation import CancellationToken
from vaultmind.entities.shared.telemetry import EventEmitter
from vaultmind.entities.shared.user_skill_store import InMemoryUserSkillStore
from vaultmind.entities.workflow import PipelineClients, create_pipeline_clients, process_query
from vaultmind.models import (
    Attachment,
    FilterExpr,
    StopReason,
    TableSkillConfig,
    UserSkillConfig,
)

from tests.conftest import ORDERS_COLUMNS, ORDERS_TABLE, FakeQueryExecutor, SpyListener

COUNT_SQL = "SELECT COUNT(*) AS total_count FROM main_table_1 LIMIT 500"


class BrokenSkillStore:
    async def load(self) -> UserSkillConfig | None:
        raise RuntimeError("settings database offline")


def _clients(
    settings: Settings,
    *,
    executor: FakeQueryExecutor | None = None,
    listener: SpyListener | None = None,
    skill_store=None,
) -> PipelineClients:
    return PipelineClients(
        query_executor=executor or FakeQueryExecutor(),
        llm=None,
        skill_store=skill_store or InMemoryUserSkillStore(),
        events=EventEmitter(listener),
        allowed_tables=settings.default_allowed_tables(),
        settings=settings,
    )


class TestProcessQuery:
    """End-to-end runs over fakes."""

    async def test_template_answer(self, test_settings: Settings) -> None:
        executor = FakeQueryExecutor(rows=[{"total_count": 7}], columns=[("total_count", "BIGINT")])
        result = await process_query("统计订单总数", _clients(test_settings, executor=executor))

        assert result.stop_reason is StopReason.SUCCESS
        assert result.params == {"query": COUNT_SQL}
        assert result.result["data"] == [{"total_count": 7}]
        assert executor.queries == [COUNT_SQL]
        assert any(sql.startswith('DESCRIBE "main_table_1"') for sql in executor.calls)

    async def test_events(self, test_settings: Settings, spy_listener: SpyListener) -> None:
        result = await process_query(
            "统计订单总数",
            _clients(test_settings, listener=spy_listener),
            session_id="session-1",
        )

        assert result.ok
        types = spy_listener.types()
        assert types[:2] == ["agent.run.start", "agent.schema.ready"]
        assert types[-1] == "agent.run.end"
        assert spy_listener.of_type("agent.schema.ready")[0].table_names == [ORDERS_TABLE]
        assert len({e.run_id for e in spy_listener.events}) == 1
        assert {e.session_id for e in spy_listener.events} == {"session-1"}
        assert spy_listener.events[0].persona_id == "business_user"

    async def test_user_skill_config_applied(self, test_settings: Settings) -> None:
        config = UserSkillConfig(
            tables={
                ORDERS_TABLE: TableSkillConfig(
                    industry="ecommerce",
                    default_filters=[FilterExpr(column="status", op="=", value="paid")],
                )
            }
        )
        executor = FakeQueryExecutor()
        result = await process_query(
            "统计订单总数",
            _clients(test_settings, executor=executor, skill_store=InMemoryUserSkillStore(config)),
        )
        assert result.ok
        assert "WHERE \"status\" = 'paid'" in executor.queries[0]

    async def test_broken_skill_store_ignored(self, test_settings: Settings) -> None:
        result = await process_query(
            "统计订单总数", _clients(test_settings, skill_store=BrokenSkillStore())
        )
        assert result.ok

    async def test_attachment_tables_allowed(self, test_settings: Settings, spy_listener: SpyListener) -> None:
        executor = FakeQueryExecutor(tables={"uploads_2024": ORDERS_COLUMNS})
        result = await process_query(
            "统计订单总数",
            _clients(test_settings, executor=executor, listener=spy_listener),
            attachments=[Attachment(table_name="uploads_2024", file_name="orders.csv")],
        )
        assert result.ok
        assert executor.queries == ["SELECT COUNT(*) AS total_count FROM uploads_2024 LIMIT 500"]
        assert spy_listener.events[0].table_names == ["uploads_2024"]

    async def test_no_tables(self, test_settings: Settings, spy_listener: SpyListener) -> None:
        executor = FakeQueryExecutor(tables={})
        result = await process_query(
            "统计订单总数", _clients(test_settings, executor=executor, listener=spy_listener)
        )
        assert result.stop_reason is StopReason.TOOL_ERROR
        assert result.message.startswith("No user tables found in the database.")
        assert executor.queries == []
        run_end = spy_listener.of_type("agent.run.end")[0]
        assert run_end.error_category == "SCHEMA_INSUFFICIENT"
        assert spy_listener.of_type("agent.schema.ready") == []

    async def test_cancelled_before_start(self, test_settings: Settings) -> None:
        token = CancellationToken()
        token.cancel()
        executor = FakeQueryExecutor()
        result = await process_query(
            "统计订单总数", _clients(test_settings, executor=executor), cancellation=token
        )
        assert result.stop_reason is StopReason.CANCELLED
        assert executor.queries == []

    async def test_unknown_skill(self, test_settings: Settings) -> None:
        with pytest.raises(KeyError):
            await process_query("q", _clients(test_settings), skill_id="report.v9")


class TestCreatePipelineClients:
    """Factory wiring from settings."""

    def test_without_api_key(self, test_settings: Settings) -> None:
        clients = create_pipeline_clients(test_settings)
        assert clients.llm is None
        assert isinstance(clients.skill_store, InMemoryUserSkillStore)
        assert "main_table_1" in clients.allowed_tables
        assert clients.settings is test_settings

    def test_with_api_key(self, test_settings: Settings, tmp_path) -> None:
        settings = test_settings.model_copy(
            update={"llm_api_key": "sk-test", "user_skill_config_path": str(tmp_path / "s.json")}
        )
        clients = create_pipeline_clients(settings)
        assert clients.llm is not None
        assert clients.llm.model == "gpt-4o-mini"
