"""Shared test fixtures for VaultMind."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import pytest

# Ensure src/ is on the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vaultmind.config.settings import Settings
from vaultmind.entities.shared.cancellation import CancellationToken
from vaultmind.entities.shared.protocols import CollectingListener
from vaultmind.entities.shared.telemetry import EventEmitter
from vaultmind.models import ColumnInfo, QueryResult, SkillContext, SkillRuntime

# ---------------------------------------------------------------------------
# Canned schema
# ---------------------------------------------------------------------------

ORDERS_TABLE = "main_table_1"

ORDERS_COLUMNS: list[tuple[str, str]] = [
    ("order_id", "BIGINT"),
    ("下单时间", "TIMESTAMP"),
    ("region", "VARCHAR"),
    ("amount", "DOUBLE"),
    ("status", "VARCHAR"),
]

# No time-like, amount-like or dimension-like column names
PLAIN_COLUMNS: list[tuple[str, str]] = [
    ("id", "BIGINT"),
    ("name", "VARCHAR"),
    ("score", "DOUBLE"),
]


def make_digest(table: str, columns: list[tuple[str, str]]) -> str:
    lines = [f"  - {name} ({col_type})" for name, col_type in columns]
    return f"Table: {table}\nColumns:\n" + "\n".join(lines)


# ---------------------------------------------------------------------------
# Protocol fakes
# ---------------------------------------------------------------------------


class FakeQueryExecutor:
    """In-memory fake satisfying the ``QueryExecutor`` protocol.

    Answers table discovery and ``DESCRIBE`` from ``tables``; every other
    query pops the next queued error, if any, else returns canned rows.
    Records every SQL string it receives.
    """

    def __init__(
        self,
        tables: dict[str, list[tuple[str, str]]] | None = None,
        rows: list[dict[str, Any]] | None = None,
        columns: list[tuple[str, str]] | None = None,
        errors: list[Exception] | None = None,
        hang: bool = False,
    ) -> None:
        self.tables = tables if tables is not None else {ORDERS_TABLE: ORDERS_COLUMNS}
        self.rows: list[dict[str, Any]] = rows or []
        self.columns: list[tuple[str, str]] = columns or []
        self.errors: list[Exception] = list(errors or [])
        self.hang = hang
        self.calls: list[str] = []

    @property
    def queries(self) -> list[str]:
        """Calls other than schema introspection."""
        return [
            sql
            for sql in self.calls
            if not sql.startswith("DESCRIBE") and "information_schema" not in sql
        ]

    async def execute(self, sql: str) -> QueryResult:
        """Return a ``QueryResult`` or raise the next queued error."""
        self.calls.append(sql)

        if "information_schema.tables" in sql:
            return QueryResult(data=[{"table_name": name} for name in self.tables])

        if sql.startswith("DESCRIBE"):
            name = sql[len("DESCRIBE "):].rstrip(";").strip().strip('"')
            if name not in self.tables:
                raise RuntimeError(f"Catalog Error: Table with name {name} does not exist!")
            return QueryResult(
                data=[
                    {"column_name": col, "column_type": col_type}
                    for col, col_type in self.tables[name]
                ]
            )

        if self.hang:
            await asyncio.Event().wait()

        if self.errors:
            raise self.errors.pop(0)

        return QueryResult(
            data=list(self.rows),
            schema=[ColumnInfo(name=name, type=col_type) for name, col_type in self.columns],
        )


class FakeChatClient:
    """Scripted fake satisfying the ``ChatCompletionClient`` protocol.

    Each ``complete`` call pops the next reply: a message dict is returned,
    an exception is raised. Records messages and keyword arguments.
    """

    def __init__(self, replies: list[dict[str, Any] | Exception] | None = None) -> None:
        self.replies: list[dict[str, Any] | Exception] = list(replies or [])
        self.calls: list[dict[str, Any]] = []

    async def complete(self, messages: list[dict[str, Any]], **kwargs: Any) -> dict[str, Any]:
        """Return or raise the next scripted reply."""
        self.calls.append({"messages": messages, **kwargs})
        if not self.replies:
            raise AssertionError("FakeChatClient received an unexpected call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def content_reply(payload: dict[str, Any] | str) -> dict[str, Any]:
    """Build an assistant message whose content is ``payload`` (JSON-encoded if a dict)."""
    content = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return {"role": "assistant", "content": content}


def function_call_reply(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Build an assistant message carrying a legacy ``function_call``."""
    return {
        "role": "assistant",
        "content": None,
        "function_call": {"name": name, "arguments": json.dumps(arguments)},
    }


def rewrite_reply(**overrides: Any) -> dict[str, Any]:
    """Build a rewriter reply; defaults describe a clear data question."""
    payload: dict[str, Any] = {
        "taskType": "data_qna",
        "tableScope": "auto",
        "confidence": 0.9,
        "riskFlags": [],
        "assumptions": [],
        "needClarification": False,
        "clarifyingQuestions": [],
    }
    payload.update(overrides)
    return content_reply(payload)


def make_context(
    user_input: str,
    *,
    executor: FakeQueryExecutor | None = None,
    llm: FakeChatClient | None = None,
    schema_digest: str | None = None,
    events: EventEmitter | None = None,
    cancellation: CancellationToken | None = None,
    mock_enabled: bool = False,
    **fields: Any,
) -> SkillContext:
    """Build a ``SkillContext`` over fakes with the orders table loaded."""
    runtime = SkillRuntime(
        execute_query=executor or FakeQueryExecutor(),
        llm=llm,
        cancellation=cancellation or CancellationToken(),
        events=events,
        mock_enabled=mock_enabled,
    )
    fields.setdefault("allowed_tables", frozenset({ORDERS_TABLE}))
    fields.setdefault("active_table", ORDERS_TABLE)
    return SkillContext(
        user_input=user_input,
        runtime=runtime,
        schema_digest=(
            schema_digest if schema_digest is not None else make_digest(ORDERS_TABLE, ORDERS_COLUMNS)
        ),
        **fields,
    )


class SpyListener(CollectingListener):
    """Spy satisfying the ``EventListener`` protocol; captures every event."""

    def of_type(self, event_type: str) -> list[Any]:
        """Return captured events with the given ``type``."""
        return [e for e in self.events if e.type == event_type]


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Return a ``Settings`` instance populated with safe test defaults."""
    return Settings(
        _env_file=None,
        llm_api_key="",
        llm_mock_enabled=False,
        duckdb_path=":memory:",
        user_skill_config_path=None,
    )


@pytest.fixture
def fake_executor() -> FakeQueryExecutor:
    """Return a ``FakeQueryExecutor`` with the orders table loaded."""
    return FakeQueryExecutor()


@pytest.fixture
def spy_listener() -> SpyListener:
    """Return a fresh ``SpyListener`` instance."""
    return SpyListener()


@pytest.fixture
def spy_events(spy_listener: SpyListener) -> EventEmitter:
    """Return an ``EventEmitter`` wired to ``spy_listener``."""
    return EventEmitter(spy_listener, run_id="run_test")
