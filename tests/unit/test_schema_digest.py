"""Unit tests for schema digest construction and parsing."""

from __future__ import annotations

import pytest
from vaultmind.entities.schema_discovery.digest import (
    build_schema_digest,
    column_names_from_digest,
    discover_schema,
    format_compact_digest,
    table_names_from_digest,
)
from vaultmind.entities.shared.errors import SchemaUnavailableError
from vaultmind.models import Attachment, ColumnInfo, DiscoveredTable

from tests.conftest import (
    ORDERS_COLUMNS,
    ORDERS_TABLE,
    PLAIN_COLUMNS,
    FakeQueryExecutor,
    make_digest,
)


class TestBuildSchemaDigest:
    """Digest rendering over the fake engine."""

    async def test_discovers_and_describes(self, fake_executor: FakeQueryExecutor) -> None:
        """Without explicit names, tables are discovered by prefix."""
        digest = await build_schema_digest(fake_executor)
        assert digest == make_digest(ORDERS_TABLE, ORDERS_COLUMNS)
        assert "information_schema.tables" in fake_executor.calls[0]
        assert "LIKE 'main_table_%'" in fake_executor.calls[0]
        assert fake_executor.calls[1] == 'DESCRIBE "main_table_1";'

    async def test_explicit_names_skip_discovery(self) -> None:
        executor = FakeQueryExecutor(
            tables={"main_table_1": ORDERS_COLUMNS, "main_table_2": PLAIN_COLUMNS}
        )
        digest = await build_schema_digest(executor, ["main_table_2"])
        assert digest == make_digest("main_table_2", PLAIN_COLUMNS)
        assert all("information_schema" not in sql for sql in executor.calls)

    async def test_failed_table_is_placeholder(self, fake_executor: FakeQueryExecutor) -> None:
        """One bad table does not sink the digest."""
        digest = await build_schema_digest(fake_executor, [ORDERS_TABLE, "main_table_9"])
        assert digest.startswith("Table: main_table_1\n")
        assert digest.endswith("// Failed to retrieve schema for table: main_table_9")

    async def test_sheet_hint(self, fake_executor: FakeQueryExecutor) -> None:
        digest = await build_schema_digest(
            fake_executor,
            [ORDERS_TABLE],
            [Attachment(table_name=ORDERS_TABLE, file_name="sales.xlsx", sheet_name="Q1")],
        )
        assert digest.splitlines()[0] == 'Table: main_table_1 (from sheet: "Q1")'

    async def test_truncated_to_max_chars(self, fake_executor: FakeQueryExecutor) -> None:
        digest = await build_schema_digest(fake_executor, max_chars=30)
        assert len(digest) == 30

    async def test_no_tables_raises(self) -> None:
        """An empty engine is a schema failure, not an empty digest."""
        with pytest.raises(SchemaUnavailableError):
            await build_schema_digest(FakeQueryExecutor(tables={}))


class TestCompactDigest:
    """Sequential discovery and the one-line-per-table form."""

    async def test_discover_schema(self, fake_executor: FakeQueryExecutor) -> None:
        tables = await discover_schema(fake_executor, [ORDERS_TABLE])
        assert tables[0].table_name == ORDERS_TABLE
        assert [c.name for c in tables[0].columns] == [name for name, _ in ORDERS_COLUMNS]

    async def test_discover_schema_propagates_errors(
        self, fake_executor: FakeQueryExecutor
    ) -> None:
        with pytest.raises(RuntimeError, match="does not exist"):
            await discover_schema(fake_executor, ["nope"])

    def test_format_compact_digest(self) -> None:
        tables = [
            DiscoveredTable(
                table_name="main_table_1",
                columns=[ColumnInfo(name="id", type="BIGINT"), ColumnInfo(name="v", type="DOUBLE")],
            )
        ]
        assert format_compact_digest(tables) == "Table main_table_1: id:BIGINT, v:DOUBLE"


class TestDigestParsing:
    """Table and column names recovered from digest text."""

    def test_table_names(self) -> None:
        digest = make_digest("main_table_1", ORDERS_COLUMNS) + "\n\n" + make_digest(
            "main_table_2", PLAIN_COLUMNS
        )
        assert table_names_from_digest(digest) == ["main_table_1", "main_table_2"]

    def test_columns_for_one_table(self) -> None:
        digest = make_digest("main_table_1", ORDERS_COLUMNS) + "\n\n" + make_digest(
            "main_table_2", PLAIN_COLUMNS
        )
        assert column_names_from_digest(digest, "main_table_2") == ["id", "name", "score"]

    def test_columns_from_compact_form(self) -> None:
        digest = "Table main_table_1: id:BIGINT, 下单时间:TIMESTAMP"
        assert column_names_from_digest(digest) == ["id", "下单时间"]
