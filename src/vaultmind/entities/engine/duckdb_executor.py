"""
DuckDB query executor.

Runs read-only queries against an embedded DuckDB database on a worker
thread so the event loop stays responsive, and interrupts the running
query when the awaiting task is cancelled.
"""

import asyncio
import logging
from typing import Any

import duckdb

from vaultmind.models import ColumnInfo, QueryResult

logger = logging.getLogger(__name__)

SQL_LOG_MAX_CHARS = 200


class DuckDBQueryExecutor:
    """
    Async context manager around a DuckDB connection.

    Each query runs on its own cursor so an interrupt only affects the
    query it was issued for.

    Usage:
        async with DuckDBQueryExecutor(":memory:") as engine:
            result = await engine.execute("SELECT 42 AS answer")
    """

    def __init__(
        self,
        database: str = ":memory:",
        *,
        read_only: bool = False,
        connection: duckdb.DuckDBPyConnection | None = None,
    ):
        """
        Initialize the executor.

        Args:
            database: Database file path, or ``:memory:``.
            read_only: Open the database file read-only.
            connection: Existing connection to reuse instead of opening one.
        """
        self.database = database
        self.read_only = read_only
        self._connection = connection
        self._owns_connection = connection is None

    async def __aenter__(self) -> "DuckDBQueryExecutor":
        self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def connect(self) -> duckdb.DuckDBPyConnection:
        """Open the connection if it is not open yet."""
        if self._connection is None:
            logger.info("Opening DuckDB database %s", self.database)
            self._connection = duckdb.connect(database=self.database, read_only=self.read_only)
            self._owns_connection = True
        return self._connection

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        return self.connect()

    def close(self) -> None:
        if self._connection is not None and self._owns_connection:
            self._connection.close()
        self._connection = None

    @staticmethod
    def _run(cursor: duckdb.DuckDBPyConnection, sql: str) -> QueryResult:
        relation = cursor.sql(sql)
        if relation is None:
            return QueryResult()
        columns = list(relation.columns)
        types = [str(t) for t in relation.types]
        rows = relation.fetchall()
        return QueryResult(
            data=rows_to_dicts(columns, rows),
            schema=[ColumnInfo(name=name, type=type_name) for name, type_name in zip(columns, types)],
        )

    async def execute(self, sql: str) -> QueryResult:
        """
        Execute ``sql`` and return its rows and column schema.

        Args:
            sql: The SQL to run; callers validate it first.

        Returns:
            Rows as dicts plus column names and engine type names.

        Raises:
            duckdb.Error: Engine errors propagate with the engine message.
            asyncio.CancelledError: If the awaiting task is cancelled.
        """
        logger.debug("DuckDB executing: %s", sql[:SQL_LOG_MAX_CHARS])
        cursor = self.connection.cursor()
        try:
            result = await asyncio.to_thread(self._run, cursor, sql)
        except asyncio.CancelledError:
            # The worker thread may still be running; interrupt it and leave the cursor to it
            logger.info("Query cancelled, interrupting DuckDB")
            try:
                cursor.interrupt()
            except duckdb.Error as exc:
                logger.debug("DuckDB interrupt failed: %s", exc)
            raise
        except Exception:
            cursor.close()
            raise
        cursor.close()
        return result

    def __repr__(self) -> str:
        return f"DuckDBQueryExecutor(database={self.database!r})"


def rows_to_dicts(columns: list[str], rows: list[tuple[Any, ...]]) -> list[dict[str, Any]]:
    return [dict(zip(columns, row)) for row in rows]
