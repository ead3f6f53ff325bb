"""Embedded query engine adapters."""

from .duckdb_executor import DuckDBQueryExecutor

__all__ = ["DuckDBQueryExecutor"]
