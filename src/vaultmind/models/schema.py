"""
Engine-facing models.

These models describe what the query-execution callback returns and how
loaded files are bound to engine tables.
"""

from typing import Any

from pydantic import BaseModel, Field


class ColumnInfo(BaseModel):
    """A result or table column as reported by the engine."""

    name: str = Field(description="Column name")
    type: str = Field(default="unknown_type", description="Engine type name, e.g. 'VARCHAR'")


class QueryResult(BaseModel):
    """Rows and column schema returned by the query-execution callback."""

    data: list[dict[str, Any]] = Field(default_factory=list, description="One dict per row")
    schema_: list[ColumnInfo] = Field(
        default_factory=list,
        alias="schema",
        description="Result column names and types",
    )

    model_config = {"populate_by_name": True}

    @property
    def columns(self) -> list[str]:
        """Result column names in order."""
        return [c.name for c in self.schema_]

    @property
    def row_count(self) -> int:
        return len(self.data)


class Attachment(BaseModel):
    """Binding between an engine table and the file it was loaded from."""

    table_name: str = Field(description="Engine table name, e.g. 'main_table_1'")
    file_name: str = Field(default="", description="Original file name")
    sheet_name: str | None = Field(default=None, description="Source sheet for workbook files")


class DiscoveredTable(BaseModel):
    """Columns introspected for a single table."""

    table_name: str
    columns: list[ColumnInfo] = Field(default_factory=list)
