"""Query Builder package for template SQL generation."""

from .columns import ColumnResolver, ColumnRoleSource, FieldMappingSource, SchemaHeuristicSource
from .templates import TemplateColumns, build_template_sql

__all__ = [
    "ColumnResolver",
    "ColumnRoleSource",
    "FieldMappingSource",
    "SchemaHeuristicSource",
    "TemplateColumns",
    "build_template_sql",
]
