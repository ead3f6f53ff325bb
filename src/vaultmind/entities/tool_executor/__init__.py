"""Tool-calling NL2SQL executor with single-shot SQL repair."""

from .executor import ToolCallingExecutor
from .tools import CANNOT_ANSWER_TOOL, SQL_QUERY_TOOL, TOOLS

__all__ = ["CANNOT_ANSWER_TOOL", "SQL_QUERY_TOOL", "TOOLS", "ToolCallingExecutor"]
