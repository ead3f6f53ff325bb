"""``analysis.v1``: classify, fill a SQL template, execute.

Questions that match a known archetype are answered by a fixed template
with the table's default filters applied. Anything the templates cannot
express (comparisons, unknown archetypes, missing role columns) falls
back to the freeform tool-calling executor.
"""

from __future__ import annotations

import json
import logging
import time

from vaultmind.entities.query_builder.columns import ColumnResolver
from vaultmind.entities.query_builder.templates import TemplateColumns, build_template_sql
from vaultmind.entities.query_router.router import (
    DEFAULT_THRESHOLDS,
    RouterThresholds,
    classify_query_type,
)
from vaultmind.entities.schema_discovery.digest import DEFAULT_TABLE_PREFIX, table_names_from_digest
from vaultmind.entities.shared.errors import ClarificationNeededError
from vaultmind.entities.shared.filter_compiler import compile_where_clause
from vaultmind.entities.shared.telemetry import EventEmitter
from vaultmind.entities.tool_executor.executor import ToolCallingExecutor, build_outcome
from vaultmind.entities.tool_executor.tools import SQL_QUERY_TOOL, sql_query_tool
from vaultmind.models import ExecutionOutcome, SkillContext

logger = logging.getLogger(__name__)

TIME_COLUMN_QUESTION = "请选择用于趋势统计的时间字段（例如：下单时间/支付时间/创建时间）。"


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def resolve_table_name(context: SkillContext) -> str:
    """Active table, else the first table in the digest, else the first upload."""
    if context.active_table:
        return context.active_table
    tables = table_names_from_digest(context.schema_digest)
    return tables[0] if tables else f"{DEFAULT_TABLE_PREFIX}1"


class AnalysisSkill:
    """General purpose analysis: classify, template SQL, execute.

    Args:
        thresholds: Router scoring and LLM fallback settings.
    """

    id = "analysis.v1"
    description = "General purpose data analysis: classify, template SQL, execute."

    def __init__(self, thresholds: RouterThresholds = DEFAULT_THRESHOLDS) -> None:
        self._thresholds = thresholds

    async def run(self, context: SkillContext) -> ExecutionOutcome:
        runtime = context.runtime
        llm_start = time.perf_counter()

        # Mock mode never reaches the model, not even for classification
        llm = None if runtime.mock_enabled else runtime.llm
        classification = await classify_query_type(
            context.user_input, llm, context.schema_digest, self._thresholds
        )
        runtime.cancellation.raise_if_cancelled()
        query_type = classification.query_type
        logger.info(
            "Query classified as %s (confidence %.2f, %s)",
            query_type,
            classification.confidence,
            classification.method,
        )

        table_name = resolve_table_name(context)
        table_config = (
            context.user_skill_config.for_table(table_name) if context.user_skill_config else None
        )
        resolver = ColumnResolver.for_table(context.schema_digest, table_name, table_config)
        columns = TemplateColumns(
            time_column=resolver.resolve("time"),
            metric_column=resolver.resolve("amount"),
            dimension_column=resolver.resolve("dimension") if query_type == "kpi_grouped" else None,
        )
        logger.debug("Template columns for %s: %s", table_name, columns)

        if query_type == "trend_time" and not columns.time_column:
            raise ClarificationNeededError([TIME_COLUMN_QUESTION])

        where_clause = compile_where_clause(table_config.default_filters if table_config else None)
        if where_clause:
            logger.info("Applying default filters: %s", where_clause)

        sql = build_template_sql(table_name, query_type, columns, context.max_rows, where_clause)
        if sql is None:
            logger.info("No template for %s, falling back to freeform NL2SQL", query_type)
            executor = ToolCallingExecutor.from_context(context)
            return await executor.execute(
                context.user_input,
                runtime.cancellation,
                schema_digest=context.schema_digest or None,
                rewrite=context.rewrite,
            )

        llm_duration_ms = _elapsed_ms(llm_start)
        events = runtime.events or EventEmitter()
        params = {"query": sql}
        events.tool_call(SQL_QUERY_TOOL, json.dumps(params, ensure_ascii=False))

        query_start = time.perf_counter()
        outcome = await sql_query_tool(
            runtime.execute_query,
            params,
            allowed_tables=context.allowed_tables,
            max_rows=context.max_rows,
        )
        return build_outcome(
            SQL_QUERY_TOOL,
            {"query": outcome.sql},
            outcome,
            f"Classified as {query_type}, executed template SQL",
            events,
            llm_duration_ms=llm_duration_ms,
            query_duration_ms=_elapsed_ms(query_start),
        )
