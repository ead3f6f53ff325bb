"""Freeform NL2SQL via one tool-calling LLM decision.

The executor builds the tool-selection prompt, asks the model to pick a
tool, runs it, and on a recoverable SQL failure attempts exactly one
automatic repair. Everything it raises is a typed ``AgentError`` so the
supervisor can map it to a stop reason.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable, Sequence
from typing import Any

from vaultmind.entities.prompts.manager import ANALYST_SYSTEM_MESSAGE, PromptManager
from vaultmind.entities.prompts.personas import get_persona
from vaultmind.entities.rewriter.rewriter import rewrite_query
from vaultmind.entities.schema_discovery.digest import (
    DEFAULT_TABLE_PREFIX,
    build_schema_digest,
    discover_schema,
    format_compact_digest,
    table_names_from_digest,
)
from vaultmind.entities.shared.cancellation import CancellationToken
from vaultmind.entities.shared.errors import (
    AgentError,
    ClarificationNeededError,
    ErrorCategory,
    LlmRequestError,
    RunCancelledError,
    ToolCallParseError,
    ToolNotRegisteredError,
)
from vaultmind.entities.shared.filter_compiler import quote_string
from vaultmind.entities.shared.protocols import ChatCompletionClient, QueryExecutor
from vaultmind.entities.shared.telemetry import EventEmitter
from vaultmind.models import (
    Attachment,
    ExecutionOutcome,
    RewriteResult,
    SkillContext,
    UserSkillConfig,
)

from .repair import debug_sql_once, error_message_of, is_repairable
from .response_parser import (
    extract_failure_reason,
    extract_tool_call,
    parse_tool_arguments,
    raw_snippet,
)
from .sanitize import sanitize_rows
from .tools import TOOLS, SqlToolResult, function_definitions

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "ecommerce"
DEFAULT_THOUGHT = "AI decided to use a tool."
SCHEMA_DIGEST_MAX_CHARS = 4000


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class ToolCallingExecutor:
    """Runs one LLM tool decision plus at most one repaired retry.

    Args:
        execute_query: Query executor.
        llm: Chat client; required unless ``mock_enabled``.
        allowed_tables: Tables generated SQL may reference.
        max_rows: Row cap for every executed query.
        events: Telemetry emitter for this run.
        attachments: Table-to-file bindings for prompts and sheet hints.
        persona_id: Persona used to tailor the prompt.
        user_skill_config: Optional user configuration injected into the prompt.
        active_table: Table whose configuration is injected.
        mock_enabled: Replace the LLM decision with a canned query.
        prompt_manager: Prompt builder; a default one when ``None``.
        table_prefix: Naming convention used for schema discovery.
    """

    def __init__(
        self,
        execute_query: QueryExecutor,
        llm: ChatCompletionClient | None,
        *,
        allowed_tables: Iterable[str],
        max_rows: int = 500,
        events: EventEmitter | None = None,
        attachments: Sequence[Attachment] = (),
        persona_id: str | None = None,
        user_skill_config: UserSkillConfig | None = None,
        active_table: str | None = None,
        mock_enabled: bool = False,
        prompt_manager: PromptManager | None = None,
        table_prefix: str = DEFAULT_TABLE_PREFIX,
    ) -> None:
        self._execute_query = execute_query
        self._llm = llm
        self._allowed_tables = frozenset(allowed_tables)
        self._max_rows = max_rows
        self._events = events or EventEmitter()
        self._attachments = tuple(attachments)
        self._persona_id = persona_id
        self._user_skill_config = user_skill_config
        self._active_table = active_table
        self._mock_enabled = mock_enabled
        self._prompt_manager = prompt_manager or PromptManager()
        self._table_prefix = table_prefix

    @classmethod
    def from_context(cls, context: SkillContext) -> ToolCallingExecutor:
        """Build an executor wired to a skill context's runtime."""
        runtime = context.runtime
        return cls(
            runtime.execute_query,
            runtime.llm,
            allowed_tables=context.allowed_tables,
            max_rows=context.max_rows,
            events=runtime.events,
            attachments=context.attachments,
            persona_id=context.persona_id,
            user_skill_config=context.user_skill_config,
            active_table=context.active_table,
            mock_enabled=runtime.mock_enabled,
            prompt_manager=PromptManager(
                user_skill_digest_max_chars=context.user_skill_digest_max_chars
            ),
        )

    # ── Preparation ─────────────────────────────────────────────────────

    async def _prepare_schema(self, schema_digest: str | None) -> str:
        if schema_digest is not None:
            return schema_digest
        digest = await build_schema_digest(
            self._execute_query,
            attachments=self._attachments,
            prefix=self._table_prefix,
            max_chars=SCHEMA_DIGEST_MAX_CHARS,
        )
        self._events.schema_ready(table_names_from_digest(digest))
        return digest

    async def _prepare_rewrite(
        self,
        user_input: str,
        digest: str,
        rewrite: RewriteResult | None,
        cancellation: CancellationToken,
    ) -> RewriteResult | None:
        if rewrite is None and self._llm is not None and not self._mock_enabled:
            rewrite = await rewrite_query(
                self._llm, user_input, digest[:SCHEMA_DIGEST_MAX_CHARS], cancellation
            )
        if rewrite is not None and rewrite.need_clarification:
            raise ClarificationNeededError(rewrite.clarifying_questions)
        return rewrite

    async def _effective_schema(self, digest: str, rewrite: RewriteResult | None) -> str:
        """Append a compact discovered digest when the rewrite asks for one."""
        if rewrite is None or not rewrite.needs_schema_discovery:
            return digest
        tables = table_names_from_digest(digest)
        if not tables:
            return digest
        try:
            discovered = await discover_schema(self._execute_query, tables)
        except RunCancelledError:
            raise
        except Exception as exc:
            logger.warning("Schema discovery failed, using existing digest: %s", exc)
            return digest
        return f"{digest}\n\n// SchemaDigest (discovered)\n{format_compact_digest(discovered)}"

    def _mock_message(self, user_input: str, digest: str) -> dict[str, Any]:
        tables = table_names_from_digest(digest)
        table = tables[0] if tables else f"{self._table_prefix}1"
        query = (
            f"SELECT 'mocked_value' AS mock_result, {quote_string(user_input)} AS user_query, "
            f"CURRENT_TIMESTAMP AS create_at FROM {table} LIMIT 10;"
        )
        payload = {
            "thought": f'Mocking LLM response for query: "{user_input}". Decided to use sql_query_tool.',
            "action": {"tool": "sql_query_tool", "args": {"query": query}},
        }
        return {"role": "assistant", "content": json.dumps(payload, ensure_ascii=False)}

    async def _decide(self, user_input: str, schema: str) -> dict[str, Any]:
        if self._mock_enabled:
            logger.warning("LLM mock is enabled, returning a canned tool call")
            return self._mock_message(user_input, schema)
        if self._llm is None:
            raise ToolCallParseError("No language model is configured for tool selection.")

        prompt = self._prompt_manager.get_tool_selection_prompt(
            DEFAULT_ROLE,
            user_input,
            schema,
            self._attachments,
            get_persona(self._persona_id),
            self._user_skill_config,
            self._active_table,
        )
        messages = [
            {"role": "system", "content": ANALYST_SYSTEM_MESSAGE},
            {"role": "user", "content": prompt},
        ]
        message = await self._llm.complete(
            messages,
            functions=function_definitions(),
            function_call="auto",
        )
        if not message:
            raise ToolCallParseError("LLM returned an empty response.")
        return message

    # ── Execution ───────────────────────────────────────────────────────

    async def _run_tool(self, tool_name: str, args: dict[str, Any]) -> SqlToolResult:
        tool_fn = TOOLS[tool_name]
        return await tool_fn(
            self._execute_query,
            args,
            allowed_tables=self._allowed_tables,
            max_rows=self._max_rows,
        )

    async def _repair_and_retry(
        self,
        llm: ChatCompletionClient,
        tool_name: str,
        failed_sql: str,
        error: AgentError,
        schema: str,
        cancellation: CancellationToken,
    ) -> tuple[SqlToolResult, dict[str, Any], str]:
        """Run the single repair round; any failure re-raises ``error``."""
        try:
            repair = await debug_sql_once(
                llm, failed_sql, error_message_of(error), schema[:SCHEMA_DIGEST_MAX_CHARS]
            )
            cancellation.raise_if_cancelled()
            patched_args = {"query": repair.patched_sql}
            self._events.tool_call(tool_name, json.dumps(patched_args, ensure_ascii=False))
            outcome = await self._run_tool(tool_name, patched_args)
        except RunCancelledError:
            raise
        except Exception as repair_error:
            logger.warning("Auto SQL repair failed, returning original error: %s", repair_error)
            raise error from repair_error
        return outcome, patched_args, repair.explanation

    async def execute(
        self,
        user_input: str,
        cancellation: CancellationToken,
        schema_digest: str | None = None,
        rewrite: RewriteResult | None = None,
    ) -> ExecutionOutcome:
        """Answer ``user_input`` with one tool call.

        Args:
            user_input: The user's question.
            cancellation: Run token, checked between steps.
            schema_digest: Prebuilt digest; introspected when ``None``.
            rewrite: Prebuilt rewrite directive; requested when ``None``.

        Returns:
            The executed tool, its arguments, sanitized result and timings.

        Raises:
            ClarificationNeededError: If the rewrite asks for clarification.
            ToolCallParseError: If the reply holds no tool call.
            ToolNotRegisteredError: If the model names an unknown tool.
            CannotAnswerError: If the model declines to answer.
            SqlPolicyError: If the SQL violates the policy.
            SqlExecutionError: If execution fails and repair does not help.
        """
        cancellation.raise_if_cancelled()
        digest = await self._prepare_schema(schema_digest)

        cancellation.raise_if_cancelled()
        rewrite = await self._prepare_rewrite(user_input, digest, rewrite, cancellation)
        schema = await self._effective_schema(digest, rewrite)

        cancellation.raise_if_cancelled()
        llm_start = time.perf_counter()
        try:
            message = await self._decide(user_input, schema)
        except LlmRequestError as error:
            self._events.error(error.category.value, str(error))
            raise
        llm_duration_ms = _elapsed_ms(llm_start)
        cancellation.raise_if_cancelled()

        call = extract_tool_call(message)
        if call is None:
            reason = extract_failure_reason(message)
            snippet = raw_snippet(message)
            self._events.error(ErrorCategory.LLM_ERROR.value, reason, raw_snippet=snippet)
            raise ToolCallParseError(reason, raw_snippet=snippet)

        tool_name = call.tool_name
        if tool_name not in TOOLS:
            msg = f"Tool '{tool_name}' is not registered."
            self._events.error(ErrorCategory.UNKNOWN.value, msg, raw_snippet=raw_snippet(message))
            raise ToolNotRegisteredError(msg)

        args = parse_tool_arguments(call.arguments)
        thought = call.thought or DEFAULT_THOUGHT
        self._events.tool_call(tool_name, json.dumps(args, ensure_ascii=False))

        query_start = time.perf_counter()
        try:
            outcome = await self._run_tool(tool_name, args)
        except AgentError as error:
            failed_sql = args.get("query") if isinstance(args.get("query"), str) else ""
            repair_llm = None if self._mock_enabled else self._llm
            if repair_llm is None or not is_repairable(tool_name, failed_sql, error):
                self._events.error(error.category.value, str(error))
                raise
            logger.info("Attempting one auto SQL repair after: %s", error.category.value)
            try:
                outcome, args, explanation = await self._repair_and_retry(
                    repair_llm, tool_name, failed_sql, error, schema, cancellation
                )
            except AgentError as final_error:
                self._events.error(final_error.category.value, str(final_error))
                raise
            thought = f"{thought}\n\n[Auto SQL Debug]\n{explanation}"
        query_duration_ms = _elapsed_ms(query_start)

        return build_outcome(
            tool_name,
            args,
            outcome,
            thought,
            self._events,
            llm_duration_ms=llm_duration_ms,
            query_duration_ms=query_duration_ms,
        )


def build_outcome(
    tool_name: str,
    params: dict[str, Any],
    tool_result: SqlToolResult,
    thought: str,
    events: EventEmitter,
    *,
    llm_duration_ms: float | None,
    query_duration_ms: float,
) -> ExecutionOutcome:
    """Sanitize a tool result, emit ``tool.result`` and wrap it as an outcome."""
    result = tool_result.result
    rows = sanitize_rows(result.data)
    schema = list(result.schema_)
    events.tool_result(
        tool_name,
        row_count=len(rows),
        columns=[c.name for c in schema],
        query_duration_ms=query_duration_ms,
    )
    return ExecutionOutcome(
        tool=tool_name,
        params=params,
        result={"data": rows, "schema": [c.model_dump() for c in schema]},
        schema=schema,
        thought=thought,
        llm_duration_ms=llm_duration_ms,
        query_duration_ms=query_duration_ms,
    )
