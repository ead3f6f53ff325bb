"""Agent pipeline: single-function entry point for query processing.

``process_query()`` loads the user's skill configuration, builds the
schema digest, assembles the immutable ``SkillContext`` and hands the
chosen skill to the supervisor. Every path ends in exactly one
``SkillResult``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from vaultmind.entities.query_router.router import RouterThresholds
from vaultmind.entities.schema_discovery.digest import build_schema_digest, table_names_from_digest
from vaultmind.entities.shared.cancellation import CancellationToken, ensure_token
from vaultmind.entities.shared.protocols import UserSkillStore
from vaultmind.entities.skills import get_skill
from vaultmind.entities.supervisor.runtime import (
    cancelled_result,
    emit_run_end,
    result_from_error,
    run_agent,
)
from vaultmind.entities.workflow.clients import PipelineClients
from vaultmind.models import (
    AgentBudget,
    Attachment,
    SkillContext,
    SkillResult,
    SkillRuntime,
    UserSkillConfig,
)

logger = logging.getLogger(__name__)


async def load_user_skill_config(store: UserSkillStore) -> UserSkillConfig | None:
    """Load the user skill configuration; any failure degrades to ``None``."""
    try:
        return await store.load()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to load user skill config: %s", exc)
        return None


async def process_query(
    question: str,
    clients: PipelineClients,
    *,
    skill_id: str | None = None,
    attachments: Sequence[Attachment] = (),
    active_table: str | None = None,
    persona_id: str | None = None,
    session_id: str | None = None,
    industry: str | None = None,
    budget: AgentBudget | None = None,
    cancellation: CancellationToken | None = None,
) -> SkillResult:
    """Answer one natural-language question over the loaded tables.

    Args:
        question: The user's question.
        clients: I/O dependencies and settings.
        skill_id: Skill to run; the configured default when ``None``.
        attachments: Table-to-file bindings of the loaded files.
        active_table: Table the user is looking at.
        persona_id: Persona for prompt tailoring.
        session_id: UI session id carried on telemetry.
        industry: Industry hint carried on the context.
        budget: Run limits; derived from settings when ``None``.
        cancellation: Caller token for user-initiated cancellation.

    Returns:
        The terminal result of the run.

    Raises:
        KeyError: If ``skill_id`` names no registered skill.
    """
    settings = clients.settings
    skill = get_skill(
        skill_id or settings.default_skill_id,
        thresholds=RouterThresholds(llm_fallback=settings.router_llm_fallback_threshold),
    )
    token = ensure_token(cancellation)
    budget = budget or AgentBudget(max_duration_ms=settings.max_duration_ms)
    persona_id = persona_id or settings.default_persona_id
    attachments = tuple(attachments)
    attached_tables = [a.table_name for a in attachments]

    events = clients.events.bind(session_id=session_id)
    events.run_start(question, persona_id=persona_id, table_names=attached_tables or None)
    logger.info("Processing question with %s (run %s)", skill.id, events.run_id)

    # ── Step 1: User skill configuration ─────────────────────────────────
    user_skill_config = await load_user_skill_config(clients.skill_store)

    # ── Step 2: Schema digest ────────────────────────────────────────────
    try:
        schema_digest = await build_schema_digest(
            clients.query_executor,
            attached_tables or None,
            attachments,
            prefix=settings.table_prefix,
            max_chars=settings.schema_digest_max_chars,
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("Schema digest failed: %s", exc)
        result = cancelled_result() if token.cancelled else result_from_error(exc)
        emit_run_end(events, result, exc)
        return result
    events.schema_ready(table_names_from_digest(schema_digest))

    # ── Step 3: Context and supervised run ───────────────────────────────
    runtime = SkillRuntime(
        execute_query=clients.query_executor,
        llm=clients.llm,
        cancellation=token,
        events=events,
        mock_enabled=settings.llm_mock_enabled,
    )
    context = SkillContext(
        user_input=question,
        runtime=runtime,
        schema_digest=schema_digest,
        max_rows=settings.max_rows,
        attachments=attachments,
        persona_id=persona_id,
        session_id=session_id,
        run_id=events.run_id,
        industry=industry,
        user_skill_config=user_skill_config,
        active_table=active_table or (attached_tables[0] if attached_tables else None),
        allowed_tables=clients.allowed_tables | frozenset(attached_tables),
        user_skill_digest_max_chars=settings.user_skill_digest_max_chars,
    )
    return await run_agent(skill, context, budget, token)
