"""Pipeline client container for dependency injection.

``PipelineClients`` bundles every I/O dependency the agent pipeline needs.
Production code constructs it via ``create_pipeline_clients()`` from the
DuckDB and OpenAI adapters; tests construct it from in-memory fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from vaultmind.config.settings import Settings, get_settings
from vaultmind.entities.engine.duckdb_executor import DuckDBQueryExecutor
from vaultmind.entities.llm.client import OpenAIChatClient
from vaultmind.entities.shared.protocols import (
    ChatCompletionClient,
    EventListener,
    QueryExecutor,
    UserSkillStore,
)
from vaultmind.entities.shared.telemetry import EventEmitter
from vaultmind.entities.shared.user_skill_store import (
    InMemoryUserSkillStore,
    JsonFileUserSkillStore,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# PipelineClients dataclass
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PipelineClients:
    """Immutable bundle of all I/O dependencies for the agent pipeline.

    All collaborators use Protocol types, enabling full dependency
    injection. Production code passes DuckDB and OpenAI adapters; tests
    pass fakes.

    Args:
        query_executor: Engine used for schema discovery and queries.
        llm: Chat client, or ``None`` to run keyword-only/mock flows.
        skill_store: Source of the user skill configuration.
        events: Telemetry emitter; rebound per run.
        allowed_tables: Tables generated SQL may reference.
        settings: Read-only application settings.
    """

    query_executor: QueryExecutor
    llm: ChatCompletionClient | None
    skill_store: UserSkillStore
    events: EventEmitter
    allowed_tables: frozenset[str]
    settings: Settings = field(default_factory=get_settings)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_pipeline_clients(
    settings: Settings | None = None,
    listener: EventListener | None = None,
) -> PipelineClients:
    """Build a ``PipelineClients`` from application ``Settings``.

    No module-level singletons are created; each call produces a fresh,
    self-contained bundle.

    Args:
        settings: Application configuration; ``get_settings()`` when ``None``.
        listener: Optional telemetry sink.

    Returns:
        Fully-initialised ``PipelineClients`` ready for ``process_query()``.
    """
    settings = settings or get_settings()

    # -- Engine ------------------------------------------------------------
    engine = DuckDBQueryExecutor(settings.duckdb_path)

    # -- LLM client --------------------------------------------------------
    llm: ChatCompletionClient | None = None
    if settings.llm_api_key:
        llm = OpenAIChatClient(
            settings.llm_model_name,
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            timeout=settings.llm_timeout_seconds,
        )
    elif not settings.llm_mock_enabled:
        logger.warning("LLM_API_KEY is not set; only template answers are available")

    # -- User skill configuration -------------------------------------------
    skill_store: UserSkillStore
    if settings.user_skill_config_path:
        skill_store = JsonFileUserSkillStore(settings.user_skill_config_path)
    else:
        skill_store = InMemoryUserSkillStore()

    return PipelineClients(
        query_executor=engine,
        llm=llm,
        skill_store=skill_store,
        events=EventEmitter(listener),
        allowed_tables=settings.default_allowed_tables(),
        settings=settings,
    )
