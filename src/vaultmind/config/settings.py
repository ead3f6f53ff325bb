"""Centralized agent settings loaded from environment variables.

All configuration is defined once here. Other modules should import
``get_settings()`` rather than calling ``os.getenv()`` directly.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent-wide configuration backed by environment variables.

    Field names are **lowercased** versions of the env-var names.
    ``pydantic-settings`` maps them automatically (case-insensitive).

    Example::

        settings = Settings()  # reads .env + real env
        model = settings.llm_model_name
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- LLM (OpenAI-compatible) -------------------------------------------

    llm_api_key: str = ""
    """API key for the chat-completions endpoint."""

    llm_base_url: str | None = None
    """Base URL of any OpenAI-compatible endpoint (None → api.openai.com)."""

    llm_model_name: str = "gpt-4o-mini"
    """Model used for rewrite, classification, tool selection and repair."""

    llm_mock_enabled: bool = False
    """Replace the tool-selection call with a canned reply (tests, demos)."""

    llm_timeout_seconds: float = 30.0
    """Per-request HTTP timeout for the chat client."""

    # -- Engine ------------------------------------------------------------

    duckdb_path: str = ":memory:"
    """DuckDB database file (``:memory:`` for an in-process database)."""

    table_prefix: str = "main_table_"
    """Naming convention for tables created from loaded files."""

    max_allowed_tables: int = 50
    """Number of ``<prefix><n>`` tables admitted by the default allowlist."""

    # -- Budgets -----------------------------------------------------------

    max_rows: int = 500
    """Row cap enforced on every executed query."""

    max_duration_ms: int = 20_000
    """Wall-clock budget for a whole run."""

    schema_digest_max_chars: int = 4000
    """Character budget for the schema digest sent to the model."""

    user_skill_digest_max_chars: int = 1200
    """Character budget for the user skill digest."""

    # -- Routing -----------------------------------------------------------

    router_llm_fallback_threshold: float = 0.7
    """Keyword confidence below which the router asks the model."""

    # -- Skills ------------------------------------------------------------

    user_skill_config_path: str | None = None
    """JSON file holding the user skill configuration (None → no config)."""

    default_skill_id: str = "analysis.v1"
    """Skill used when the caller does not pick one."""

    default_persona_id: str = "business_user"
    """Persona applied to prompts when the caller does not pick one."""

    def default_allowed_tables(self) -> frozenset[str]:
        """Return the allowlist for engine tables created from loaded files.

        Returns:
            ``main_table`` plus ``main_table_1`` .. ``main_table_<max>``.
        """
        base = self.table_prefix.rstrip("_")
        numbered = {f"{self.table_prefix}{i}" for i in range(1, self.max_allowed_tables + 1)}
        return frozenset({base, *numbered})


def get_settings() -> Settings:
    """Return the process-wide ``Settings`` instance.

    The ``.env`` file is read at most once per process.

    Returns:
        The global ``Settings`` object.
    """
    return _settings


_settings = Settings()
