"""Protocol interfaces for I/O boundaries.

These protocols enable dependency injection for testability.
Production implementations wrap DuckDB and an OpenAI-compatible chat
endpoint; test fakes return canned data with zero network or filesystem
access.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from vaultmind.models import AgentEvent, QueryResult, UserSkillConfig


@runtime_checkable
class QueryExecutor(Protocol):
    """Runs one read-only SQL statement against the analytical engine."""

    async def execute(self, sql: str) -> QueryResult:
        """Execute a SQL statement.

        Args:
            sql: A single statement already approved by the SQL policy.

        Returns:
            Rows and column schema.

        Raises:
            Exception: Any engine failure, carrying the engine's message.
        """
        ...


@runtime_checkable
class ChatCompletionClient(Protocol):
    """Sends one chat-completions request to an OpenAI-compatible endpoint.

    Returns ``choices[0].message`` as a plain dict with keys such as
    ``content``, ``function_call`` and ``tool_calls``.
    """

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        functions: list[dict[str, Any]] | None = None,
        function_call: str | dict[str, Any] | None = None,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """Request a completion.

        Args:
            messages: Chat messages in OpenAI format.
            functions: Legacy function definitions, if any.
            function_call: Legacy function-call mode (e.g. ``"auto"``).
            tools: Tool definitions, if any.
            temperature: Sampling temperature override.
            max_tokens: Completion token cap.

        Returns:
            The first choice's message as a dict.
        """
        ...


@runtime_checkable
class UserSkillStore(Protocol):
    """Read-only access to the user's skill configuration."""

    async def load(self) -> UserSkillConfig | None:
        """Return the validated configuration, or ``None`` if absent/invalid."""
        ...


@runtime_checkable
class EventListener(Protocol):
    """Receives telemetry events; must not raise."""

    def __call__(self, event: AgentEvent) -> None:
        ...


# ---------------------------------------------------------------------------
# Concrete implementations
# ---------------------------------------------------------------------------


class NoOpListener:
    """EventListener that silently discards all events."""

    def __call__(self, event: AgentEvent) -> None:
        """No-op."""


class CollectingListener:
    """EventListener that keeps every event in memory, in order.

    Handy for inspecting a single run from a notebook or a test.
    """

    def __init__(self) -> None:
        self.events: list[AgentEvent] = []

    def __call__(self, event: AgentEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type for event in self.events]
