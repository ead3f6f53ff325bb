"""Agent event emitter.

The emitter is injected per run instead of living in a module global, so
concurrent runs never share a listener. Listener failures are logged and
swallowed: telemetry must never break a run.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from vaultmind.models import (
    AgentEvent,
    ErrorEvent,
    RunEndEvent,
    RunStartEvent,
    SchemaReadyEvent,
    ToolCallEvent,
    ToolResultEvent,
)

from .protocols import EventListener

logger = logging.getLogger(__name__)

ARGS_PREVIEW_MAX_CHARS = 200
RAW_SNIPPET_MAX_CHARS = 500


def now_ms() -> int:
    return int(time.time() * 1000)


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:12]}"


def preview(text: str | None, limit: int = ARGS_PREVIEW_MAX_CHARS) -> str | None:
    """Truncate ``text`` to ``limit`` characters, marking the cut."""
    if text is None:
        return None
    return text if len(text) <= limit else text[: limit - 3] + "..."


class EventEmitter:
    """Builds and dispatches telemetry events for a single run.

    Args:
        listener: Optional sink; ``None`` makes every emit a no-op.
        run_id: Stable id shared by every event of the run.
        session_id: Optional UI session id.
    """

    def __init__(
        self,
        listener: EventListener | None = None,
        *,
        run_id: str | None = None,
        session_id: str | None = None,
    ) -> None:
        self._listener = listener
        self.run_id = run_id or new_run_id()
        self.session_id = session_id

    def bind(self, *, run_id: str | None = None, session_id: str | None = None) -> EventEmitter:
        """Return an emitter sharing this listener with new run/session ids."""
        return EventEmitter(
            self._listener,
            run_id=run_id or new_run_id(),
            session_id=session_id if session_id is not None else self.session_id,
        )

    def emit(self, event: AgentEvent) -> None:
        if self._listener is None:
            return
        try:
            self._listener(event)
        except Exception:
            logger.warning("Agent event listener raised on %s", event.type, exc_info=True)

    def _base(self) -> dict[str, Any]:
        return {"run_id": self.run_id, "session_id": self.session_id, "ts": now_ms()}

    # ── Typed helpers ───────────────────────────────────────────────────

    def run_start(
        self,
        user_input: str,
        *,
        persona_id: str | None = None,
        table_names: list[str] | None = None,
    ) -> None:
        self.emit(
            RunStartEvent(
                **self._base(),
                user_input=user_input,
                persona_id=persona_id,
                table_names=table_names,
            )
        )

    def schema_ready(self, table_names: list[str]) -> None:
        self.emit(SchemaReadyEvent(**self._base(), table_names=list(table_names)))

    def tool_call(self, tool_name: str, args: str | None = None) -> None:
        self.emit(ToolCallEvent(**self._base(), tool_name=tool_name, args_preview=preview(args)))

    def tool_result(
        self,
        tool_name: str,
        *,
        row_count: int | None = None,
        columns: list[str] | None = None,
        query_duration_ms: float | None = None,
    ) -> None:
        self.emit(
            ToolResultEvent(
                **self._base(),
                tool_name=tool_name,
                row_count=row_count,
                columns=columns,
                query_duration_ms=query_duration_ms,
            )
        )

    def error(self, category: str, message: str, *, raw_snippet: str | None = None) -> None:
        self.emit(
            ErrorEvent(
                **self._base(),
                error_category=category,
                error_message=message,
                raw_model_output_snippet=preview(raw_snippet, RAW_SNIPPET_MAX_CHARS),
            )
        )

    def run_end(self, event_fields: dict[str, Any]) -> None:
        self.emit(RunEndEvent(**self._base(), **event_fields))
