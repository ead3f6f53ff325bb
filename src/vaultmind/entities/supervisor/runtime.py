"""Budget and cancellation supervisor.

``run_agent`` runs one skill as an asyncio task and races it against a
wall-clock timer and the caller's cancellation token. Whatever happens, the
caller gets exactly one ``SkillResult`` whose ``stop_reason`` is decided
from the typed error hierarchy, never from message text.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any

from vaultmind.entities.shared.cancellation import CancellationToken
from vaultmind.entities.shared.error_recovery import (
    CANCELLED_MESSAGE,
    budget_exceeded_message,
    build_error_message,
    error_category_of,
)
from vaultmind.entities.shared.errors import AgentError
from vaultmind.entities.shared.telemetry import EventEmitter
from vaultmind.entities.skills.base import Skill
from vaultmind.models import AgentBudget, SkillContext, SkillResult, StopReason

logger = logging.getLogger(__name__)

BUDGET_REASON = "budget_exceeded"
CALLER_REASON = "cancelled_by_caller"


def cancelled_result() -> SkillResult:
    return SkillResult(stop_reason=StopReason.CANCELLED, message=CANCELLED_MESSAGE, cancelled=True)


def budget_result(budget: AgentBudget) -> SkillResult:
    return SkillResult(
        stop_reason=StopReason.BUDGET_EXCEEDED,
        message=budget_exceeded_message(budget.max_duration_ms),
    )


def result_from_error(error: BaseException) -> SkillResult:
    """Map an exception that ended a run to its terminal result.

    Args:
        error: The exception raised by the skill or the pipeline.

    Returns:
        A result carrying the error's stop reason and a user-facing message.
    """
    if isinstance(error, AgentError):
        stop_reason = error.stop_reason
    else:
        logger.error("Unclassified error ended the run: %s", error, exc_info=error)
        stop_reason = StopReason.UNKNOWN

    if stop_reason is StopReason.CANCELLED:
        return cancelled_result()
    return SkillResult(stop_reason=stop_reason, message=build_error_message(error))


def emit_run_end(
    events: EventEmitter | None,
    result: SkillResult,
    error: BaseException | None = None,
) -> None:
    """Emit ``agent.run.end`` summarizing ``result``."""
    if events is None:
        return
    fields: dict[str, Any] = {
        "ok": result.ok,
        "stop_reason": result.stop_reason,
        "llm_duration_ms": result.llm_duration_ms,
        "query_duration_ms": result.query_duration_ms,
    }
    if not result.ok:
        fields["error_message"] = result.message
        if error is not None:
            fields["error_category"] = error_category_of(error).value
    events.run_end(fields)


async def _drain(task: asyncio.Task[Any]) -> None:
    """Cancel ``task`` and wait for it to unwind, ignoring its outcome."""
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


async def run_agent(
    skill: Skill,
    context: SkillContext,
    budget: AgentBudget | None = None,
    cancellation: CancellationToken | None = None,
) -> SkillResult:
    """Run ``skill`` under a time budget and the caller's cancellation.

    The run gets its own token, linked to ``cancellation``, which replaces
    the one in ``context.runtime``. When the timer or the caller fires
    first, the run token is cancelled and the skill task is cancelled with
    it so in-flight model and engine awaits stop, and the run ends
    ``CANCELLED``. The run token is detached from the caller on the way out.

    Args:
        skill: The skill to run.
        context: Immutable per-run input.
        budget: Limits; the defaults when ``None``.
        cancellation: Caller token; the context's token when ``None``.

    Returns:
        Exactly one terminal result.
    """
    budget = budget or AgentBudget()
    caller = cancellation or context.runtime.cancellation
    events = context.runtime.events

    if caller.cancelled:
        result = cancelled_result()
        emit_run_end(events, result)
        return result

    run_token = caller.child()
    try:
        result, error = await _supervise(skill, context, budget, caller, run_token)
    finally:
        run_token.detach()

    logger.info("Skill %s finished: %s", skill.id, result.stop_reason.value)
    emit_run_end(events, result, error)
    return result


async def _supervise(
    skill: Skill,
    context: SkillContext,
    budget: AgentBudget,
    caller: CancellationToken,
    run_token: CancellationToken,
) -> tuple[SkillResult, BaseException | None]:
    """Race the skill task against the timer and the caller token."""
    run_context = replace(context, runtime=replace(context.runtime, cancellation=run_token))

    start = time.perf_counter()
    task = asyncio.create_task(skill.run(run_context), name=f"skill:{skill.id}")
    caller_waiter = asyncio.create_task(caller.wait())
    try:
        done, _ = await asyncio.wait(
            {task, caller_waiter},
            timeout=budget.max_duration_ms / 1000,
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        run_token.cancel(CALLER_REASON)
        await _drain(task)
        raise
    finally:
        caller_waiter.cancel()

    error: BaseException | None = None
    if task not in done:
        timed_out = not caller.cancelled
        run_token.cancel(BUDGET_REASON if timed_out else CALLER_REASON)
        await _drain(task)
        if timed_out:
            logger.warning("Skill %s aborted at its %d ms budget", skill.id, budget.max_duration_ms)
        else:
            logger.info("Skill %s cancelled by caller", skill.id)
        result = cancelled_result()
    elif task.cancelled():
        result = cancelled_result()
    else:
        error = task.exception()
        if error is not None:
            result = cancelled_result() if caller.cancelled else result_from_error(error)
        else:
            elapsed_ms = (time.perf_counter() - start) * 1000
            if elapsed_ms > budget.max_duration_ms:
                result = budget_result(budget)
            else:
                result = task.result().to_skill_result()

    return result, error
