"""Skill protocol and the rewrite gate shared by every skill."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Protocol, runtime_checkable

from vaultmind.entities.rewriter.rewriter import rewrite_query
from vaultmind.entities.shared.errors import ClarificationNeededError
from vaultmind.models import ExecutionOutcome, SkillContext

logger = logging.getLogger(__name__)

SCHEMA_DIGEST_MAX_CHARS = 4000


@runtime_checkable
class Skill(Protocol):
    """A named strategy for answering one question."""

    id: str
    description: str

    async def run(self, context: SkillContext) -> ExecutionOutcome:
        """Answer ``context.user_input``; failures are raised as ``AgentError``."""
        ...


class RewriteGatedSkill:
    """Run the rewriter before ``inner`` and stop when it asks for clarification.

    The directive is stored on the context handed to ``inner`` so later
    steps never ask the model to rewrite the same question twice. The gate
    is skipped when no model is available or mock mode is on.
    """

    def __init__(self, inner: Skill) -> None:
        self.inner = inner
        self.id = inner.id
        self.description = inner.description

    async def run(self, context: SkillContext) -> ExecutionOutcome:
        runtime = context.runtime
        rewrite = context.rewrite
        if rewrite is None and runtime.llm is not None and not runtime.mock_enabled:
            rewrite = await rewrite_query(
                runtime.llm,
                context.user_input,
                context.schema_digest[:SCHEMA_DIGEST_MAX_CHARS],
                runtime.cancellation,
            )
        if rewrite is not None and rewrite.need_clarification:
            logger.info("Rewrite requested clarification, no SQL generated")
            raise ClarificationNeededError(rewrite.clarifying_questions)

        runtime.cancellation.raise_if_cancelled()
        return await self.inner.run(replace(context, rewrite=rewrite))
