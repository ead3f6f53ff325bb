"""``nl2sql.v1``: freeform NL2SQL through the tool-calling executor."""

from __future__ import annotations

from vaultmind.entities.tool_executor.executor import ToolCallingExecutor
from vaultmind.models import ExecutionOutcome, SkillContext


class Nl2SqlSkill:
    id = "nl2sql.v1"
    description = "Freeform NL2SQL backed by the tool-calling executor."

    async def run(self, context: SkillContext) -> ExecutionOutcome:
        executor = ToolCallingExecutor.from_context(context)
        return await executor.execute(
            context.user_input,
            context.runtime.cancellation,
            schema_digest=context.schema_digest or None,
            rewrite=context.rewrite,
        )
