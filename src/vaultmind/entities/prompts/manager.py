"""Tool-selection prompt assembly.

Sections are assembled in a fixed order: system prompt, user domain
configuration, persona context, file context, then the tool template with
the question and schema substituted in.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from vaultmind.entities.shared.skill_digest import build_user_skill_digest
from vaultmind.models import Attachment, UserSkillConfig

from .personas import Persona

logger = logging.getLogger(__name__)

SECTION_SEPARATOR = "---"

ECOMMERCE_SYSTEM_PROMPT = """You are an expert data analyst specializing in e-commerce data.
You are intelligent, helpful, and an expert in writing DuckDB SQL queries.
You will be given a user's request and the schema of their database table.
Your goal is to assist the user by generating the correct SQL query to answer their question."""

TOOL_SELECTION_TEMPLATE = """
Based on the provided system prompt, user request, and table schema, follow these steps:

**1. Thought:**
First, think step-by-step about how to answer the user's question.
- Analyze the user's request to understand their intent.
- Examine the table schema to identify the relevant columns.
- Formulate a precise SQL query that will retrieve the necessary information from the listed tables.
- The query must be compatible with DuckDB SQL syntax. Quote identifiers with double quotes.
- Your thought process should be clear and justify the SQL query you are about to write.

**2. Action:**
After thinking, provide a JSON object for the action to be taken.
This JSON object must contain the "tool" to use and the "args" for that tool.
Use "sql_query_tool" with an "args" object containing a "query" key holding the full SQL query.
If the question cannot be answered with the available tables and columns, use
"cannot_answer_tool" with an "args" object containing an "explanation" key.

**CONTEXT:**

**User's Request:**
"{user_input}"

**Table Schema:**
```
{table_schema}
```

**YOUR ENTIRE RESPONSE MUST BE A SINGLE VALID JSON OBJECT, containing a "thought" string and an "action" object.**

**Example Response:**
{{
  "thought": "The user wants to know the total number of orders. I can find this by counting the rows in 'main_table_1'.",
  "action": {{
    "tool": "sql_query_tool",
    "args": {{
      "query": "SELECT COUNT(*) FROM main_table_1"
    }}
  }}
}}
"""

ANALYST_SYSTEM_MESSAGE = "You are an expert data analyst who writes SQL queries based on user requests."


@dataclass(frozen=True)
class PromptSet:
    """System prompt, tool template and example questions for one domain."""

    system_prompt: str
    tool_selection_template: str
    suggestions: tuple[str, ...] = field(default_factory=tuple)


PROMPT_SETS: dict[str, PromptSet] = {
    "ecommerce": PromptSet(
        system_prompt=ECOMMERCE_SYSTEM_PROMPT,
        tool_selection_template=TOOL_SELECTION_TEMPLATE,
        suggestions=(
            "哪个产品的销售额最高？",
            "按月统计订单数量和总销售额。",
            "找出客单价最高的10个城市。",
            "统计各个商品分类的销售占比。",
            "分析用户复购率。",
        ),
    ),
}


def _persona_context(persona: Persona) -> str:
    return (
        "\n【User Context】\n"
        f"Role: {persona.display_name}\n"
        f"Description: {persona.description}\n"
        f"Expertise: {', '.join(persona.expertise)}\n\n"
        "Please tailor your analysis and response style according to this user's background:\n"
        "- For data analysts: provide detailed technical insights, SQL explanations, "
        "and statistical metrics\n"
        "- For business users: focus on business KPIs, trends, and actionable recommendations "
        "with simple explanations\n"
        "- For product managers: emphasize user behavior insights, feature performance, "
        "and data-driven product decisions"
    )


def _file_context(attachments: Sequence[Attachment]) -> str:
    infos = []
    for att in attachments:
        if att.sheet_name:
            infos.append(
                f'table "{att.table_name}" contains data from sheet "{att.sheet_name}" '
                f'of the file "{att.file_name}"'
            )
        else:
            infos.append(f'table "{att.table_name}" contains data from the file "{att.file_name}"')
    return f"The user has loaded the following data: {'; '.join(infos)}."


class PromptManager:
    """Builds prompts from a named prompt set.

    Args:
        prompt_sets: Available sets keyed by role; defaults to the built-ins.
        user_skill_digest_max_chars: Budget for the injected user digest.
    """

    def __init__(
        self,
        prompt_sets: dict[str, PromptSet] | None = None,
        *,
        user_skill_digest_max_chars: int = 1200,
    ) -> None:
        self._prompt_sets = prompt_sets if prompt_sets is not None else PROMPT_SETS
        self._digest_max_chars = user_skill_digest_max_chars

    def get_suggestions(self, role: str) -> list[str]:
        prompt_set = self._prompt_sets.get(role.lower())
        if prompt_set is None:
            logger.warning("No prompt set found for role: %s", role)
            return []
        return list(prompt_set.suggestions)

    def get_tool_selection_prompt(
        self,
        role: str,
        user_input: str,
        table_schema: str,
        attachments: Sequence[Attachment] = (),
        persona: Persona | None = None,
        user_skill_config: UserSkillConfig | None = None,
        active_table: str | None = None,
    ) -> str:
        """Assemble the full tool-selection prompt.

        Args:
            role: Prompt set name, e.g. ``"ecommerce"``.
            user_input: The user's question.
            table_schema: Schema digest for the loaded tables.
            attachments: Table-to-file bindings for the file context.
            persona: Optional persona to tailor the answer style.
            user_skill_config: Optional user configuration.
            active_table: Table whose configuration is injected.

        Returns:
            The prompt text.

        Raises:
            KeyError: If ``role`` has no prompt set.
        """
        prompt_set = self._prompt_sets.get(role.lower())
        if prompt_set is None:
            raise KeyError(f'Prompt set for role "{role}" not found.')

        parts = [prompt_set.system_prompt]

        digest = build_user_skill_digest(
            user_skill_config, active_table, max_chars=self._digest_max_chars
        )
        if digest:
            parts.append(f"{SECTION_SEPARATOR}\n【User Domain Configuration】\n{digest}")

        if persona is not None:
            parts.append(SECTION_SEPARATOR + _persona_context(persona))

        if attachments:
            parts.append(f"{SECTION_SEPARATOR}\n{_file_context(attachments)}")

        template = prompt_set.tool_selection_template.format(
            user_input=user_input, table_schema=table_schema
        )
        parts.append(SECTION_SEPARATOR + "\n" + template)

        prompt = "\n\n".join(parts)
        logger.debug("Tool-selection prompt built (%d chars)", len(prompt))
        return prompt
