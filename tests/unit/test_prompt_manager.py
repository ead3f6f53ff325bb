"""Unit tests for tool-selection prompt assembly."""

from __future__ import annotations

import pytest
from vaultmind.entities.prompts import PromptManager
from vaultmind.entities.prompts.personas import DATA_ANALYST, get_persona
from vaultmind.models import Attachment, FieldMapping, TableSkillConfig, UserSkillConfig

from tests.conftest import ORDERS_COLUMNS, ORDERS_TABLE, make_digest

DIGEST = make_digest(ORDERS_TABLE, ORDERS_COLUMNS)


class TestToolSelectionPrompt:
    """Sections appear in a fixed order."""

    def test_question_and_schema_substituted(self) -> None:
        prompt = PromptManager().get_tool_selection_prompt("ecommerce", "订单总数", DIGEST)
        assert '"订单总数"' in prompt
        assert DIGEST in prompt
        assert prompt.startswith("You are an expert data analyst specializing in e-commerce data.")

    def test_section_order(self) -> None:
        config = UserSkillConfig(
            tables={
                ORDERS_TABLE: TableSkillConfig(
                    industry="ecommerce", field_mapping=FieldMapping(time_column="下单时间")
                )
            }
        )
        prompt = PromptManager().get_tool_selection_prompt(
            "ecommerce",
            "q",
            DIGEST,
            [Attachment(table_name=ORDERS_TABLE, file_name="orders.xlsx", sheet_name="2024")],
            DATA_ANALYST,
            config,
            ORDERS_TABLE,
        )
        domain = prompt.index("【User Domain Configuration】")
        persona = prompt.index("【User Context】")
        files = prompt.index('table "main_table_1" contains data from sheet "2024"')
        template = prompt.index("**User's Request:**")
        assert domain < persona < files < template
        assert "  - time: 下单时间" in prompt

    def test_no_optional_sections(self) -> None:
        prompt = PromptManager().get_tool_selection_prompt("ECOMMERCE", "q", DIGEST)
        assert "【User Context】" not in prompt
        assert "【User Domain Configuration】" not in prompt
        assert "The user has loaded" not in prompt

    def test_attachment_without_sheet(self) -> None:
        prompt = PromptManager().get_tool_selection_prompt(
            "ecommerce", "q", DIGEST, [Attachment(table_name="main_table_2", file_name="a.csv")]
        )
        assert 'table "main_table_2" contains data from the file "a.csv"' in prompt

    def test_unknown_role(self) -> None:
        with pytest.raises(KeyError):
            PromptManager().get_tool_selection_prompt("healthcare", "q", DIGEST)

    def test_suggestions(self) -> None:
        manager = PromptManager()
        assert len(manager.get_suggestions("ecommerce")) == 5
        assert manager.get_suggestions("unknown") == []


class TestPersonas:
    """Persona lookup falls back to business users."""

    def test_known(self) -> None:
        assert get_persona("data_analyst") is DATA_ANALYST

    @pytest.mark.parametrize("persona_id", [None, "", "astronaut"])
    def test_fallback(self, persona_id: str | None) -> None:
        assert get_persona(persona_id).id == "business_user"
