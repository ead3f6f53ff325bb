"""Unit tests for the read-only user skill configuration stores."""

from __future__ import annotations

import json
from pathlib import Path

from vaultmind.entities.shared.user_skill_store import (
    InMemoryUserSkillStore,
    JsonFileUserSkillStore,
)
from vaultmind.models import TableSkillConfig, UserSkillConfig

STORED_CONFIG = {
    "version": "v1",
    "tables": {
        "main_table_1": {
            "industry": "ecommerce",
            "fieldMapping": {"timeColumn": "下单时间", "amountColumn": "amount"},
            "defaultFilters": [{"column": "status", "op": "=", "value": "paid"}],
            "metrics": {"gmv": {"label": "GMV", "aggregation": "sum", "column": "amount"}},
        }
    },
}


class TestInMemoryStore:
    """Configs are returned as-is or validated from dicts."""

    async def test_model_passthrough(self) -> None:
        config = UserSkillConfig(tables={"t": TableSkillConfig(industry="retail")})
        assert await InMemoryUserSkillStore(config).load() is config

    async def test_dict_validated(self) -> None:
        config = await InMemoryUserSkillStore(STORED_CONFIG).load()
        assert config is not None
        table = config.for_table("main_table_1")
        assert table.field_mapping.time_column == "下单时间"
        assert table.metrics["gmv"].column == "amount"

    async def test_invalid_dict(self) -> None:
        assert await InMemoryUserSkillStore({"tables": {"t": {"industry": ""}}}).load() is None

    async def test_empty(self) -> None:
        assert await InMemoryUserSkillStore().load() is None


class TestJsonFileStore:
    """Bad files degrade to no configuration."""

    async def test_load(self, tmp_path: Path) -> None:
        path = tmp_path / "skills.json"
        path.write_text(json.dumps(STORED_CONFIG, ensure_ascii=False), encoding="utf-8")
        config = await JsonFileUserSkillStore(path).load()
        assert config is not None
        assert list(config.tables) == ["main_table_1"]

    async def test_missing_file(self, tmp_path: Path) -> None:
        assert await JsonFileUserSkillStore(tmp_path / "absent.json").load() is None

    async def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "skills.json"
        path.write_text("{not json", encoding="utf-8")
        assert await JsonFileUserSkillStore(path).load() is None

    async def test_unsafe_column_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "skills.json"
        payload = {
            "tables": {
                "t": {
                    "industry": "retail",
                    "defaultFilters": [{"column": "x; DROP TABLE t", "op": "=", "value": 1}],
                }
            }
        }
        path.write_text(json.dumps(payload), encoding="utf-8")
        assert await JsonFileUserSkillStore(path).load() is None
