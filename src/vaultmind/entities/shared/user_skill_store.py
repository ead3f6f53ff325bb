"""Read-only user skill configuration stores.

Persistence belongs to the settings subsystem; the agent only loads. Any
missing, unreadable or invalid configuration degrades to ``None`` so a bad
file never blocks a query.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from vaultmind.models import UserSkillConfig

logger = logging.getLogger(__name__)


class InMemoryUserSkillStore:
    """Holds an already-built configuration (or raw dict to validate)."""

    def __init__(self, config: UserSkillConfig | dict[str, Any] | None = None) -> None:
        self._config = config

    async def load(self) -> UserSkillConfig | None:
        if self._config is None:
            return None
        if isinstance(self._config, UserSkillConfig):
            return self._config
        try:
            return UserSkillConfig.model_validate(self._config)
        except ValidationError as exc:
            logger.error("User skill configuration validation failed: %s", exc)
            return None


class JsonFileUserSkillStore:
    """Loads the configuration from a JSON file written by the settings UI.

    Args:
        path: File location; a missing file means "not configured".
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _read(self) -> str | None:
        if not self._path.is_file():
            return None
        return self._path.read_text(encoding="utf-8")

    async def load(self) -> UserSkillConfig | None:
        try:
            raw = await asyncio.to_thread(self._read)
        except OSError as exc:
            logger.error("Failed to read user skill configuration %s: %s", self._path, exc)
            return None

        if not raw:
            logger.info("No user skill configuration found at %s", self._path)
            return None

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("User skill configuration is not valid JSON: %s", exc)
            return None

        try:
            config = UserSkillConfig.model_validate(payload)
        except ValidationError as exc:
            logger.error("User skill configuration validation failed: %s", exc)
            return None

        logger.info("User skill configuration loaded (%d tables)", len(config.tables))
        return config
