"""Skill registry.

Skills are looked up by id; every registered skill runs behind the rewrite
gate so clarification is decided before any SQL is generated.
"""

from __future__ import annotations

from vaultmind.entities.query_router.router import DEFAULT_THRESHOLDS, RouterThresholds

from .analysis_v1 import AnalysisSkill
from .base import RewriteGatedSkill, Skill
from .nl2sql_v1 import Nl2SqlSkill

DEFAULT_SKILL_ID = AnalysisSkill.id


def get_skill(
    skill_id: str | None = None,
    *,
    thresholds: RouterThresholds = DEFAULT_THRESHOLDS,
) -> Skill:
    """Return the gated skill registered under ``skill_id``.

    Args:
        skill_id: ``analysis.v1`` (default) or ``nl2sql.v1``.
        thresholds: Router settings for skills that classify.

    Raises:
        KeyError: If no skill has that id.
    """
    skills: dict[str, Skill] = {
        AnalysisSkill.id: AnalysisSkill(thresholds),
        Nl2SqlSkill.id: Nl2SqlSkill(),
    }
    skill = skills.get(skill_id or DEFAULT_SKILL_ID)
    if skill is None:
        raise KeyError(f"Unknown skill: {skill_id}")
    return RewriteGatedSkill(skill)


__all__ = [
    "DEFAULT_SKILL_ID",
    "AnalysisSkill",
    "Nl2SqlSkill",
    "RewriteGatedSkill",
    "Skill",
    "get_skill",
]
