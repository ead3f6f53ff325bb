"""User personas used to tailor the tool-selection prompt."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PERSONA_ID = "business_user"


class Persona(BaseModel):
    """A user background the model should adapt its answer style to."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    description: str
    expertise: list[str] = Field(default_factory=list)


DATA_ANALYST = Persona(
    id="data_analyst",
    display_name="Data Analyst",
    description=(
        "Experienced with SQL and statistical analysis, requiring detailed data insights "
        "and technical metrics."
    ),
    expertise=["SQL", "Statistical Analysis", "Data Modeling", "Data Visualization"],
)

BUSINESS_USER = Persona(
    id="business_user",
    display_name="Business Operations",
    description=(
        "Focused on business metrics and trends, seeking clear conclusions and actionable "
        "recommendations."
    ),
    expertise=["Business Metrics", "User Operations", "KPI Monitoring", "Data Reporting"],
)

PRODUCT_MANAGER = Persona(
    id="product_manager",
    display_name="Product Manager",
    description=(
        "Focused on user behavior and product performance, requiring user insights and "
        "feature impact analysis."
    ),
    expertise=["User Behavior Analysis", "A/B Testing", "Funnel Analysis", "Retention Analysis"],
)

PERSONAS: dict[str, Persona] = {p.id: p for p in (DATA_ANALYST, BUSINESS_USER, PRODUCT_MANAGER)}


def get_persona(persona_id: str | None) -> Persona:
    """Return the persona for ``persona_id``, falling back to business users."""
    if not persona_id or persona_id not in PERSONAS:
        return PERSONAS[DEFAULT_PERSONA_ID]
    return PERSONAS[persona_id]
