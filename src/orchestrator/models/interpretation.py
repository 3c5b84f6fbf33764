"""Interpretation models: the structured plan produced from a command.

An Interpretation either carries an ordered action plan, or a
clarification request with no actions. It never carries both.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.orchestrator.models.action import Action

RiskLevelName = Literal["LOW", "MEDIUM", "HIGH"]


class ClarificationQuestion(BaseModel):
    """One question put back to the user.

    Attributes:
        question: Question text
        type: Expected answer kind
        options: Choices for ``choice`` questions
    """

    model_config = ConfigDict(from_attributes=True)

    question: str = Field(..., min_length=1)
    type: Literal["choice", "text", "number", "confirm"] = "text"
    options: list[str] = Field(default_factory=list)


class ClarificationRequest(BaseModel):
    """Why a command cannot be planned yet, and what to ask."""

    model_config = ConfigDict(from_attributes=True)

    reason: str = Field(..., min_length=1)
    questions: list[ClarificationQuestion] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    @property
    def first_question(self) -> str | None:
        return self.questions[0].question if self.questions else None


class EstimatedImpact(BaseModel):
    """Model-estimated blast radius of a plan."""

    model_config = ConfigDict(from_attributes=True)

    description: str = ""
    affected_items_estimate: int | None = Field(default=None, ge=0)
    risk_level: RiskLevelName | None = None
    reversible: bool = True


class RiskAssessment(BaseModel):
    """Output of risk scoring.

    Attributes:
        risk_level: Bucket from the additive score
        score: Additive score across risk factors
        warnings: One message per triggered factor
    """

    risk_level: RiskLevelName
    score: int = Field(..., ge=0)
    warnings: list[str] = Field(default_factory=list)

    @property
    def warning_text(self) -> str | None:
        return ". ".join(self.warnings) if self.warnings else None


class Interpretation(BaseModel):
    """Structured plan derived from a natural-language command.

    Attributes:
        actions: Ordered action plan (empty when clarification is needed)
        confidence_score: Interpreter confidence in [0, 1]
        risk_level: Risk bucket attached by the risk engine
        risk_warning: Joined risk warnings, or None
        warnings: Model-supplied warnings plus risk warnings
        clarification_needed: Question set blocking execution
        estimated_impact: Model-estimated impact
        requires_confirmation: Whether execution needs explicit confirmation
        preview_recommended: Whether execution should default to dry-run
        source: Which interpreter produced this plan
    """

    model_config = ConfigDict(from_attributes=True)

    actions: list[Action] = Field(default_factory=list)
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    risk_level: RiskLevelName = "LOW"
    risk_warning: str | None = None
    warnings: list[str] = Field(default_factory=list)
    clarification_needed: ClarificationRequest | None = None
    estimated_impact: EstimatedImpact | None = None
    requires_confirmation: bool = False
    preview_recommended: bool = False
    source: Literal["llm", "fallback"] = "llm"

    @model_validator(mode="after")
    def validate_plan(self) -> "Interpretation":
        if self.clarification_needed is not None:
            if self.actions:
                raise ValueError(
                    "An interpretation asking for clarification cannot carry actions"
                )
            return self
        if not self.actions:
            raise ValueError("An interpretation needs actions or a clarification")

        steps = [a.step_number for a in self.actions]
        if len(set(steps)) != len(steps):
            raise ValueError(f"Duplicate step numbers: {sorted(steps)}")
        known = set(steps)
        for action in self.actions:
            if action.depends_on_step is not None and action.depends_on_step not in known:
                raise ValueError(
                    f"Step {action.step_number} depends on missing step "
                    f"{action.depends_on_step}"
                )
        return self

    @property
    def needs_clarification(self) -> bool:
        return self.clarification_needed is not None

    @property
    def is_reversible(self) -> bool:
        return self.estimated_impact is None or self.estimated_impact.reversible

    def ordered_actions(self) -> list[Action]:
        """Actions sorted by step_number."""
        return sorted(self.actions, key=lambda a: a.step_number)

    def to_payload(self) -> dict[str, Any]:
        """JSON-compatible dict for persistence and API responses."""
        return self.model_dump(mode="json")
