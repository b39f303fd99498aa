"""Evaluation records produced by the evaluator."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class QualificationTier(str, Enum):
    """Coarse qualification bucket, declared highest first."""

    HIGHLY_QUALIFIED = "highly_qualified"
    QUALIFIED = "qualified"
    PARTIALLY_QUALIFIED = "partially_qualified"
    NOT_QUALIFIED = "not_qualified"

    @property
    def order(self) -> int:
        """Position in the ordering, 0 being the best tier."""
        return list(QualificationTier).index(self)


class CriterionScore(BaseModel):
    """One criterion's raw result as returned by a scorer."""

    criterion_id: str
    raw_score: float = Field(ge=0.0)
    max_score: float
    confidence: float = Field(ge=0.0, le=1.0)
    justification: str = ""
    evidence: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_bounds(self) -> "CriterionScore":
        # A non-positive max score is reported by the aggregator, not here.
        if self.max_score > 0 and self.raw_score > self.max_score:
            raise ValueError(
                f"raw_score {self.raw_score} exceeds max_score {self.max_score} "
                f"for criterion {self.criterion_id!r}"
            )
        return self

    @property
    def percentage(self) -> float:
        return self.raw_score / self.max_score * 100.0


class Evaluation(BaseModel):
    """Immutable result of one candidate x job evaluation run."""

    id: str
    org_id: str | None = None
    candidate_id: str
    job_id: str
    scores: dict[str, CriterionScore] = Field(default_factory=dict)
    overall_score: float = Field(ge=0.0, le=100.0)
    confidence_level: float = Field(ge=0.0, le=1.0)
    qualification_tier: QualificationTier
    strengths: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    interview_focus_areas: list[str] = Field(default_factory=list)
    recommendations: str = ""
    ai_model: str = "unknown"
    failed_criteria: dict[str, str] = Field(default_factory=dict)
    missing_criteria: list[str] = Field(default_factory=list)
    evaluation_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = ConfigDict(extra="forbid", frozen=True)

    def percentage(self, criterion_id: str) -> float | None:
        score = self.scores.get(criterion_id)
        return score.percentage if score is not None else None
