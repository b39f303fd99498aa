"""Read-only views assembled from evaluation records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .evaluation import QualificationTier


class CandidateOverview(BaseModel):
    overall_score: float
    qualification_tier: QualificationTier
    confidence_level: float

    model_config = ConfigDict(extra="forbid")


class ComparisonRow(BaseModel):
    """Percentages for one criterion across the compared candidates."""

    criterion_id: str
    values: dict[str, float | None] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class CandidateRecommendation(BaseModel):
    candidate_id: str
    recommendation: str
    reasoning: str

    model_config = ConfigDict(extra="forbid")


class ComparisonView(BaseModel):
    """Side-by-side table of several candidates for one job."""

    job_id: str
    candidate_ids: list[str]
    criteria: list[str] = Field(default_factory=list)
    rows: list[ComparisonRow] = Field(default_factory=list)
    overall: dict[str, CandidateOverview] = Field(default_factory=dict)
    strengths_comparison: dict[str, list[str]] = Field(default_factory=dict)
    gaps_comparison: dict[str, list[str]] = Field(default_factory=dict)
    recommendations: list[CandidateRecommendation] = Field(default_factory=list)
    missing_candidates: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class JobEvaluationSummary(BaseModel):
    """Aggregate view of the latest evaluations for a job."""

    job_id: str
    total_evaluations: int
    average_score: float
    qualification_distribution: dict[QualificationTier, int] = Field(default_factory=dict)
    top_strengths: list[str] = Field(default_factory=list)
    common_gaps: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")
