"""Ranking configuration and result schemas."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RankingMethod(str, Enum):
    WEIGHTED_AVERAGE = "weighted_average"
    TOP_SCORE_PRIORITY = "top_score_priority"
    BALANCED_SCORECARD = "balanced_scorecard"


class RankingCriteria(BaseModel):
    """Per-request ranking configuration; never persisted as state."""

    job_id: str
    criteria_weights: dict[str, float]
    ranking_method: RankingMethod = RankingMethod.WEIGHTED_AVERAGE
    include_diversity_factors: bool = False
    tie_breaking_factors: list[str] = Field(default_factory=list)
    notes: str | None = None

    model_config = ConfigDict(extra="forbid")


class RankedCandidate(BaseModel):
    candidate_id: str
    rank: int = Field(ge=1)
    final_score: float
    score_breakdown: dict[str, float] = Field(default_factory=dict)
    justification: str = ""

    model_config = ConfigDict(extra="forbid", frozen=True)


class RankingResult(BaseModel):
    """Ordered candidates for one job.

    Contains no timestamps or generated ids so that ranking the same inputs
    twice serializes to identical bytes.
    """

    job_id: str
    ranked_candidates: list[RankedCandidate] = Field(default_factory=list)
    methodology: str = ""
    criteria_weights: dict[str, float] = Field(default_factory=dict)
    confidence_level: float = Field(ge=0.0, le=1.0)

    model_config = ConfigDict(extra="forbid", frozen=True)
