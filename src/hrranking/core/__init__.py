"""Core evaluation and ranking engine components."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..schemas import CandidateProfile, CriterionScore, JobCriterion


@runtime_checkable
class Scorer(Protocol):
    """Scorer contract for rating one candidate on one criterion."""

    def score(
        self,
        candidate: CandidateProfile,
        criterion: JobCriterion,
        instructions: str | None,
    ) -> CriterionScore:
        """Return the criterion score; raise on failure."""


# NOTE: keep imports explicit for export clarity.
from .aggregation import AggregateScores, ScoreAggregator  # noqa: E402
from .batch import BatchConfig, BatchOrchestrator  # noqa: E402
from .evaluator import Evaluator, EvaluatorConfig  # noqa: E402
from .insights import InsightThresholds  # noqa: E402
from .ranking import RankingConfig, RankingEngine  # noqa: E402
from .reports import build_comparison, summarize_job  # noqa: E402
from .scorers import HTTPScorer, KeywordScorer, KeywordScorerConfig  # noqa: E402

__all__ = [
    "Scorer",
    "AggregateScores",
    "ScoreAggregator",
    "Evaluator",
    "EvaluatorConfig",
    "InsightThresholds",
    "BatchConfig",
    "BatchOrchestrator",
    "RankingConfig",
    "RankingEngine",
    "build_comparison",
    "summarize_job",
    "HTTPScorer",
    "KeywordScorer",
    "KeywordScorerConfig",
]
