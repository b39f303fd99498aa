"""Pydantic schema definitions shared across the engine."""

from __future__ import annotations

from .candidate import CandidateProfile, ContactInfo, EducationEntry, ExperienceEntry
from .evaluation import CriterionScore, Evaluation, QualificationTier
from .job import JobCriterion, JobDescription
from .ranking import RankedCandidate, RankingCriteria, RankingMethod, RankingResult
from .reports import (
    CandidateOverview,
    CandidateRecommendation,
    ComparisonRow,
    ComparisonView,
    JobEvaluationSummary,
)
from .session import (
    EvaluationProgress,
    EvaluationSession,
    ProgressEvent,
    ProgressStatus,
    SessionStatus,
)

__all__ = [
    "CandidateProfile",
    "ContactInfo",
    "EducationEntry",
    "ExperienceEntry",
    "CriterionScore",
    "Evaluation",
    "QualificationTier",
    "JobCriterion",
    "JobDescription",
    "RankedCandidate",
    "RankingCriteria",
    "RankingMethod",
    "RankingResult",
    "CandidateOverview",
    "CandidateRecommendation",
    "ComparisonRow",
    "ComparisonView",
    "JobEvaluationSummary",
    "EvaluationProgress",
    "EvaluationSession",
    "ProgressEvent",
    "ProgressStatus",
    "SessionStatus",
]
