"""Deterministic post-processing of a criterion score set."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from ..schemas import CriterionScore, JobCriterion, QualificationTier


@dataclass
class InsightThresholds:
    """Percentage and confidence cut-offs for evaluation insights."""

    strength_min_percentage: float = 80.0
    gap_max_percentage: float = 50.0
    low_confidence: float = 0.6


@dataclass(slots=True)
class EvaluationInsights:
    strengths: list[str] = field(default_factory=list)
    gaps: list[str] = field(default_factory=list)
    interview_focus_areas: list[str] = field(default_factory=list)
    recommendations: str = ""


_TIER_RECOMMENDATIONS: dict[QualificationTier, str] = {
    QualificationTier.HIGHLY_QUALIFIED: "Strong match; advance to the next interview stage.",
    QualificationTier.QUALIFIED: "Good match; proceed with a structured interview.",
    QualificationTier.PARTIALLY_QUALIFIED: "Partial match; consider only if the gaps are trainable.",
    QualificationTier.NOT_QUALIFIED: "Weak match for this role; not recommended to proceed.",
}


def derive_insights(
    criteria: Sequence[JobCriterion],
    scores: Mapping[str, CriterionScore],
    failed: Mapping[str, str],
    tier: QualificationTier,
    thresholds: InsightThresholds | None = None,
) -> EvaluationInsights:
    """Threshold each criterion percentage into strengths, gaps and focus areas.

    Output follows the order of ``criteria`` so the same inputs always yield
    the same lists.
    """

    limits = thresholds or InsightThresholds()
    insights = EvaluationInsights()

    for criterion in criteria:
        if criterion.id in failed:
            insights.interview_focus_areas.append(
                f"Verify {criterion.label} directly: automated scoring was unavailable"
            )
            continue
        score = scores.get(criterion.id)
        if score is None:
            continue
        percentage = score.percentage
        label = f"{criterion.label} ({percentage:.0f}%)"
        if percentage >= limits.strength_min_percentage:
            insights.strengths.append(label)
        elif percentage < limits.gap_max_percentage:
            insights.gaps.append(label)
            insights.interview_focus_areas.append(f"Probe {criterion.label}: scored below expectations")
            continue
        if score.confidence < limits.low_confidence:
            insights.interview_focus_areas.append(
                f"Confirm {criterion.label}: low scoring confidence ({score.confidence:.2f})"
            )

    insights.recommendations = _recommendation_text(tier, insights)
    return insights


def _recommendation_text(tier: QualificationTier, insights: EvaluationInsights) -> str:
    parts = [_TIER_RECOMMENDATIONS[tier]]
    if insights.strengths:
        parts.append(f"Key strengths: {', '.join(insights.strengths[:3])}.")
    if insights.gaps:
        parts.append(f"Main gaps: {', '.join(insights.gaps[:3])}.")
    return " ".join(parts)


__all__ = ["EvaluationInsights", "InsightThresholds", "derive_insights"]
