"""Score aggregation for a single candidate against a single job."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from ..errors import InsufficientDataError, InvalidCriterionError, InvalidWeightConfigError
from ..schemas import CriterionScore, QualificationTier

# Minimum overall score (percent) per tier, highest tier first.
DEFAULT_TIER_THRESHOLDS: tuple[tuple[QualificationTier, float], ...] = (
    (QualificationTier.HIGHLY_QUALIFIED, 85.0),
    (QualificationTier.QUALIFIED, 70.0),
    (QualificationTier.PARTIALLY_QUALIFIED, 50.0),
    (QualificationTier.NOT_QUALIFIED, 0.0),
)


@dataclass(slots=True)
class AggregateScores:
    """Aggregated view of one criterion score set."""

    overall_score: float
    confidence_level: float
    qualification_tier: QualificationTier
    missing_criteria: list[str] = field(default_factory=list)


def build_tier_table(
    thresholds: Mapping[str, float] | None,
) -> tuple[tuple[QualificationTier, float], ...]:
    """Merge tier overrides (keyed by tier value) into the default table."""

    if not thresholds:
        return DEFAULT_TIER_THRESHOLDS
    merged = {tier: minimum for tier, minimum in DEFAULT_TIER_THRESHOLDS}
    for key, value in thresholds.items():
        try:
            tier = QualificationTier(key)
        except ValueError as exc:
            raise ValueError(f"Unknown qualification tier: {key!r}") from exc
        merged[tier] = float(value)
    table = tuple((tier, merged[tier]) for tier in QualificationTier)
    minimums = [minimum for _, minimum in table]
    if minimums != sorted(minimums, reverse=True):
        raise ValueError("Tier thresholds must decrease from highly_qualified to not_qualified.")
    return table


class ScoreAggregator:
    """Combine criterion scores into an overall score and qualification tier."""

    def __init__(self, *, thresholds: Mapping[str, float] | None = None) -> None:
        self._tiers = build_tier_table(thresholds)

    @property
    def tier_table(self) -> tuple[tuple[QualificationTier, float], ...]:
        return self._tiers

    def aggregate(
        self,
        scores: Sequence[CriterionScore],
        weights: Mapping[str, float] | None = None,
    ) -> AggregateScores:
        if not scores:
            raise InsufficientDataError("Cannot aggregate an empty score set.")

        by_criterion: dict[str, CriterionScore] = {}
        for score in scores:
            if score.max_score <= 0:
                raise InvalidCriterionError(
                    f"Criterion {score.criterion_id!r} has non-positive max_score {score.max_score}."
                )
            if score.criterion_id in by_criterion:
                raise InvalidCriterionError(f"Duplicate score for criterion {score.criterion_id!r}.")
            by_criterion[score.criterion_id] = score

        if weights:
            overall, confidence, missing = self._weighted(by_criterion, weights)
        else:
            overall, confidence, missing = self._unweighted(by_criterion)

        overall = round(min(max(overall, 0.0), 100.0), 2)
        confidence = round(min(max(confidence, 0.0), 1.0), 4)
        return AggregateScores(
            overall_score=overall,
            confidence_level=confidence,
            qualification_tier=self.tier_for(overall),
            missing_criteria=missing,
        )

    def tier_for(self, overall_score: float) -> QualificationTier:
        for tier, minimum in self._tiers:
            if overall_score >= minimum:
                return tier
        return QualificationTier.NOT_QUALIFIED

    @staticmethod
    def _weighted(
        scores: Mapping[str, CriterionScore],
        weights: Mapping[str, float],
    ) -> tuple[float, float, list[str]]:
        total_weight = 0.0
        score_sum = 0.0
        confidence_sum = 0.0
        missing: list[str] = []
        for criterion_id in sorted(weights):
            weight = float(weights[criterion_id])
            if weight < 0:
                raise InvalidWeightConfigError(
                    f"Weight for criterion {criterion_id!r} must not be negative."
                )
            total_weight += weight
            score = scores.get(criterion_id)
            if score is None:
                # Missing criteria keep their weight and contribute nothing.
                missing.append(criterion_id)
                continue
            score_sum += score.percentage * weight
            confidence_sum += score.confidence * weight
        if total_weight <= 0:
            raise InvalidWeightConfigError("Criterion weights must sum to a positive value.")
        return score_sum / total_weight, confidence_sum / total_weight, missing

    @staticmethod
    def _unweighted(scores: Mapping[str, CriterionScore]) -> tuple[float, float, list[str]]:
        ordered = [scores[key] for key in sorted(scores)]
        count = len(ordered)
        overall = sum(score.percentage for score in ordered) / count
        confidence = sum(score.confidence for score in ordered) / count
        return overall, confidence, []


__all__ = [
    "AggregateScores",
    "DEFAULT_TIER_THRESHOLDS",
    "ScoreAggregator",
    "build_tier_table",
]
