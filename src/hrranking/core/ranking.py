"""Deterministic candidate ranking for a job."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import pendulum
import structlog

from ..errors import InsufficientDataError, InvalidWeightConfigError, RankingInputError
from ..schemas import (
    CandidateProfile,
    Evaluation,
    RankedCandidate,
    RankingCriteria,
    RankingMethod,
    RankingResult,
)
from .tiebreakers import TieBreakContext, TieBreaker, resolve_tie_breaker, unknown_factors

TIE_EPSILON = 0.01
WEIGHT_TOTAL = 100.0
_WEIGHT_TOLERANCE = 1e-6

_METHOD_DESCRIPTIONS: dict[RankingMethod, str] = {
    RankingMethod.WEIGHTED_AVERAGE: "weighted average of criterion percentages",
    RankingMethod.TOP_SCORE_PRIORITY: (
        "highest single weighted criterion percentage, weighted average as secondary key"
    ),
    RankingMethod.BALANCED_SCORECARD: (
        "weighted average penalised by the weighted standard deviation across criteria"
    ),
}


@dataclass
class RankingConfig:
    """Tunables for ranking methods."""

    balanced_penalty: float = 0.5

    def __post_init__(self) -> None:
        if self.balanced_penalty < 0:
            raise ValueError("balanced_penalty must not be negative")


@dataclass(slots=True)
class _ScoredCandidate:
    evaluation: Evaluation
    final_score: float
    weighted_average: float
    breakdown: dict[str, float]
    missing: list[str]
    factor_values: list[float | None] = field(default_factory=list)

    @property
    def candidate_id(self) -> str:
        return self.evaluation.candidate_id


class RankingEngine:
    """Pure ranking over already-completed evaluations."""

    def __init__(self, *, config: RankingConfig | None = None) -> None:
        self._config = config or RankingConfig()
        self._logger = structlog.get_logger(__name__)

    def validate(self, criteria: RankingCriteria) -> None:
        """Reject unusable ranking configurations before any work is done."""

        weights = criteria.criteria_weights
        if not weights:
            raise InvalidWeightConfigError("criteria_weights must not be empty.")
        for criterion_id, weight in weights.items():
            if not 0.0 <= weight <= WEIGHT_TOTAL:
                raise InvalidWeightConfigError(
                    f"Weight for {criterion_id!r} must be within 0..100, got {weight}."
                )
        total = math.fsum(weights.values())
        if abs(total - WEIGHT_TOTAL) > _WEIGHT_TOLERANCE:
            raise InvalidWeightConfigError(f"criteria_weights must sum to 100, got {total:g}.")
        unknown = unknown_factors(criteria.tie_breaking_factors)
        if unknown:
            raise RankingInputError(f"Unknown tie-breaking factors: {unknown}")

    def rank(
        self,
        job_id: str,
        evaluations: Iterable[Evaluation],
        criteria: RankingCriteria,
        *,
        candidates: Mapping[str, CandidateProfile] | None = None,
        org_id: str | None = None,
    ) -> RankingResult:
        self.validate(criteria)
        if criteria.job_id != job_id:
            raise RankingInputError(
                f"Ranking criteria belong to job {criteria.job_id!r}, not {job_id!r}."
            )
        latest = self._latest_per_candidate(job_id, evaluations, org_id)
        if not latest:
            raise InsufficientDataError(f"No evaluations to rank for job {job_id!r}.")

        profiles = candidates or {}
        if org_id is not None:
            for evaluation in latest:
                profile = profiles.get(evaluation.candidate_id)
                if profile is not None and profile.org_id != org_id:
                    raise RankingInputError(
                        f"Candidate {profile.candidate_id!r} belongs to organisation "
                        f"{profile.org_id!r}, not {org_id!r}."
                    )
        context = TieBreakContext(
            as_of=pendulum.instance(max(evaluation.created_at for evaluation in latest))
        )
        factors: list[TieBreaker] = [
            resolve_tie_breaker(factor_id) for factor_id in criteria.tie_breaking_factors
        ]
        weights = sorted(criteria.criteria_weights.items())

        scored = []
        for evaluation in latest:
            candidate = self._score(evaluation, weights, criteria.ranking_method)
            profile = profiles.get(evaluation.candidate_id)
            candidate.factor_values = [factor(evaluation, profile, context) for factor in factors]
            scored.append(candidate)

        groups = self._tie_groups(scored)
        ordered: list[tuple[_ScoredCandidate, int]] = []
        for group in groups:
            group.sort(key=lambda item: self._tie_key(item, criteria.ranking_method))
            ordered.extend((item, len(group)) for item in group)

        total = len(ordered)
        ranked = [
            RankedCandidate(
                candidate_id=item.candidate_id,
                rank=position,
                final_score=round(item.final_score, 4),
                score_breakdown=item.breakdown,
                justification=self._justify(item, position, total, group_size, criteria),
            )
            for position, (item, group_size) in enumerate(ordered, start=1)
        ]
        confidence = math.fsum(item.evaluation.confidence_level for item, _ in ordered) / total

        result = RankingResult(
            job_id=job_id,
            ranked_candidates=ranked,
            methodology=self._methodology(criteria),
            criteria_weights=dict(criteria.criteria_weights),
            confidence_level=round(confidence, 4),
        )
        self._logger.info(
            "ranking.completed",
            job_id=job_id,
            method=criteria.ranking_method.value,
            candidates=total,
            top_candidate=ranked[0].candidate_id,
        )
        return result

    @staticmethod
    def _latest_per_candidate(
        job_id: str,
        evaluations: Iterable[Evaluation],
        org_id: str | None,
    ) -> list[Evaluation]:
        latest: dict[str, Evaluation] = {}
        for evaluation in evaluations:
            if evaluation.job_id != job_id:
                raise RankingInputError(
                    f"Evaluation {evaluation.id!r} belongs to job {evaluation.job_id!r}, not {job_id!r}."
                )
            if org_id is not None and evaluation.org_id != org_id:
                raise RankingInputError(
                    f"Evaluation {evaluation.id!r} is outside organisation {org_id!r}."
                )
            current = latest.get(evaluation.candidate_id)
            if current is None or (evaluation.created_at, evaluation.id) > (
                current.created_at,
                current.id,
            ):
                latest[evaluation.candidate_id] = evaluation
        return [latest[candidate_id] for candidate_id in sorted(latest)]

    def _score(
        self,
        evaluation: Evaluation,
        weights: list[tuple[str, float]],
        method: RankingMethod,
    ) -> _ScoredCandidate:
        percentages: dict[str, float] = {}
        missing: list[str] = []
        for criterion_id, _ in weights:
            value = evaluation.percentage(criterion_id)
            if value is None:
                missing.append(criterion_id)
            else:
                percentages[criterion_id] = value

        weighted = math.fsum(
            percentages.get(criterion_id, 0.0) * weight for criterion_id, weight in weights
        ) / WEIGHT_TOTAL

        if method is RankingMethod.TOP_SCORE_PRIORITY:
            considered = [
                percentages[criterion_id]
                for criterion_id, weight in weights
                if weight > 0 and criterion_id in percentages
            ]
            final = max(considered) if considered else 0.0
        elif method is RankingMethod.BALANCED_SCORECARD:
            variance = math.fsum(
                weight * (percentages.get(criterion_id, 0.0) - weighted) ** 2
                for criterion_id, weight in weights
            ) / WEIGHT_TOTAL
            final = max(weighted - self._config.balanced_penalty * math.sqrt(variance), 0.0)
        else:
            final = weighted

        return _ScoredCandidate(
            evaluation=evaluation,
            final_score=final,
            weighted_average=weighted,
            breakdown={key: round(value, 2) for key, value in percentages.items()},
            missing=missing,
        )

    @staticmethod
    def _tie_groups(scored: list[_ScoredCandidate]) -> list[list[_ScoredCandidate]]:
        """Split candidates into groups within TIE_EPSILON of each group's leader."""

        ordered = sorted(scored, key=lambda item: (-item.final_score, item.candidate_id))
        groups: list[list[_ScoredCandidate]] = []
        leader_score: float | None = None
        for item in ordered:
            if leader_score is None or leader_score - item.final_score >= TIE_EPSILON:
                groups.append([item])
                leader_score = item.final_score
            else:
                groups[-1].append(item)
        return groups

    @staticmethod
    def _tie_key(item: _ScoredCandidate, method: RankingMethod) -> tuple[Any, ...]:
        key: list[Any] = []
        if method is RankingMethod.TOP_SCORE_PRIORITY:
            key.append(-round(item.weighted_average, 6))
        for value in item.factor_values:
            # Higher is better; candidates without a value go last.
            key.append((1, 0.0) if value is None else (0, -value))
        key.append(item.candidate_id)
        return tuple(key)

    @staticmethod
    def _justify(
        item: _ScoredCandidate,
        position: int,
        total: int,
        group_size: int,
        criteria: RankingCriteria,
    ) -> str:
        parts = [
            f"Rank {position} of {total} by {criteria.ranking_method.value}: "
            f"final score {item.final_score:.2f}."
        ]
        if item.breakdown:
            best_id = max(sorted(item.breakdown), key=lambda key: item.breakdown[key])
            parts.append(f"Strongest criterion: {best_id} ({item.breakdown[best_id]:.1f}%).")
        if item.missing:
            parts.append(f"No score for: {', '.join(item.missing)} (counted as 0).")
        if group_size > 1:
            order = ", ".join(criteria.tie_breaking_factors + ["candidate id"])
            parts.append(
                f"Tied with {group_size - 1} other candidate(s) within {TIE_EPSILON} points; "
                f"order decided by {order}."
            )
        return " ".join(parts)

    def _methodology(self, criteria: RankingCriteria) -> str:
        method = criteria.ranking_method
        weights = ", ".join(
            f"{criterion_id} {weight:g}%" for criterion_id, weight in criteria.criteria_weights.items()
        )
        lines = [f"Method: {method.value} ({_METHOD_DESCRIPTIONS[method]})."]
        if method is RankingMethod.BALANCED_SCORECARD:
            lines.append(f"Variance penalty factor: {self._config.balanced_penalty:g}.")
        lines.append(f"Weights: {weights}.")
        tie_order = ", ".join(criteria.tie_breaking_factors + ["candidate id ascending"])
        lines.append(f"Scores within {TIE_EPSILON} points are ordered by: {tie_order}.")
        if criteria.include_diversity_factors:
            lines.append("Diversity factors: requested; recorded only, no adjustment applied.")
        else:
            lines.append("Diversity factors: not requested.")
        if criteria.notes:
            lines.append(f"Notes: {criteria.notes}")
        return " ".join(lines)


__all__ = ["RankingConfig", "RankingEngine", "TIE_EPSILON"]
