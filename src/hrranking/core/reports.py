"""Comparison and summary views built from stored evaluations."""

from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, Sequence

from ..errors import InsufficientDataError
from ..schemas import (
    CandidateOverview,
    CandidateRecommendation,
    ComparisonRow,
    ComparisonView,
    Evaluation,
    JobEvaluationSummary,
    QualificationTier,
)

SUMMARY_TOP_N = 5
_PERCENT_SUFFIX_RE = re.compile(r"\s*\(\d+(?:\.\d+)?%\)$")


def latest_by_candidate(job_id: str, evaluations: Iterable[Evaluation]) -> dict[str, Evaluation]:
    """Keep the most recent evaluation of each candidate for ``job_id``."""

    latest: dict[str, Evaluation] = {}
    for evaluation in evaluations:
        if evaluation.job_id != job_id:
            continue
        current = latest.get(evaluation.candidate_id)
        if current is None or (evaluation.created_at, evaluation.id) > (
            current.created_at,
            current.id,
        ):
            latest[evaluation.candidate_id] = evaluation
    return latest


def build_comparison(
    job_id: str,
    evaluations: Iterable[Evaluation],
    candidate_ids: Sequence[str],
) -> ComparisonView:
    requested = list(dict.fromkeys(candidate_ids))
    if len(requested) < 2:
        raise InsufficientDataError("Select at least 2 candidates for comparison.")

    latest = latest_by_candidate(job_id, evaluations)
    present = [candidate_id for candidate_id in requested if candidate_id in latest]
    missing = [candidate_id for candidate_id in requested if candidate_id not in latest]

    criteria = sorted({key for candidate_id in present for key in latest[candidate_id].scores})
    rows = [
        ComparisonRow(
            criterion_id=criterion_id,
            values={
                candidate_id: _rounded(latest[candidate_id].percentage(criterion_id))
                for candidate_id in present
            },
        )
        for criterion_id in criteria
    ]

    overall: dict[str, CandidateOverview] = {}
    strengths: dict[str, list[str]] = {}
    gaps: dict[str, list[str]] = {}
    recommendations: list[CandidateRecommendation] = []
    for candidate_id in present:
        evaluation = latest[candidate_id]
        overall[candidate_id] = CandidateOverview(
            overall_score=evaluation.overall_score,
            qualification_tier=evaluation.qualification_tier,
            confidence_level=evaluation.confidence_level,
        )
        strengths[candidate_id] = list(evaluation.strengths)
        gaps[candidate_id] = list(evaluation.gaps)
        recommendations.append(
            CandidateRecommendation(
                candidate_id=candidate_id,
                recommendation=evaluation.recommendations,
                reasoning=(
                    f"Overall score: {evaluation.overall_score:.2f}%, "
                    f"Tier: {evaluation.qualification_tier.value}"
                ),
            )
        )

    return ComparisonView(
        job_id=job_id,
        candidate_ids=present,
        criteria=criteria,
        rows=rows,
        overall=overall,
        strengths_comparison=strengths,
        gaps_comparison=gaps,
        recommendations=recommendations,
        missing_candidates=missing,
    )


def summarize_job(job_id: str, evaluations: Iterable[Evaluation]) -> JobEvaluationSummary:
    latest = list(latest_by_candidate(job_id, evaluations).values())
    distribution = {tier: 0 for tier in QualificationTier}
    strengths: Counter[str] = Counter()
    gaps: Counter[str] = Counter()
    for evaluation in latest:
        distribution[evaluation.qualification_tier] += 1
        strengths.update({_label(text) for text in evaluation.strengths})
        gaps.update({_label(text) for text in evaluation.gaps})

    average = sum(evaluation.overall_score for evaluation in latest) / len(latest) if latest else 0.0
    return JobEvaluationSummary(
        job_id=job_id,
        total_evaluations=len(latest),
        average_score=round(average, 2),
        qualification_distribution=distribution,
        top_strengths=_most_common(strengths),
        common_gaps=_most_common(gaps),
    )


def _label(text: str) -> str:
    return _PERCENT_SUFFIX_RE.sub("", text).strip()


def _most_common(counter: Counter[str]) -> list[str]:
    ordered = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    return [label for label, _ in ordered[:SUMMARY_TOP_N]]


def _rounded(value: float | None) -> float | None:
    return round(value, 2) if value is not None else None


__all__ = ["build_comparison", "latest_by_candidate", "summarize_job"]
