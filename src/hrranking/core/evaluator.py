"""Single candidate x job evaluation."""

from __future__ import annotations

import math
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Sequence

import pendulum
import structlog
from pydantic import ValidationError

from ..errors import EvaluationFailedError, InvalidCriterionError, NotFoundError
from ..schemas import CandidateProfile, CriterionScore, Evaluation, JobCriterion
from ..stores import CandidateStore, EvaluationStore
from .aggregation import ScoreAggregator
from .insights import InsightThresholds, derive_insights

if TYPE_CHECKING:
    from . import Scorer

ProgressCallback = Callable[[int, int], None]


@dataclass
class EvaluatorConfig:
    """Fan-out and timeout limits for scorer calls."""

    criterion_fan_out: int = 5
    scorer_timeout_seconds: float = 30.0
    insights: InsightThresholds = field(default_factory=InsightThresholds)

    def __post_init__(self) -> None:
        if isinstance(self.insights, Mapping):
            self.insights = InsightThresholds(**self.insights)
        if self.criterion_fan_out < 1:
            raise ValueError("criterion_fan_out must be at least 1")
        if self.scorer_timeout_seconds <= 0:
            raise ValueError("scorer_timeout_seconds must be positive")


class Evaluator:
    """Score one candidate against a job's criteria and build an Evaluation."""

    def __init__(
        self,
        *,
        scorer: "Scorer",
        candidates: CandidateStore,
        aggregator: ScoreAggregator | None = None,
        store: EvaluationStore | None = None,
        config: EvaluatorConfig | None = None,
        now_provider: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._scorer = scorer
        self._candidates = candidates
        self._aggregator = aggregator or ScoreAggregator()
        self._store = store
        self._config = config or EvaluatorConfig()
        self._now_provider = now_provider or (lambda: pendulum.now("UTC"))
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._logger = structlog.get_logger(__name__)

    @property
    def model_name(self) -> str:
        return str(getattr(self._scorer, "model_name", None) or type(self._scorer).__name__)

    def evaluate(
        self,
        candidate_id: str,
        job_id: str,
        criteria: Sequence[JobCriterion | Mapping[str, Any]],
        custom_instructions: str | None = None,
        *,
        org_id: str | None,
        on_progress: ProgressCallback | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Evaluation:
        normalized = self._normalize_criteria(criteria)
        weights = self._resolve_weights(normalized)
        profile = self._candidates.get(org_id, candidate_id)
        log = self._logger.bind(candidate_id=candidate_id, job_id=job_id, org_id=org_id)

        scores, failures = self._score_criteria(
            profile, normalized, custom_instructions, on_progress, log
        )
        if not scores:
            log.warning("evaluation.failed", failures=failures)
            raise EvaluationFailedError(candidate_id, job_id, failures)

        ordered_scores = [scores[criterion.id] for criterion in normalized if criterion.id in scores]
        aggregate = self._aggregator.aggregate(ordered_scores, weights)
        insights = derive_insights(
            normalized,
            scores,
            failures,
            aggregate.qualification_tier,
            self._config.insights,
        )

        evaluation_metadata: dict[str, Any] = {
            "criteria": [criterion.model_dump(mode="json") for criterion in normalized],
            "weights": weights,
            "custom_instructions": custom_instructions,
        }
        if metadata:
            evaluation_metadata.update(metadata)

        evaluation = Evaluation(
            id=self._id_factory(),
            org_id=org_id,
            candidate_id=candidate_id,
            job_id=job_id,
            scores=scores,
            overall_score=aggregate.overall_score,
            confidence_level=aggregate.confidence_level,
            qualification_tier=aggregate.qualification_tier,
            strengths=insights.strengths,
            gaps=insights.gaps,
            interview_focus_areas=insights.interview_focus_areas,
            recommendations=insights.recommendations,
            ai_model=self.model_name,
            failed_criteria=failures,
            missing_criteria=sorted(set(aggregate.missing_criteria) | set(failures)),
            evaluation_metadata=evaluation_metadata,
            created_at=self._now_provider(),
        )

        if self._store is not None:
            self._store.save(evaluation)

        log.info(
            "evaluation.completed",
            evaluation_id=evaluation.id,
            overall_score=evaluation.overall_score,
            qualification_tier=evaluation.qualification_tier.value,
            failed_criteria=sorted(failures),
        )
        return evaluation

    def reevaluate(
        self,
        previous: Evaluation,
        criteria: Sequence[JobCriterion | Mapping[str, Any]] | None = None,
        custom_instructions: str | None = None,
        *,
        org_id: str | None,
        on_progress: ProgressCallback | None = None,
    ) -> Evaluation:
        """Run a fresh evaluation for the same candidate and job.

        The previous record is left untouched; the new one points back to it.
        Criteria default to the ones recorded on ``previous``.
        """

        if previous.org_id != org_id:
            raise NotFoundError(f"Unknown evaluation {previous.id!r} in organisation {org_id!r}")
        if criteria is None:
            criteria = previous.evaluation_metadata.get("criteria") or []
        if custom_instructions is None:
            custom_instructions = previous.evaluation_metadata.get("custom_instructions")
        return self.evaluate(
            previous.candidate_id,
            previous.job_id,
            criteria,
            custom_instructions,
            org_id=org_id,
            on_progress=on_progress,
            metadata={"previous_evaluation_id": previous.id},
        )

    def _score_criteria(
        self,
        profile: CandidateProfile,
        criteria: Sequence[JobCriterion],
        instructions: str | None,
        on_progress: ProgressCallback | None,
        log: Any,
    ) -> tuple[dict[str, CriterionScore], dict[str, str]]:
        scores: dict[str, CriterionScore] = {}
        failures: dict[str, str] = {}
        timeout = self._config.scorer_timeout_seconds
        total = len(criteria)
        workers = min(self._config.criterion_fan_out, total)
        started: dict[str, float] = {}
        # Calls still queued when every wave of workers has had its turn are timed out.
        budget_deadline = time.monotonic() + timeout * math.ceil(total / workers)

        def timed_call(criterion: JobCriterion) -> tuple[Any, float]:
            started[criterion.id] = begin = time.monotonic()
            result = self._scorer.score(profile, criterion, instructions)
            return result, time.monotonic() - begin

        def finish(criterion: JobCriterion, reason: str | None, score: CriterionScore | None) -> None:
            if score is not None:
                scores[criterion.id] = score
            else:
                failures[criterion.id] = reason or "invalid score"
                log.warning(
                    "evaluation.criterion_failed",
                    criterion_id=criterion.id,
                    reason=failures[criterion.id],
                )
            if on_progress is not None:
                on_progress(len(scores) + len(failures), total)

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="criterion-scorer")
        try:
            pending: dict[Future, JobCriterion] = {
                executor.submit(timed_call, criterion): criterion for criterion in criteria
            }
            timed_out = f"scorer timed out after {timeout:g}s"
            while pending:
                deadlines = [budget_deadline] + [
                    started[criterion.id] + timeout
                    for criterion in pending.values()
                    if criterion.id in started
                ]
                done, _ = wait(
                    pending,
                    timeout=max(0.0, min(deadlines) - time.monotonic()),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    criterion = pending.pop(future)
                    try:
                        result, elapsed = future.result()
                    except Exception as exc:  # noqa: BLE001
                        finish(criterion, f"{type(exc).__name__}: {exc}", None)
                        continue
                    if elapsed > timeout:
                        finish(criterion, timed_out, None)
                        continue
                    score, problem = self._coerce_score(criterion, result)
                    finish(criterion, problem, score)

                now = time.monotonic()
                for future, criterion in list(pending.items()):
                    begin = started.get(criterion.id)
                    if now >= budget_deadline or (begin is not None and now >= begin + timeout):
                        future.cancel()
                        del pending[future]
                        finish(criterion, timed_out, None)
        finally:
            # Hung scorer threads are abandoned rather than joined.
            executor.shutdown(wait=False, cancel_futures=True)

        order = [criterion.id for criterion in criteria]
        return (
            {key: scores[key] for key in order if key in scores},
            {key: failures[key] for key in order if key in failures},
        )

    @staticmethod
    def _coerce_score(
        criterion: JobCriterion,
        result: Any,
    ) -> tuple[CriterionScore | None, str | None]:
        if isinstance(result, Mapping):
            try:
                result = CriterionScore.model_validate(
                    {"criterion_id": criterion.id, "max_score": criterion.max_score, **result}
                )
            except ValidationError as exc:
                return None, f"invalid score payload: {exc.error_count()} validation error(s)"
        if not isinstance(result, CriterionScore):
            return None, f"scorer returned {type(result).__name__}, expected CriterionScore"
        if result.criterion_id != criterion.id:
            return None, f"scorer returned criterion {result.criterion_id!r}"
        if result.max_score <= 0:
            return None, f"scorer returned non-positive max_score {result.max_score}"
        return result, None

    @staticmethod
    def _normalize_criteria(
        criteria: Iterable[JobCriterion | Mapping[str, Any]],
    ) -> list[JobCriterion]:
        normalized: list[JobCriterion] = []
        seen: set[str] = set()
        for item in criteria:
            criterion = item if isinstance(item, JobCriterion) else JobCriterion.model_validate(item)
            if criterion.max_score <= 0:
                raise InvalidCriterionError(
                    f"Criterion {criterion.id!r} has non-positive max_score {criterion.max_score}."
                )
            if criterion.id in seen:
                raise InvalidCriterionError(f"Duplicate criterion {criterion.id!r}.")
            seen.add(criterion.id)
            normalized.append(criterion)
        if not normalized:
            raise InvalidCriterionError("At least one criterion is required.")
        return normalized

    @staticmethod
    def _resolve_weights(criteria: Sequence[JobCriterion]) -> dict[str, float] | None:
        weighted = [criterion for criterion in criteria if criterion.weight is not None]
        if not weighted:
            return None
        if len(weighted) != len(criteria):
            missing = [criterion.id for criterion in criteria if criterion.weight is None]
            raise InvalidCriterionError(
                f"Either every criterion carries a weight or none does; missing: {missing}"
            )
        return {criterion.id: float(criterion.weight) for criterion in criteria}


__all__ = ["Evaluator", "EvaluatorConfig", "ProgressCallback"]
