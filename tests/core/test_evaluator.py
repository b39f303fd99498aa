from __future__ import annotations

import itertools
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from hrranking.core import Evaluator, EvaluatorConfig
from hrranking.errors import (
    CandidateNotFoundError,
    EvaluationFailedError,
    InvalidCriterionError,
    NotFoundError,
)
from hrranking.schemas import CandidateProfile, CriterionScore, JobCriterion, QualificationTier
from hrranking.stores import InMemoryCandidateStore, InMemoryEvaluationStore

ORG = "org-1"
FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class StubScorer:
    """Returns fixed raw scores; callables are invoked to allow failures and delays."""

    model_name = "stub-scorer"

    def __init__(self, results: dict[str, Any]):
        self._results = results
        self.calls: list[tuple[str, str, str | None]] = []
        self._lock = threading.Lock()

    def score(self, candidate: CandidateProfile, criterion: JobCriterion, instructions: str | None):
        with self._lock:
            self.calls.append((candidate.candidate_id, criterion.id, instructions))
        result = self._results[criterion.id]
        if callable(result):
            result = result()
        if isinstance(result, (int, float)):
            return CriterionScore(
                criterion_id=criterion.id,
                raw_score=result,
                max_score=criterion.max_score,
                confidence=0.9,
                justification="stub",
            )
        return result


def raise_error(message: str = "boom") -> Callable[[], Any]:
    def _raise() -> Any:
        raise RuntimeError(message)

    return _raise


def build_evaluator(
    scorer: StubScorer,
    *,
    store: InMemoryEvaluationStore | None = None,
    config: EvaluatorConfig | None = None,
) -> Evaluator:
    candidates = InMemoryCandidateStore(
        [CandidateProfile(candidate_id="C-1", org_id=ORG, skills=["Python"])]
    )
    counter = itertools.count(1)
    return Evaluator(
        scorer=scorer,
        candidates=candidates,
        store=store,
        config=config,
        now_provider=lambda: FIXED_NOW,
        id_factory=lambda: f"E-{next(counter)}",
    )


WEIGHTED_CRITERIA = [
    JobCriterion(id="tech", name="Technical skills", weight=50),
    JobCriterion(id="comm", name="Communication", weight=20),
    JobCriterion(id="culture", name="Culture fit", weight=30),
]


def test_evaluate_builds_weighted_evaluation_and_saves_it():
    store = InMemoryEvaluationStore()
    scorer = StubScorer({"tech": 80, "comm": 60, "culture": 90})
    evaluator = build_evaluator(scorer, store=store)

    evaluation = evaluator.evaluate("C-1", "JD-1", WEIGHTED_CRITERIA, "focus on backend", org_id=ORG)

    assert evaluation.id == "E-1"
    assert evaluation.org_id == ORG
    assert evaluation.overall_score == pytest.approx(79.0)
    assert evaluation.qualification_tier is QualificationTier.QUALIFIED
    assert evaluation.ai_model == "stub-scorer"
    assert evaluation.created_at == FIXED_NOW
    assert set(evaluation.scores) == {"tech", "comm", "culture"}
    assert evaluation.strengths == ["Technical skills (80%)", "Culture fit (90%)"]
    assert evaluation.failed_criteria == {}
    assert evaluation.evaluation_metadata["weights"] == {"tech": 50.0, "comm": 20.0, "culture": 30.0}
    assert evaluation.evaluation_metadata["custom_instructions"] == "focus on backend"
    assert store.get(ORG, "E-1") == evaluation
    assert {call[2] for call in scorer.calls} == {"focus on backend"}


def test_failed_criterion_is_recorded_without_failing_the_evaluation():
    scorer = StubScorer({"tech": 90, "comm": raise_error("upstream 503"), "culture": 70})
    evaluator = build_evaluator(scorer)
    criteria = [JobCriterion(id=key) for key in ("tech", "comm", "culture")]

    evaluation = evaluator.evaluate("C-1", "JD-1", criteria, org_id=ORG)

    assert evaluation.failed_criteria == {"comm": "RuntimeError: upstream 503"}
    assert evaluation.missing_criteria == ["comm"]
    assert evaluation.overall_score == pytest.approx(80.0)
    assert "Verify comm directly: automated scoring was unavailable" in evaluation.interview_focus_areas


def test_weighted_failed_criterion_contributes_zero():
    scorer = StubScorer({"tech": 100, "comm": raise_error(), "culture": 100})
    evaluator = build_evaluator(scorer)

    evaluation = evaluator.evaluate("C-1", "JD-1", WEIGHTED_CRITERIA, org_id=ORG)

    assert evaluation.overall_score == pytest.approx(80.0)
    assert evaluation.missing_criteria == ["comm"]


def test_scorer_timeout_is_a_criterion_failure_not_a_hang():
    release = threading.Event()

    def hang() -> Any:
        release.wait(5)
        return 10

    scorer = StubScorer({"fast": 75, "slow": hang})
    evaluator = build_evaluator(scorer, config=EvaluatorConfig(scorer_timeout_seconds=0.2))
    criteria = [JobCriterion(id="fast"), JobCriterion(id="slow")]

    try:
        evaluation = evaluator.evaluate("C-1", "JD-1", criteria, org_id=ORG)
    finally:
        release.set()

    assert evaluation.failed_criteria == {"slow": "scorer timed out after 0.2s"}
    assert evaluation.overall_score == pytest.approx(75.0)


def test_timeout_is_measured_from_the_start_of_each_call():
    def sleep_then(seconds: float, value: int) -> Callable[[], Any]:
        def _call() -> Any:
            time.sleep(seconds)
            return value

        return _call

    scorer = StubScorer({"quick": sleep_then(0.25, 60), "late": sleep_then(0.6, 90)})
    evaluator = build_evaluator(scorer, config=EvaluatorConfig(scorer_timeout_seconds=0.4))
    criteria = [JobCriterion(id="quick"), JobCriterion(id="late")]

    evaluation = evaluator.evaluate("C-1", "JD-1", criteria, org_id=ORG)

    assert list(evaluation.scores) == ["quick"]
    assert evaluation.failed_criteria == {"late": "scorer timed out after 0.4s"}


def test_hung_calls_do_not_stack_their_timeouts():
    release = threading.Event()

    def hang() -> Any:
        release.wait(5)
        return 10

    keys = [f"c{index}" for index in range(6)]
    scorer = StubScorer({key: hang for key in keys} | {"ok": 50})
    config = EvaluatorConfig(criterion_fan_out=5, scorer_timeout_seconds=0.2)
    evaluator = build_evaluator(scorer, config=config)
    criteria = [JobCriterion(id="ok")] + [JobCriterion(id=key) for key in keys]

    begin = time.monotonic()
    try:
        evaluation = evaluator.evaluate("C-1", "JD-1", criteria, org_id=ORG)
    finally:
        release.set()
    elapsed = time.monotonic() - begin

    assert list(evaluation.scores) == ["ok"]
    assert list(evaluation.failed_criteria) == keys
    assert elapsed < 1.0


def test_all_criteria_failing_raises():
    scorer = StubScorer({"a": raise_error("x"), "b": raise_error("y")})
    evaluator = build_evaluator(scorer)

    with pytest.raises(EvaluationFailedError) as excinfo:
        evaluator.evaluate("C-1", "JD-1", [JobCriterion(id="a"), JobCriterion(id="b")], org_id=ORG)

    assert excinfo.value.failures == {"a": "RuntimeError: x", "b": "RuntimeError: y"}
    assert "a: RuntimeError: x" in str(excinfo.value)


def test_scorer_mapping_results_are_validated():
    scorer = StubScorer(
        {
            "a": {"raw_score": 40, "confidence": 0.7},
            "b": {"raw_score": 400, "confidence": 0.7},
            "c": CriterionScore(criterion_id="other", raw_score=1, max_score=100, confidence=0.5),
        }
    )
    evaluator = build_evaluator(scorer)
    criteria = [JobCriterion(id="a"), JobCriterion(id="b"), JobCriterion(id="c")]

    evaluation = evaluator.evaluate("C-1", "JD-1", criteria, org_id=ORG)

    assert evaluation.scores["a"].raw_score == 40
    assert evaluation.failed_criteria["b"].startswith("invalid score payload")
    assert evaluation.failed_criteria["c"] == "scorer returned criterion 'other'"


def test_progress_callback_reports_every_criterion():
    scorer = StubScorer({"a": 10, "b": 20, "c": 30})
    evaluator = build_evaluator(scorer)
    seen: list[tuple[int, int]] = []

    evaluator.evaluate(
        "C-1",
        "JD-1",
        [{"id": "a"}, {"id": "b"}, {"id": "c"}],
        org_id=ORG,
        on_progress=lambda done, total: seen.append((done, total)),
    )

    assert seen == [(1, 3), (2, 3), (3, 3)]


@pytest.mark.parametrize(
    "criteria",
    [
        [],
        [JobCriterion(id="a"), JobCriterion(id="a")],
        [JobCriterion(id="a", max_score=0)],
        [JobCriterion(id="a", weight=50), JobCriterion(id="b")],
    ],
)
def test_invalid_criteria_are_rejected_before_scoring(criteria):
    scorer = StubScorer({"a": 10, "b": 10})
    evaluator = build_evaluator(scorer)

    with pytest.raises(InvalidCriterionError):
        evaluator.evaluate("C-1", "JD-1", criteria, org_id=ORG)
    assert scorer.calls == []


def test_candidate_lookup_is_scoped_to_organisation():
    evaluator = build_evaluator(StubScorer({"a": 10}))

    with pytest.raises(CandidateNotFoundError):
        evaluator.evaluate("C-1", "JD-1", [JobCriterion(id="a")], org_id="org-2")
    with pytest.raises(CandidateNotFoundError):
        evaluator.evaluate("C-404", "JD-1", [JobCriterion(id="a")], org_id=ORG)


def test_reevaluate_creates_a_new_record_linked_to_the_previous_one():
    store = InMemoryEvaluationStore()
    scores = {"tech": 50, "comm": 50, "culture": 50}
    scorer = StubScorer(scores)
    evaluator = build_evaluator(scorer, store=store)
    first = evaluator.evaluate("C-1", "JD-1", WEIGHTED_CRITERIA, "original", org_id=ORG)

    scores["tech"] = 100
    second = evaluator.reevaluate(first, org_id=ORG)

    assert second.id != first.id
    assert second.evaluation_metadata["previous_evaluation_id"] == first.id
    assert second.evaluation_metadata["custom_instructions"] == "original"
    assert second.overall_score == pytest.approx(75.0)
    assert first.overall_score == pytest.approx(50.0)
    assert len(store) == 2
    assert store.list_for_job(ORG, "JD-1") == [first, second]


def test_reevaluate_rejects_other_organisation():
    evaluator = build_evaluator(StubScorer({"a": 10}))
    first = evaluator.evaluate("C-1", "JD-1", [JobCriterion(id="a")], org_id=ORG)

    with pytest.raises(NotFoundError):
        evaluator.reevaluate(first, org_id="org-2")
