from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from hrranking.pipeline import (
    CandidateLoadError,
    CandidateLoader,
    EvaluationLoader,
    JobLoader,
    RankingCriteriaLoader,
)
from hrranking.schemas import Evaluation, QualificationTier


def test_candidate_loader_raises_on_invalid_json(tmp_path: Path):
    loader = CandidateLoader()
    path = tmp_path / "candidates.jsonl"
    path.write_text('{"candidate_id": "C-001"}\n{invalid}', encoding="utf-8")

    with pytest.raises(CandidateLoadError) as exc:
        loader.load(path)
    assert "invalid JSON" in str(exc.value)
    assert [candidate.candidate_id for candidate in exc.value.partial] == ["C-001"]


def test_candidate_loader_skips_invalid_and_reports(tmp_path: Path):
    loader = CandidateLoader()
    path = tmp_path / "candidates.jsonl"
    records = [
        {"candidate_id": "C-001", "skills": ["Python"]},
        {"name": "missing id"},
        {"candidate_id": "C-001"},
    ]
    path.write_text("\n".join(json.dumps(record) for record in records), encoding="utf-8")

    with pytest.raises(CandidateLoadError) as exc:
        loader.load(path)
    error = exc.value
    assert error.errors[0].startswith("line 2:")
    assert "duplicate candidate_id" in error.errors[1]
    assert len(error.partial) == 1


def test_candidate_loader_applies_default_organisation(tmp_path: Path):
    path = tmp_path / "candidates.jsonl"
    path.write_text(
        json.dumps({"candidate_id": "C-001"}) + "\n" + json.dumps({"candidate_id": "C-002", "org_id": "org-2"}),
        encoding="utf-8",
    )

    candidates = CandidateLoader().load(path, org_id="org-1")

    assert [candidate.org_id for candidate in candidates] == ["org-1", "org-2"]


def test_job_loader_invalid_json(tmp_path: Path):
    job_loader = JobLoader()
    path = tmp_path / "job.json"
    path.write_text("{invalid", encoding="utf-8")

    with pytest.raises(ValueError):
        job_loader.load(path)


def test_evaluation_loader_reads_json_and_jsonl(tmp_path: Path):
    evaluation = Evaluation(
        id="E-1",
        candidate_id="C-1",
        job_id="JD-1",
        overall_score=55.0,
        confidence_level=0.7,
        qualification_tier=QualificationTier.PARTIALLY_QUALIFIED,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    wrapped = tmp_path / "evaluations.json"
    wrapped.write_text(json.dumps({"evaluations": [evaluation.model_dump(mode="json")]}), encoding="utf-8")
    lines = tmp_path / "evaluations.jsonl"
    lines.write_text(evaluation.model_dump_json() + "\n\n", encoding="utf-8")

    loader = EvaluationLoader()

    assert loader.load(wrapped) == [evaluation]
    assert loader.load(lines) == [evaluation]


def test_ranking_criteria_loader_fills_job_id(tmp_path: Path):
    path = tmp_path / "ranking.yaml"
    path.write_text("criteria_weights:\n  tech: 70\n  comm: 30\n", encoding="utf-8")

    criteria = RankingCriteriaLoader().load(path, job_id="JD-7")

    assert criteria.job_id == "JD-7"
    assert criteria.criteria_weights == {"tech": 70.0, "comm": 30.0}
