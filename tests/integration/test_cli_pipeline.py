from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from hrranking.cli import app


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def write_json(path: Path, payload: object) -> None:
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")


@pytest.fixture
def workspace(tmp_path: Path) -> dict[str, Path]:
    candidates = [
        {
            "candidate_id": "C-001",
            "name": "Aiko Tanaka",
            "skills": ["Terraform", "AWS", "Prometheus", "Grafana"],
            "years_experience": 6,
        },
        {
            "candidate_id": "C-002",
            "name": "Ben Ortiz",
            "skills": ["Terraform", "Prometheus"],
            "years_experience": 4,
        },
        {"candidate_id": "C-003", "name": "Chen Wei", "skills": ["Excel"]},
    ]
    job = {
        "job_id": "JD-001",
        "title": "Site Reliability Engineer",
        "criteria": [
            {
                "id": "infra",
                "name": "Infrastructure",
                "keywords": ["Terraform", "AWS"],
                "weight": 60,
            },
            {
                "id": "observability",
                "name": "Observability",
                "keywords": ["Prometheus", "Grafana"],
                "weight": 40,
            },
        ],
    }
    ranking = {
        "job_id": "JD-001",
        "criteria_weights": {"infra": 60, "observability": 40},
        "ranking_method": "weighted_average",
        "tie_breaking_factors": ["years_experience"],
    }

    paths = {
        "candidates": tmp_path / "candidates.jsonl",
        "job": tmp_path / "job.json",
        "criteria": tmp_path / "ranking.yaml",
        "evaluations": tmp_path / "out" / "evaluations.json",
        "audit": tmp_path / "out" / "audit.jsonl",
    }
    paths["candidates"].write_text(
        "\n".join(json.dumps(item, ensure_ascii=False) for item in candidates),
        encoding="utf-8",
    )
    write_json(paths["job"], job)
    paths["criteria"].write_text(yaml.safe_dump(ranking), encoding="utf-8")
    return paths


def run_evaluate(runner: CliRunner, paths: dict[str, Path]):
    return runner.invoke(
        app,
        [
            "evaluate",
            "--candidates",
            str(paths["candidates"]),
            "--job",
            str(paths["job"]),
            "--output",
            str(paths["evaluations"]),
            "--org-id",
            "org-1",
            "--concurrency",
            "2",
            "--audit-log",
            str(paths["audit"]),
        ],
    )


def test_cli_evaluates_candidates_and_writes_audit_log(runner: CliRunner, workspace: dict[str, Path]) -> None:
    result = run_evaluate(runner, workspace)

    assert result.exit_code == 0, result.output
    rendered = json.loads(workspace["evaluations"].read_text(encoding="utf-8"))
    assert rendered["metadata"]["completed_count"] == 3
    assert rendered["metadata"]["failed_count"] == 0
    assert rendered["metadata"]["org_id"] == "org-1"
    assert rendered["sessions"][0]["status"] == "completed"

    by_candidate = {item["candidate_id"]: item for item in rendered["evaluations"]}
    assert by_candidate["C-001"]["overall_score"] == pytest.approx(100.0)
    assert by_candidate["C-001"]["qualification_tier"] == "highly_qualified"
    assert by_candidate["C-002"]["overall_score"] == pytest.approx(50.0)
    assert by_candidate["C-003"]["qualification_tier"] == "not_qualified"
    assert by_candidate["C-001"]["ai_model"] == "keyword-fuzzy-lite"

    audit_lines = workspace["audit"].read_text(encoding="utf-8").strip().splitlines()
    assert len(audit_lines) == 3
    assert {json.loads(line)["status"] for line in audit_lines} == {"completed"}


def test_cli_ranks_compares_and_summarises(runner: CliRunner, workspace: dict[str, Path]) -> None:
    assert run_evaluate(runner, workspace).exit_code == 0
    ranking_path = workspace["evaluations"].parent / "ranking.json"
    comparison_path = workspace["evaluations"].parent / "comparison.json"
    summary_path = workspace["evaluations"].parent / "summary.json"

    result = runner.invoke(
        app,
        [
            "rank",
            "--evaluations",
            str(workspace["evaluations"]),
            "--criteria",
            str(workspace["criteria"]),
            "--candidates",
            str(workspace["candidates"]),
            "--org-id",
            "org-1",
            "--output",
            str(ranking_path),
        ],
    )
    assert result.exit_code == 0, result.output
    ranking = json.loads(ranking_path.read_text(encoding="utf-8"))["result"]
    assert [item["candidate_id"] for item in ranking["ranked_candidates"]] == ["C-001", "C-002", "C-003"]
    assert [item["rank"] for item in ranking["ranked_candidates"]] == [1, 2, 3]

    result = runner.invoke(
        app,
        [
            "compare",
            "--evaluations",
            str(workspace["evaluations"]),
            "--job-id",
            "JD-001",
            "--candidate-id",
            "C-001",
            "--candidate-id",
            "C-002",
            "--output",
            str(comparison_path),
        ],
    )
    assert result.exit_code == 0, result.output
    comparison = json.loads(comparison_path.read_text(encoding="utf-8"))["comparison"]
    assert comparison["candidate_ids"] == ["C-001", "C-002"]
    assert comparison["criteria"] == ["infra", "observability"]

    result = runner.invoke(
        app,
        [
            "summary",
            "--evaluations",
            str(workspace["evaluations"]),
            "--job-id",
            "JD-001",
            "--output",
            str(summary_path),
        ],
    )
    assert result.exit_code == 0, result.output
    summary = json.loads(summary_path.read_text(encoding="utf-8"))["summary"]
    assert summary["total_evaluations"] == 3
    assert summary["qualification_distribution"]["highly_qualified"] == 1


def test_cli_reports_invalid_ranking_weights(
    runner: CliRunner, workspace: dict[str, Path], tmp_path: Path
) -> None:
    assert run_evaluate(runner, workspace).exit_code == 0
    bad_criteria = tmp_path / "bad.yaml"
    bad_criteria.write_text(
        yaml.safe_dump({"job_id": "JD-001", "criteria_weights": {"infra": 60, "observability": 39}}),
        encoding="utf-8",
    )

    result = runner.invoke(
        app,
        [
            "rank",
            "--evaluations",
            str(workspace["evaluations"]),
            "--criteria",
            str(bad_criteria),
            "--output",
            str(tmp_path / "ranking.json"),
        ],
    )

    assert result.exit_code == 1
    assert "criteria_weights must sum to 100" in result.output
    assert not (tmp_path / "ranking.json").exists()


def test_cli_rejects_invalid_config(runner: CliRunner, workspace: dict[str, Path], tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump({"evaluators": {"bm25": {"window": 5}}}), encoding="utf-8")

    result = runner.invoke(
        app,
        [
            "evaluate",
            "--candidates",
            str(workspace["candidates"]),
            "--job",
            str(workspace["job"]),
            "--output",
            str(workspace["evaluations"]),
            "--config",
            str(config_path),
        ],
    )

    assert result.exit_code != 0
    assert not workspace["evaluations"].exists()
