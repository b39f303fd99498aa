from __future__ import annotations

import json
from pathlib import Path

from hrranking.container import create_container
from hrranking.pipeline import AuditLogger


def write_inputs(tmp_path: Path, candidate_id: str) -> tuple[Path, Path]:
    candidates = tmp_path / f"{candidate_id}.jsonl"
    candidates.write_text(
        json.dumps({"candidate_id": candidate_id, "skills": ["Terraform"]}),
        encoding="utf-8",
    )
    job = tmp_path / "job.json"
    job.write_text(
        json.dumps(
            {
                "job_id": "JD-001",
                "criteria": [{"id": "infra", "name": "Infrastructure", "keywords": ["Terraform"]}],
            }
        ),
        encoding="utf-8",
    )
    return candidates, job


def test_audit_logs_only_record_their_own_run(tmp_path: Path) -> None:
    container = create_container()
    orchestrator = container.orchestrator()
    first_audit = AuditLogger(tmp_path / "first.jsonl")
    second_audit = AuditLogger(tmp_path / "second.jsonl")

    for candidate_id, audit in (("C-001", first_audit), ("C-002", second_audit)):
        candidates, job = write_inputs(tmp_path, candidate_id)
        container.pipeline().evaluate(
            candidates_path=candidates,
            job_path=job,
            output_path=tmp_path / f"{candidate_id}-out.json",
            org_id="org-1",
            timeout=10,
            audit_logger=audit,
        )

    first = [json.loads(line) for line in (tmp_path / "first.jsonl").read_text(encoding="utf-8").splitlines()]
    second = [json.loads(line) for line in (tmp_path / "second.jsonl").read_text(encoding="utf-8").splitlines()]
    assert [record["candidate_id"] for record in first] == ["C-001"]
    assert [record["candidate_id"] for record in second] == ["C-002"]
    assert orchestrator._listeners == []


def test_finished_sessions_are_released_after_evaluate(tmp_path: Path) -> None:
    container = create_container()
    candidates, job = write_inputs(tmp_path, "C-001")

    payload = container.pipeline().evaluate(
        candidates_path=candidates,
        job_path=job,
        output_path=tmp_path / "out.json",
        org_id="org-1",
        timeout=10,
    )

    assert payload["metadata"]["completed_count"] == 1
    assert container.orchestrator().sessions() == []
