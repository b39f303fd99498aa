"""File-based evaluation, ranking and reporting pipeline."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Iterable, Sequence

import pendulum
import structlog
import yaml
from pydantic import ValidationError

from . import __version__
from .core import BatchOrchestrator, RankingEngine, build_comparison, summarize_job
from .core.batch import MAX_BATCH_SIZE
from .schemas import (
    CandidateProfile,
    Evaluation,
    JobDescription,
    ProgressEvent,
    RankingCriteria,
)
from .stores import InMemoryCandidateStore, InMemoryEvaluationStore, InMemoryJobStore


class CandidateLoadError(ValueError):
    """Raised when candidate loading encounters invalid records."""

    def __init__(self, errors: list[str], partial: list[CandidateProfile]):
        super().__init__("Candidate loading failed")
        self.errors = errors
        self.partial = partial

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Candidate loading failed: {self.errors}"


class CandidateLoader:
    """Load candidate profiles from JSON lines."""

    def load(self, path: Path, *, org_id: str | None = None) -> list[CandidateProfile]:
        candidates: list[CandidateProfile] = []
        errors: list[str] = []
        seen: set[str] = set()
        for idx, record in _read_jsonl(path, errors):
            if org_id is not None and record.get("org_id") is None:
                record["org_id"] = org_id
            try:
                candidate = CandidateProfile.model_validate(record)
            except ValidationError as exc:
                errors.append(f"line {idx}: {exc.error_count()} validation error(s): {exc}")
                continue
            if candidate.candidate_id in seen:
                errors.append(f"line {idx}: duplicate candidate_id '{candidate.candidate_id}'")
                continue
            seen.add(candidate.candidate_id)
            candidates.append(candidate)
        if errors:
            raise CandidateLoadError(errors, candidates)
        return candidates


class JobLoader:
    """Load job description documents."""

    def load(self, path: Path, *, org_id: str | None = None) -> JobDescription:
        with path.open("r", encoding="utf-8") as handle:
            try:
                data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid job JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("Job JSON must be an object")
        if org_id is not None and data.get("org_id") is None:
            data["org_id"] = org_id
        return JobDescription.model_validate(data)


class EvaluationLoader:
    """Load evaluation records written by ``evaluate`` or as JSON lines."""

    def load(self, path: Path) -> list[Evaluation]:
        if path.suffix == ".jsonl":
            errors: list[str] = []
            records = [record for _, record in _read_jsonl(path, errors)]
            if errors:
                raise ValueError(f"Invalid evaluations file: {errors}")
        else:
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid evaluations JSON: {exc}") from exc
            records = data.get("evaluations", []) if isinstance(data, dict) else data
            if not isinstance(records, list):
                raise ValueError("Evaluations JSON must be a list or contain an 'evaluations' list")
        return [Evaluation.model_validate(record) for record in records]


class RankingCriteriaLoader:
    """Load ranking criteria from YAML or JSON."""

    def load(self, path: Path, *, job_id: str | None = None) -> RankingCriteria:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError("Ranking criteria must be a mapping")
        if job_id is not None:
            data.setdefault("job_id", job_id)
        return RankingCriteria.model_validate(data)


class OutputWriter:
    """Persist pipeline outputs."""

    def write(self, path: Path, payload: dict | list[dict]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )


class AuditLogger:
    """Append-only audit logger writing JSON lines."""

    def __init__(self, path: Path):
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, record: dict) -> None:
        line = json.dumps(record, ensure_ascii=False)
        with self._lock, self._path.open("a", encoding="utf-8") as handle:
            handle.write(line)
            handle.write("\n")

    def __call__(self, event: ProgressEvent) -> None:
        """Progress listener recording finished batch items."""

        item = event.item
        if not item.status.is_terminal:
            return
        self.append(
            {
                "session_id": event.session_id,
                "candidate_id": item.candidate_id,
                "status": item.status.value,
                "evaluation_id": item.evaluation_id,
                "error_message": item.error_message,
                "completed_at": item.completed_at.isoformat() if item.completed_at else None,
            }
        )


class EvaluationPipeline:
    """End-to-end orchestration behind the CLI commands."""

    def __init__(
        self,
        *,
        orchestrator: BatchOrchestrator,
        ranking: RankingEngine,
        candidates: InMemoryCandidateStore,
        jobs: InMemoryJobStore,
        evaluations: InMemoryEvaluationStore,
        candidate_loader: CandidateLoader | None = None,
        job_loader: JobLoader | None = None,
        evaluation_loader: EvaluationLoader | None = None,
        criteria_loader: RankingCriteriaLoader | None = None,
        writer: OutputWriter | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._ranking = ranking
        self._candidate_store = candidates
        self._job_store = jobs
        self._evaluation_store = evaluations
        self._candidates = candidate_loader or CandidateLoader()
        self._jobs = job_loader or JobLoader()
        self._evaluations = evaluation_loader or EvaluationLoader()
        self._criteria = criteria_loader or RankingCriteriaLoader()
        self._writer = writer or OutputWriter()
        self._logger = structlog.get_logger(__name__)

    def evaluate(
        self,
        *,
        candidates_path: Path,
        job_path: Path,
        output_path: Path,
        org_id: str | None = None,
        candidate_ids: Sequence[str] | None = None,
        concurrency: int | None = None,
        custom_instructions: str | None = None,
        timeout: float | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> dict[str, Any]:
        job = self._jobs.load(job_path, org_id=org_id)
        self._job_store.add(job)
        load_errors: list[str] = []
        try:
            candidates = self._candidates.load(candidates_path, org_id=org_id)
        except CandidateLoadError as exc:
            candidates = exc.partial
            load_errors.extend(exc.errors)
            self._logger.warning("candidates.partial_load", errors=exc.errors)
        for candidate in candidates:
            self._candidate_store.add(candidate)

        ids = list(candidate_ids) if candidate_ids else [c.candidate_id for c in candidates]
        if audit_logger is not None:
            self._orchestrator.add_listener(audit_logger)

        sessions = []
        evaluations: list[Evaluation] = []
        try:
            for chunk in _chunks(ids, MAX_BATCH_SIZE):
                session = self._orchestrator.run_to_completion(
                    job.job_id,
                    chunk,
                    concurrency,
                    custom_instructions,
                    org_id=job.org_id,
                    timeout=timeout,
                )
                sessions.append(session)
                evaluations.extend(self._orchestrator.evaluations(session.id))
                if session.is_finished:
                    self._orchestrator.discard(session.id)
        finally:
            if audit_logger is not None:
                self._orchestrator.remove_listener(audit_logger)

        metadata = {
            "job_id": job.job_id,
            "org_id": job.org_id,
            "candidate_count": len(ids),
            "completed_count": sum(session.completed_count for session in sessions),
            "failed_count": sum(session.failed_count for session in sessions),
            "errors": load_errors,
            "timestamp": pendulum.now().to_iso8601_string(),
            "app_version": __version__,
        }
        payload = {
            "metadata": metadata,
            "sessions": [session.model_dump(mode="json") for session in sessions],
            "evaluations": [evaluation.model_dump(mode="json") for evaluation in evaluations],
        }
        self._writer.write(output_path, payload)
        self._logger.info(
            "pipeline.evaluated",
            job_id=job.job_id,
            completed_count=metadata["completed_count"],
            failed_count=metadata["failed_count"],
        )
        return payload

    def rank(
        self,
        *,
        evaluations_path: Path,
        criteria_path: Path,
        output_path: Path,
        job_id: str | None = None,
        candidates_path: Path | None = None,
        org_id: str | None = None,
    ) -> dict[str, Any]:
        evaluations = self._evaluations.load(evaluations_path)
        criteria = self._criteria.load(criteria_path, job_id=job_id)
        profiles: dict[str, CandidateProfile] = {}
        if candidates_path is not None:
            try:
                loaded = self._candidates.load(candidates_path, org_id=org_id)
            except CandidateLoadError as exc:
                loaded = exc.partial
                self._logger.warning("candidates.partial_load", errors=exc.errors)
            profiles = {candidate.candidate_id: candidate for candidate in loaded}

        result = self._ranking.rank(
            job_id or criteria.job_id,
            evaluations,
            criteria,
            candidates=profiles,
            org_id=org_id,
        )
        payload = {
            "metadata": _metadata(result.job_id),
            "result": result.model_dump(mode="json"),
        }
        self._writer.write(output_path, payload)
        return payload

    def compare(
        self,
        *,
        evaluations_path: Path,
        job_id: str,
        candidate_ids: Sequence[str],
        output_path: Path,
    ) -> dict[str, Any]:
        view = build_comparison(job_id, self._evaluations.load(evaluations_path), candidate_ids)
        payload = {"metadata": _metadata(job_id), "comparison": view.model_dump(mode="json")}
        self._writer.write(output_path, payload)
        return payload

    def summarize(
        self,
        *,
        evaluations_path: Path,
        job_id: str,
        output_path: Path,
    ) -> dict[str, Any]:
        summary = summarize_job(job_id, self._evaluations.load(evaluations_path))
        payload = {"metadata": _metadata(job_id), "summary": summary.model_dump(mode="json")}
        self._writer.write(output_path, payload)
        return payload


def _metadata(job_id: str) -> dict[str, Any]:
    return {
        "job_id": job_id,
        "timestamp": pendulum.now().to_iso8601_string(),
        "app_version": __version__,
    }


def _chunks(items: Sequence[str], size: int) -> Iterable[list[str]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def _read_jsonl(path: Path, errors: list[str]) -> Iterable[tuple[int, dict[str, Any]]]:
    with path.open("r", encoding="utf-8") as handle:
        for idx, line in enumerate(handle, start=1):
            raw = line.strip()
            if not raw:
                continue
            try:
                record = json.loads(raw)
            except json.JSONDecodeError as exc:
                errors.append(f"line {idx}: invalid JSON ({exc})")
                continue
            if not isinstance(record, dict):
                errors.append(f"line {idx}: expected a JSON object")
                continue
            yield idx, record
