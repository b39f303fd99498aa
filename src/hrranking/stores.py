"""Organisation-scoped record stores used by the engine."""

from __future__ import annotations

import threading
from typing import Iterable, Protocol, runtime_checkable

from .errors import CandidateNotFoundError, JobNotFoundError, NotFoundError
from .schemas import CandidateProfile, Evaluation, JobDescription


@runtime_checkable
class CandidateStore(Protocol):
    """Read access to candidate profiles."""

    def get(self, org_id: str | None, candidate_id: str) -> CandidateProfile:
        """Return the profile or raise CandidateNotFoundError."""


@runtime_checkable
class JobStore(Protocol):
    """Read access to job postings."""

    def get(self, org_id: str | None, job_id: str) -> JobDescription:
        """Return the job or raise JobNotFoundError."""


@runtime_checkable
class EvaluationStore(Protocol):
    """Append-only evaluation history."""

    def save(self, evaluation: Evaluation) -> None:
        """Persist a new evaluation record."""

    def get(self, org_id: str | None, evaluation_id: str) -> Evaluation:
        """Return one evaluation or raise NotFoundError."""

    def list_for_job(self, org_id: str | None, job_id: str) -> list[Evaluation]:
        """Return every stored evaluation for the job, oldest first."""


class InMemoryCandidateStore:
    def __init__(self, candidates: Iterable[CandidateProfile] = ()) -> None:
        self._records: dict[tuple[str | None, str], CandidateProfile] = {}
        for candidate in candidates:
            self.add(candidate)

    def add(self, candidate: CandidateProfile) -> None:
        self._records[(candidate.org_id, candidate.candidate_id)] = candidate

    def get(self, org_id: str | None, candidate_id: str) -> CandidateProfile:
        try:
            return self._records[(org_id, candidate_id)]
        except KeyError as exc:
            raise CandidateNotFoundError(
                f"Unknown candidate {candidate_id!r} in organisation {org_id!r}"
            ) from exc

    def for_org(self, org_id: str | None) -> dict[str, CandidateProfile]:
        return {
            candidate_id: profile
            for (owner, candidate_id), profile in self._records.items()
            if owner == org_id
        }


class InMemoryJobStore:
    def __init__(self, jobs: Iterable[JobDescription] = ()) -> None:
        self._records: dict[tuple[str | None, str], JobDescription] = {}
        for job in jobs:
            self.add(job)

    def add(self, job: JobDescription) -> None:
        self._records[(job.org_id, job.job_id)] = job

    def get(self, org_id: str | None, job_id: str) -> JobDescription:
        try:
            return self._records[(org_id, job_id)]
        except KeyError as exc:
            raise JobNotFoundError(f"Unknown job {job_id!r} in organisation {org_id!r}") from exc


class InMemoryEvaluationStore:
    """Thread-safe append-only store; batch workers save concurrently."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[Evaluation] = []
        self._by_id: dict[str, Evaluation] = {}

    def save(self, evaluation: Evaluation) -> None:
        with self._lock:
            if evaluation.id in self._by_id:
                raise ValueError(f"Evaluation {evaluation.id!r} already stored; records are immutable")
            self._records.append(evaluation)
            self._by_id[evaluation.id] = evaluation

    def get(self, org_id: str | None, evaluation_id: str) -> Evaluation:
        with self._lock:
            evaluation = self._by_id.get(evaluation_id)
        if evaluation is None or evaluation.org_id != org_id:
            raise NotFoundError(f"Unknown evaluation {evaluation_id!r} in organisation {org_id!r}")
        return evaluation

    def list_for_job(self, org_id: str | None, job_id: str) -> list[Evaluation]:
        with self._lock:
            return [
                evaluation
                for evaluation in self._records
                if evaluation.org_id == org_id and evaluation.job_id == job_id
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = [
    "CandidateStore",
    "JobStore",
    "EvaluationStore",
    "InMemoryCandidateStore",
    "InMemoryJobStore",
    "InMemoryEvaluationStore",
]
