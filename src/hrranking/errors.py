"""Error taxonomy for the evaluation and ranking engine."""

from __future__ import annotations


class EvaluationEngineError(Exception):
    """Base class for engine errors."""


class InsufficientDataError(EvaluationEngineError):
    """Raised when there is nothing to aggregate, rank or compare."""


class InvalidCriterionError(EvaluationEngineError, ValueError):
    """Raised for malformed criteria (non-positive max score, duplicates)."""


class InvalidWeightConfigError(EvaluationEngineError, ValueError):
    """Raised when a weight mapping cannot be used."""


class InvalidBatchConfigError(EvaluationEngineError, ValueError):
    """Raised when a batch submission is rejected before any work starts."""


class RankingInputError(EvaluationEngineError, ValueError):
    """Raised when ranking inputs do not belong together."""


class EvaluationFailedError(EvaluationEngineError):
    """Raised when every criterion of an evaluation failed."""

    def __init__(self, candidate_id: str, job_id: str, failures: dict[str, str]):
        super().__init__(f"All criteria failed for candidate {candidate_id!r} on job {job_id!r}")
        self.candidate_id = candidate_id
        self.job_id = job_id
        self.failures = failures

    def __str__(self) -> str:
        details = ", ".join(f"{key}: {value}" for key, value in sorted(self.failures.items()))
        return f"{self.args[0]} ({details})" if details else self.args[0]


class ScorerError(EvaluationEngineError):
    """Raised by scorer collaborators when a criterion cannot be scored."""


class ScorerTimeoutError(ScorerError):
    """Raised when a scorer call exceeds the caller-enforced timeout."""


class NotFoundError(EvaluationEngineError, KeyError):
    """Base for lookups that miss."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else self.__class__.__name__


class CandidateNotFoundError(NotFoundError):
    """Candidate is unknown within the organisation."""


class JobNotFoundError(NotFoundError):
    """Job is unknown within the organisation."""


class SessionNotFoundError(NotFoundError):
    """Batch session id is unknown."""


__all__ = [
    "EvaluationEngineError",
    "InsufficientDataError",
    "InvalidCriterionError",
    "InvalidWeightConfigError",
    "InvalidBatchConfigError",
    "RankingInputError",
    "EvaluationFailedError",
    "ScorerError",
    "ScorerTimeoutError",
    "NotFoundError",
    "CandidateNotFoundError",
    "JobNotFoundError",
    "SessionNotFoundError",
]
