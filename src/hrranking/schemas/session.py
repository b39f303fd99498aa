"""Live batch-evaluation session state."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProgressStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProgressStatus.COMPLETED, ProgressStatus.FAILED)


class EvaluationProgress(BaseModel):
    """Progress of one candidate inside a batch session."""

    evaluation_id: str | None = None
    candidate_id: str
    status: ProgressStatus = ProgressStatus.QUEUED
    progress_percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    stage: str = "Queued"
    error_message: str | None = None
    estimated_completion: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class EvaluationSession(BaseModel):
    """One batch run; mutated in place by the orchestrator only."""

    id: str
    org_id: str | None = None
    job_id: str
    total_candidates: int = Field(ge=0)
    completed_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    concurrency: int = Field(ge=1)
    status: SessionStatus = SessionStatus.ACTIVE
    items: list[EvaluationProgress] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(extra="forbid")

    @property
    def finished_count(self) -> int:
        return self.completed_count + self.failed_count

    @property
    def is_finished(self) -> bool:
        return self.status is not SessionStatus.ACTIVE


class ProgressEvent(BaseModel):
    """Snapshot pushed to progress listeners after every item transition."""

    session_id: str
    item: EvaluationProgress
    completed_count: int
    failed_count: int
    total_candidates: int
    session_status: SessionStatus

    model_config = ConfigDict(extra="forbid", frozen=True)
