"""Concurrent batch evaluation with live progress tracking."""

from __future__ import annotations

import threading
import uuid
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Sequence

import pendulum
import structlog

from ..errors import InvalidBatchConfigError, SessionNotFoundError
from ..schemas import (
    Evaluation,
    EvaluationProgress,
    EvaluationSession,
    JobCriterion,
    ProgressEvent,
    ProgressStatus,
    SessionStatus,
)
from ..stores import JobStore
from .evaluator import Evaluator

MAX_BATCH_SIZE = 50
MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 10
CANCELLED_MESSAGE = "cancelled"

ProgressListener = Callable[[ProgressEvent], None]

_ALLOWED_TRANSITIONS: dict[ProgressStatus, frozenset[ProgressStatus]] = {
    ProgressStatus.QUEUED: frozenset({ProgressStatus.PROCESSING, ProgressStatus.FAILED}),
    ProgressStatus.PROCESSING: frozenset({ProgressStatus.COMPLETED, ProgressStatus.FAILED}),
    ProgressStatus.COMPLETED: frozenset(),
    ProgressStatus.FAILED: frozenset(),
}


@dataclass
class BatchConfig:
    """Batch defaults; the hard limits are module constants."""

    default_concurrency: int = 3

    def __post_init__(self) -> None:
        if not MIN_CONCURRENCY <= self.default_concurrency <= MAX_CONCURRENCY:
            raise ValueError(
                f"default_concurrency must be within {MIN_CONCURRENCY}..{MAX_CONCURRENCY}"
            )


@dataclass
class _BatchRun:
    session: EvaluationSession
    criteria: list[JobCriterion]
    custom_instructions: str | None
    logger: Any
    lock: threading.Lock = field(default_factory=threading.Lock)
    done: threading.Event = field(default_factory=threading.Event)
    pending: deque[int] = field(default_factory=deque)
    cancel_requested: bool = False
    active_workers: int = 0
    evaluations: dict[str, Evaluation] = field(default_factory=dict)
    durations: list[float] = field(default_factory=list)


class BatchOrchestrator:
    """Run many evaluations for one job under a bounded worker pool.

    ``run`` validates the request, creates the session and returns it
    immediately; workers update it in place. Every mutation of a session goes
    through that session's lock, and progress listeners are called outside it.
    """

    def __init__(
        self,
        *,
        evaluator: Evaluator,
        jobs: JobStore,
        config: BatchConfig | None = None,
        listeners: Iterable[ProgressListener] = (),
        now_provider: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._evaluator = evaluator
        self._jobs = jobs
        self._config = config or BatchConfig()
        self._listeners: list[ProgressListener] = list(listeners)
        self._now_provider = now_provider or (lambda: pendulum.now("UTC"))
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._runs: dict[str, _BatchRun] = {}
        self._registry_lock = threading.Lock()
        self._logger = structlog.get_logger(__name__)

    def add_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ProgressListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def run(
        self,
        job_id: str,
        candidate_ids: Sequence[str],
        concurrency: int | None = None,
        custom_instructions: str | None = None,
        *,
        org_id: str | None,
    ) -> EvaluationSession:
        if concurrency is None:
            concurrency = self._config.default_concurrency
        ids = self._validate(candidate_ids, concurrency)
        job = self._jobs.get(org_id, job_id)
        if not job.criteria:
            raise InvalidBatchConfigError(f"Job {job_id!r} defines no evaluation criteria.")

        now = self._now_provider()
        session = EvaluationSession(
            id=self._id_factory(),
            org_id=org_id,
            job_id=job_id,
            total_candidates=len(ids),
            concurrency=concurrency,
            items=[EvaluationProgress(candidate_id=candidate_id) for candidate_id in ids],
            created_at=now,
            updated_at=now,
        )
        batch = _BatchRun(
            session=session,
            criteria=list(job.criteria),
            custom_instructions=custom_instructions,
            logger=self._logger.bind(session_id=session.id, job_id=job_id, org_id=org_id),
            pending=deque(range(len(ids))),
        )
        workers = min(concurrency, len(ids))
        batch.active_workers = workers
        with self._registry_lock:
            self._runs[session.id] = batch

        batch.logger.info("batch.started", total_candidates=len(ids), concurrency=concurrency)
        executor = ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix=f"batch-{session.id[:8]}",
        )
        for _ in range(workers):
            executor.submit(self._worker, batch)
        executor.shutdown(wait=False)
        return session

    def run_to_completion(
        self,
        job_id: str,
        candidate_ids: Sequence[str],
        concurrency: int | None = None,
        custom_instructions: str | None = None,
        *,
        org_id: str | None,
        timeout: float | None = None,
    ) -> EvaluationSession:
        session = self.run(
            job_id,
            candidate_ids,
            concurrency,
            custom_instructions,
            org_id=org_id,
        )
        return self.wait(session.id, timeout=timeout)

    def cancel(self, session_id: str) -> bool:
        """Stop dispatching; queued items fail as cancelled, in-flight ones finish.

        Returns False when the session had already finished or was already
        cancelled.
        """

        batch = self._get_run(session_id)
        events: list[ProgressEvent] = []
        with batch.lock:
            if batch.session.is_finished or batch.cancel_requested:
                return False
            batch.cancel_requested = True
            while batch.pending:
                index = batch.pending.popleft()
                events.append(
                    self._transition(
                        batch,
                        index,
                        ProgressStatus.FAILED,
                        stage="Cancelled",
                        error_message=CANCELLED_MESSAGE,
                    )
                )
            if batch.active_workers == 0:
                self._finalize(batch)
        batch.logger.info("batch.cancel_requested", cancelled_items=len(events))
        for event in events:
            self._emit(batch, event)
        return True

    def wait(self, session_id: str, timeout: float | None = None) -> EvaluationSession:
        """Block until the session finishes (or ``timeout``) and return a snapshot."""

        batch = self._get_run(session_id)
        batch.done.wait(timeout)
        return self.get_session(session_id)

    def get_session(self, session_id: str) -> EvaluationSession:
        """Return a consistent deep copy of the session for polling clients."""

        batch = self._get_run(session_id)
        with batch.lock:
            return batch.session.model_copy(deep=True)

    def evaluations(self, session_id: str) -> list[Evaluation]:
        """Completed evaluations of a session, in submission order."""

        batch = self._get_run(session_id)
        with batch.lock:
            return [
                batch.evaluations[item.candidate_id]
                for item in batch.session.items
                if item.candidate_id in batch.evaluations
            ]

    def discard(self, session_id: str) -> None:
        """Forget a finished session."""

        batch = self._get_run(session_id)
        if not batch.done.is_set():
            raise InvalidBatchConfigError(f"Session {session_id!r} is still active.")
        with self._registry_lock:
            self._runs.pop(session_id, None)

    def sessions(self) -> list[str]:
        with self._registry_lock:
            return list(self._runs)

    def _worker(self, batch: _BatchRun) -> None:
        index: int | None = None
        try:
            while True:
                with batch.lock:
                    if batch.cancel_requested or not batch.pending:
                        break
                    index = batch.pending.popleft()
                    event = self._transition(
                        batch,
                        index,
                        ProgressStatus.PROCESSING,
                        stage="Loading candidate profile",
                        progress=5.0,
                    )
                self._emit(batch, event)
                try:
                    self._process(batch, index)
                except Exception as exc:  # noqa: BLE001
                    batch.logger.exception(
                        "batch.item_crashed",
                        candidate_id=batch.session.items[index].candidate_id,
                    )
                    self._abandon(batch, [index], f"{type(exc).__name__}: {exc}")
                index = None
        except Exception as exc:  # noqa: BLE001
            batch.logger.exception("batch.worker_crashed")
            if index is not None:
                self._abandon(batch, [index], f"{type(exc).__name__}: {exc}")
        finally:
            leftovers: list[int] = []
            with batch.lock:
                if batch.active_workers == 1:
                    leftovers = [
                        position
                        for position, item in enumerate(batch.session.items)
                        if not item.status.is_terminal
                    ]
                    batch.pending.clear()
            if leftovers:
                self._abandon(batch, leftovers, "not processed: batch workers stopped")
            with batch.lock:
                batch.active_workers -= 1
                if batch.active_workers == 0:
                    self._finalize(batch)

    def _abandon(self, batch: _BatchRun, indices: Sequence[int], message: str) -> None:
        """Fail items a crashed worker left behind so the session can finish."""

        events: list[ProgressEvent] = []
        with batch.lock:
            for index in indices:
                item = batch.session.items[index]
                if item.status.is_terminal:
                    continue
                batch.evaluations.pop(item.candidate_id, None)
                events.append(
                    self._transition(
                        batch,
                        index,
                        ProgressStatus.FAILED,
                        stage="Evaluation failed",
                        error_message=message,
                    )
                )
        for event in events:
            self._emit(batch, event)

    def _process(self, batch: _BatchRun, index: int) -> None:
        session = batch.session
        candidate_id = session.items[index].candidate_id

        def on_progress(done: int, total: int) -> None:
            with batch.lock:
                event = self._update(
                    batch,
                    index,
                    progress=10.0 + 80.0 * done / total,
                    stage=f"Scoring criteria ({done}/{total})",
                )
            self._emit(batch, event)

        try:
            evaluation = self._evaluator.evaluate(
                candidate_id,
                session.job_id,
                batch.criteria,
                batch.custom_instructions,
                org_id=session.org_id,
                on_progress=on_progress,
            )
        except Exception as exc:  # noqa: BLE001
            with batch.lock:
                event = self._transition(
                    batch,
                    index,
                    ProgressStatus.FAILED,
                    stage="Evaluation failed",
                    error_message=str(exc) or type(exc).__name__,
                )
            batch.logger.warning(
                "batch.item_failed",
                candidate_id=candidate_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            with batch.lock:
                batch.evaluations[candidate_id] = evaluation
                event = self._transition(
                    batch,
                    index,
                    ProgressStatus.COMPLETED,
                    stage="Evaluation complete",
                    progress=100.0,
                    evaluation_id=evaluation.id,
                )
            batch.logger.info(
                "batch.item_completed",
                candidate_id=candidate_id,
                evaluation_id=evaluation.id,
                overall_score=evaluation.overall_score,
            )
        self._emit(batch, event)

    def _transition(
        self,
        batch: _BatchRun,
        index: int,
        status: ProgressStatus,
        *,
        stage: str,
        progress: float | None = None,
        error_message: str | None = None,
        evaluation_id: str | None = None,
    ) -> ProgressEvent:
        session = batch.session
        item = session.items[index]
        if status not in _ALLOWED_TRANSITIONS[item.status]:
            raise RuntimeError(
                f"Illegal progress transition {item.status.value} -> {status.value} "
                f"for candidate {item.candidate_id!r}"
            )
        now = self._now_provider()
        item.status = status
        item.stage = stage
        if progress is not None:
            item.progress_percentage = max(item.progress_percentage, progress)
        if error_message is not None:
            item.error_message = error_message
        if evaluation_id is not None:
            item.evaluation_id = evaluation_id

        if status is ProgressStatus.PROCESSING:
            item.started_at = now
            item.estimated_completion = self._estimate(batch, now)
        elif status.is_terminal:
            item.completed_at = now
            item.estimated_completion = None
            if status is ProgressStatus.COMPLETED:
                session.completed_count += 1
            else:
                session.failed_count += 1
            if item.started_at is not None:
                batch.durations.append(max((now - item.started_at).total_seconds(), 0.0))
                self._refresh_estimates(batch)
        session.updated_at = now
        return self._snapshot(batch, item)

    def _update(self, batch: _BatchRun, index: int, *, progress: float, stage: str) -> ProgressEvent:
        item = batch.session.items[index]
        if item.status is ProgressStatus.PROCESSING:
            item.progress_percentage = max(item.progress_percentage, min(progress, 99.0))
            item.stage = stage
            batch.session.updated_at = self._now_provider()
        return self._snapshot(batch, item)

    def _finalize(self, batch: _BatchRun) -> None:
        session = batch.session
        if session.is_finished:
            return
        session.status = SessionStatus.CANCELLED if batch.cancel_requested else SessionStatus.COMPLETED
        session.updated_at = self._now_provider()
        batch.done.set()
        batch.logger.info(
            "batch.finished",
            status=session.status.value,
            completed_count=session.completed_count,
            failed_count=session.failed_count,
        )

    @staticmethod
    def _estimate(batch: _BatchRun, started_at: datetime) -> datetime | None:
        if not batch.durations:
            return None
        average = sum(batch.durations) / len(batch.durations)
        return started_at + timedelta(seconds=average)

    def _refresh_estimates(self, batch: _BatchRun) -> None:
        for item in batch.session.items:
            if item.status is ProgressStatus.PROCESSING and item.started_at is not None:
                item.estimated_completion = self._estimate(batch, item.started_at)

    @staticmethod
    def _snapshot(batch: _BatchRun, item: EvaluationProgress) -> ProgressEvent:
        session = batch.session
        return ProgressEvent(
            session_id=session.id,
            item=item.model_copy(),
            completed_count=session.completed_count,
            failed_count=session.failed_count,
            total_candidates=session.total_candidates,
            session_status=session.status,
        )

    def _emit(self, batch: _BatchRun, event: ProgressEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                batch.logger.exception("batch.listener_failed", candidate_id=event.item.candidate_id)

    def _get_run(self, session_id: str) -> _BatchRun:
        with self._registry_lock:
            try:
                return self._runs[session_id]
            except KeyError as exc:
                raise SessionNotFoundError(f"Unknown evaluation session {session_id!r}") from exc

    @staticmethod
    def _validate(candidate_ids: Sequence[str], concurrency: int) -> list[str]:
        if isinstance(candidate_ids, str):
            raise InvalidBatchConfigError("candidate_ids must be a list of ids, not a string.")
        ids = list(candidate_ids)
        if not ids:
            raise InvalidBatchConfigError("At least one candidate id is required.")
        if len(ids) > MAX_BATCH_SIZE:
            raise InvalidBatchConfigError(
                f"Batch of {len(ids)} candidates exceeds the limit of {MAX_BATCH_SIZE}."
            )
        duplicates = sorted({candidate_id for candidate_id in ids if ids.count(candidate_id) > 1})
        if duplicates:
            raise InvalidBatchConfigError(f"Duplicate candidate ids in batch: {duplicates}")
        if (
            isinstance(concurrency, bool)
            or not isinstance(concurrency, int)
            or not MIN_CONCURRENCY <= concurrency <= MAX_CONCURRENCY
        ):
            raise InvalidBatchConfigError(
                f"concurrency must be an integer within {MIN_CONCURRENCY}..{MAX_CONCURRENCY}, "
                f"got {concurrency!r}."
            )
        return ids


__all__ = [
    "BatchConfig",
    "BatchOrchestrator",
    "CANCELLED_MESSAGE",
    "MAX_BATCH_SIZE",
    "MAX_CONCURRENCY",
    "MIN_CONCURRENCY",
    "ProgressListener",
]
