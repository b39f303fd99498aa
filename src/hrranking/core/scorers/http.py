"""Helpers for constructing scoring payloads and calling a remote scorer."""

from __future__ import annotations

import json
from typing import Any
from urllib import error, request

import structlog
from pydantic import ValidationError

from ...errors import ScorerError, ScorerTimeoutError
from ...schemas import CandidateProfile, CriterionScore, JobCriterion


def build_scoring_payload(
    *,
    candidate: CandidateProfile,
    criterion: JobCriterion,
    instructions: str | None = None,
) -> dict[str, Any]:
    """Construct payload expected by the external scoring endpoint."""

    return {
        "candidate_id": candidate.candidate_id,
        "criterion": {
            "id": criterion.id,
            "name": criterion.label,
            "description": criterion.description,
            "max_score": criterion.max_score,
            "keywords": criterion.keywords,
        },
        "candidate_summary": {
            "headline": candidate.headline,
            "summary": candidate.summary,
            "titles": [exp.title for exp in candidate.experiences if exp.title],
            "skills": candidate.skills,
            "certifications": candidate.certifications,
            "education": [
                {"degree": edu.degree, "major": edu.major, "school": edu.school}
                for edu in candidate.education
            ],
        },
        "instructions": instructions,
    }


class HTTPScorer:
    """Simple HTTP client for a remote criterion scoring API."""

    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        *,
        timeout: float = 10.0,
        model: str | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._api_key = api_key
        self._timeout = timeout
        self.model_name = model or "http-scorer"
        self._logger = structlog.get_logger(__name__)

    def score(
        self,
        candidate: CandidateProfile,
        criterion: JobCriterion,
        instructions: str | None = None,
    ) -> CriterionScore:
        payload = build_scoring_payload(candidate=candidate, criterion=criterion, instructions=instructions)
        payload["model"] = self.model_name
        body = self._post(payload, criterion.id)
        return self._parse(body, criterion)

    def _post(self, payload: dict[str, Any], criterion_id: str) -> dict[str, Any]:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        req = request.Request(self._endpoint, data=data, headers=headers, method="POST")
        try:
            with request.urlopen(req, timeout=self._timeout) as resp:
                raw = resp.read().decode("utf-8")
        except TimeoutError as exc:
            self._logger.warning("scorer.request_timeout", criterion_id=criterion_id, error=str(exc))
            raise ScorerTimeoutError(f"Scorer timed out after {self._timeout:g}s") from exc
        except error.URLError as exc:
            if isinstance(exc.reason, TimeoutError):
                self._logger.warning("scorer.request_timeout", criterion_id=criterion_id, error=str(exc))
                raise ScorerTimeoutError(f"Scorer timed out after {self._timeout:g}s") from exc
            self._logger.warning("scorer.request_failed", criterion_id=criterion_id, error=str(exc))
            raise ScorerError(f"Scorer request failed: {exc}") from exc

        try:
            body = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise ScorerError(f"Scorer returned invalid JSON: {exc}") from exc
        if not isinstance(body, dict):
            raise ScorerError("Scorer response must be a JSON object")
        return body

    @staticmethod
    def _parse(body: dict[str, Any], criterion: JobCriterion) -> CriterionScore:
        evidence = body.get("evidence") or []
        if isinstance(evidence, str):
            evidence = [evidence]
        try:
            return CriterionScore(
                criterion_id=criterion.id,
                raw_score=body.get("raw_score", body.get("score")),
                max_score=body.get("max_score", criterion.max_score),
                confidence=body.get("confidence", 0.5),
                justification=body.get("justification") or "",
                evidence=[str(item) for item in evidence],
            )
        except ValidationError as exc:
            raise ScorerError(
                f"Scorer response for {criterion.id!r} failed validation: {exc.error_count()} error(s)"
            ) from exc


__all__ = ["HTTPScorer", "build_scoring_payload"]
