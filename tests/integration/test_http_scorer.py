from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Iterator

import pytest

from hrranking.core import HTTPScorer
from hrranking.core.scorers import build_scoring_payload
from hrranking.errors import ScorerError, ScorerTimeoutError
from hrranking.schemas import CandidateProfile, EducationEntry, ExperienceEntry, JobCriterion


class ScoringHandler(BaseHTTPRequestHandler):
    response: Any = {"raw_score": 7, "confidence": 0.85, "justification": "solid", "evidence": ["Terraform"]}
    status = 200
    delay = threading.Event()
    requests: list[dict[str, Any]] = []

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length", 0))
        body = json.loads(self.rfile.read(length).decode("utf-8"))
        type(self).requests.append({"body": body, "auth": self.headers.get("Authorization")})
        if body["criterion"]["id"] == "slow":
            type(self).delay.wait(2)
        payload = json.dumps(type(self).response).encode("utf-8")
        self.send_response(type(self).status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        return


@pytest.fixture
def endpoint() -> Iterator[str]:
    ScoringHandler.requests = []
    ScoringHandler.response = {"raw_score": 7, "confidence": 0.85, "justification": "solid", "evidence": ["Terraform"]}
    ScoringHandler.status = 200
    ScoringHandler.delay = threading.Event()
    server = ThreadingHTTPServer(("127.0.0.1", 0), ScoringHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}/score"
    finally:
        ScoringHandler.delay.set()
        server.shutdown()
        server.server_close()


def build_candidate() -> CandidateProfile:
    return CandidateProfile(
        candidate_id="C-1",
        headline="Platform engineer",
        skills=["Terraform", "AWS"],
        experiences=[ExperienceEntry(company="Acme", title="SRE", start="2020-01")],
        education=[EducationEntry(school="Uni", degree="BSc", major="CS")],
    )


def test_build_scoring_payload_summarises_candidate_and_criterion():
    criterion = JobCriterion(id="infra", name="Infrastructure", max_score=10, keywords=["Terraform"])

    payload = build_scoring_payload(candidate=build_candidate(), criterion=criterion, instructions="be strict")

    assert payload["candidate_id"] == "C-1"
    assert payload["criterion"] == {
        "id": "infra",
        "name": "Infrastructure",
        "description": "",
        "max_score": 10,
        "keywords": ["Terraform"],
    }
    assert payload["candidate_summary"]["titles"] == ["SRE"]
    assert payload["candidate_summary"]["education"] == [{"degree": "BSc", "major": "CS", "school": "Uni"}]
    assert payload["instructions"] == "be strict"


def test_http_scorer_posts_payload_and_parses_score(endpoint: str):
    scorer = HTTPScorer(endpoint, "secret", timeout=2, model="assessor-v2")
    criterion = JobCriterion(id="infra", max_score=10)

    result = scorer.score(build_candidate(), criterion, "be strict")

    assert result.criterion_id == "infra"
    assert result.raw_score == 7
    assert result.max_score == 10
    assert result.confidence == pytest.approx(0.85)
    assert result.evidence == ["Terraform"]
    request = ScoringHandler.requests[0]
    assert request["auth"] == "Bearer secret"
    assert request["body"]["model"] == "assessor-v2"
    assert request["body"]["instructions"] == "be strict"


def test_http_scorer_rejects_invalid_score(endpoint: str):
    ScoringHandler.response = {"raw_score": 70, "confidence": 0.5}
    scorer = HTTPScorer(endpoint, timeout=2)

    with pytest.raises(ScorerError):
        scorer.score(build_candidate(), JobCriterion(id="infra", max_score=10))


def test_http_scorer_raises_on_http_error(endpoint: str):
    ScoringHandler.status = 500
    scorer = HTTPScorer(endpoint, timeout=2)

    with pytest.raises(ScorerError):
        scorer.score(build_candidate(), JobCriterion(id="infra"))


def test_http_scorer_times_out(endpoint: str):
    scorer = HTTPScorer(endpoint, timeout=0.2)

    with pytest.raises(ScorerTimeoutError):
        scorer.score(build_candidate(), JobCriterion(id="slow"))
