"""Rule-based criterion scorer using fuzzy keyword coverage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from rapidfuzz import fuzz

from ...schemas import CandidateProfile, CriterionScore, JobCriterion

_MAX_EVIDENCE = 3


@dataclass
class KeywordScorerConfig:
    """Configuration for fuzzy keyword matching."""

    min_similarity: float = 60.0


class KeywordScorer:
    """Score a criterion by how many of its keywords the profile covers.

    Keywords default to the words of the criterion name when none are given.
    """

    model_name = "keyword-fuzzy-lite"

    def __init__(self, *, config: KeywordScorerConfig | None = None) -> None:
        self._config = config or KeywordScorerConfig()

    def score(
        self,
        candidate: CandidateProfile,
        criterion: JobCriterion,
        instructions: str | None = None,
    ) -> CriterionScore:
        keywords = self._keywords(criterion)
        corpus = self._build_corpus(candidate)
        matched, evidence = self._match_keywords(corpus, keywords)
        coverage = self._coverage_ratio(keywords, matched)

        if keywords:
            justification = f"Matched {len(matched)} of {len(keywords)} keywords"
            if matched:
                justification += f": {', '.join(matched)}"
        else:
            justification = "No keywords to match"

        return CriterionScore(
            criterion_id=criterion.id,
            raw_score=round(coverage * criterion.max_score, 4),
            max_score=criterion.max_score,
            confidence=self._confidence(len(keywords), len(corpus)),
            justification=justification,
            evidence=evidence,
        )

    @staticmethod
    def _keywords(criterion: JobCriterion) -> list[str]:
        keywords = [keyword.strip() for keyword in criterion.keywords if keyword and keyword.strip()]
        if keywords:
            return list(dict.fromkeys(keywords))
        return [word for word in criterion.label.split() if len(word) > 2]

    def _build_corpus(self, profile: CandidateProfile) -> list[str]:
        corpus: list[str] = []
        corpus.extend(profile.skills)
        corpus.extend(profile.certifications)
        for text in (profile.headline, profile.summary):
            if text:
                corpus.append(text)
        for exp in profile.experiences:
            if exp.title:
                corpus.append(exp.title)
            if exp.summary:
                corpus.append(exp.summary)
            corpus.extend(exp.bullets)
        for edu in profile.education:
            corpus.extend(text for text in (edu.degree, edu.major) if text)
        if profile.notes:
            corpus.append(profile.notes)
        return [text for text in corpus if text]

    def _match_keywords(
        self,
        corpus: Sequence[str],
        keywords: Sequence[str],
    ) -> tuple[list[str], list[str]]:
        matches: list[str] = []
        evidence: list[str] = []
        for keyword in keywords:
            keyword_lower = keyword.lower()
            for text in corpus:
                text_lower = text.lower()
                if (
                    keyword_lower in text_lower
                    or fuzz.token_set_ratio(keyword_lower, text_lower) >= self._config.min_similarity
                ):
                    matches.append(keyword)
                    if len(evidence) < _MAX_EVIDENCE and text not in evidence:
                        evidence.append(text)
                    break
        return matches, evidence

    @staticmethod
    def _coverage_ratio(keywords: Sequence[str], hits: Iterable[str]) -> float:
        total = len(keywords)
        if total == 0:
            return 0.0
        return len(set(hits)) / total

    @staticmethod
    def _confidence(keyword_count: int, corpus_size: int) -> float:
        if keyword_count == 0 or corpus_size == 0:
            return 0.2
        return round(min(0.5 + 0.1 * keyword_count, 0.9), 2)


__all__ = ["KeywordScorer", "KeywordScorerConfig"]
