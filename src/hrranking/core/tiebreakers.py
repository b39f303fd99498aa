"""Named secondary comparators used when final scores tie."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable

import pendulum
from pendulum.parsing.exceptions import ParserError

from ..schemas import CandidateProfile, Evaluation, ExperienceEntry

CRITERION_PREFIX = "criterion:"

_EDUCATION_LEVELS: dict[str, int] = {
    "phd": 5,
    "doctorate": 5,
    "doctor": 5,
    "dphil": 5,
    "master": 4,
    "masters": 4,
    "msc": 4,
    "ms": 4,
    "ma": 4,
    "mba": 4,
    "meng": 4,
    "bachelor": 3,
    "bachelors": 3,
    "bsc": 3,
    "bs": 3,
    "ba": 3,
    "beng": 3,
    "undergraduate": 3,
    "associate": 2,
    "diploma": 1,
    "certificate": 1,
}
_WORD_RE = re.compile(r"[a-z]+")


@dataclass(frozen=True, slots=True)
class TieBreakContext:
    """Inputs shared by every comparator of one ranking run."""

    as_of: pendulum.DateTime


TieBreaker = Callable[[Evaluation, "CandidateProfile | None", TieBreakContext], "float | None"]


def years_experience(
    evaluation: Evaluation,
    profile: CandidateProfile | None,
    context: TieBreakContext,
) -> float | None:
    if profile is None:
        return None
    if profile.years_experience is not None:
        return float(profile.years_experience)
    months = [
        value
        for value in (_months(entry, context.as_of) for entry in profile.experiences)
        if value is not None
    ]
    if not months:
        return None
    return round(sum(months) / 12.0, 2)


def education_level(
    evaluation: Evaluation,
    profile: CandidateProfile | None,
    context: TieBreakContext,
) -> float | None:
    if profile is None or not profile.education:
        return None
    best = 0
    for entry in profile.education:
        text = (entry.degree or "").lower().replace(".", "")
        for word in _WORD_RE.findall(text):
            best = max(best, _EDUCATION_LEVELS.get(word, 0))
    return float(best)


def certification_count(
    evaluation: Evaluation,
    profile: CandidateProfile | None,
    context: TieBreakContext,
) -> float | None:
    if profile is None:
        return None
    return float(len(profile.certifications))


def _signal(name: str) -> TieBreaker:
    def lookup(
        evaluation: Evaluation,
        profile: CandidateProfile | None,
        context: TieBreakContext,
    ) -> float | None:
        if profile is None:
            return None
        value = profile.signals.get(name)
        return float(value) if value is not None else None

    lookup.__name__ = name
    return lookup


def _criterion(criterion_id: str) -> TieBreaker:
    def lookup(
        evaluation: Evaluation,
        profile: CandidateProfile | None,
        context: TieBreakContext,
    ) -> float | None:
        return evaluation.percentage(criterion_id)

    return lookup


TIE_BREAKERS: dict[str, TieBreaker] = {
    "years_experience": years_experience,
    "education_level": education_level,
    "certification_count": certification_count,
    "portfolio_quality": _signal("portfolio_quality"),
    "interview_performance": _signal("interview_performance"),
    "reference_strength": _signal("reference_strength"),
    "overall_score": lambda evaluation, profile, context: evaluation.overall_score,
    "confidence_level": lambda evaluation, profile, context: evaluation.confidence_level,
}


def resolve_tie_breaker(factor_id: str) -> TieBreaker | None:
    """Return the comparator for ``factor_id`` or None when it is unknown."""

    if factor_id.startswith(CRITERION_PREFIX):
        criterion_id = factor_id[len(CRITERION_PREFIX):]
        return _criterion(criterion_id) if criterion_id else None
    return TIE_BREAKERS.get(factor_id)


def unknown_factors(factor_ids: Iterable[str]) -> list[str]:
    return [factor for factor in factor_ids if resolve_tie_breaker(factor) is None]


def _months(entry: ExperienceEntry, as_of: pendulum.DateTime) -> float | None:
    start = _parse_date(entry.start)
    if start is None:
        return None
    end = _parse_date(entry.end) or as_of
    if end < start:
        return None
    return float(end.diff(start).in_months())


def _parse_date(value: str | None) -> pendulum.DateTime | None:
    if not value:
        return None
    try:
        if len(value) == 7 and value[4] == "-":
            return pendulum.datetime(int(value[:4]), int(value[5:7]), 1)
        parsed = pendulum.parse(value)
    except (ValueError, ParserError):
        return None
    return parsed if isinstance(parsed, pendulum.DateTime) else None


__all__ = [
    "CRITERION_PREFIX",
    "TIE_BREAKERS",
    "TieBreakContext",
    "TieBreaker",
    "certification_count",
    "education_level",
    "resolve_tie_breaker",
    "unknown_factors",
    "years_experience",
]
