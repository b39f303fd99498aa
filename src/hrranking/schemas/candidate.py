"""Candidate profile schema consumed by scorers and tie-breaking factors."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ContactInfo(BaseModel):
    """Contact channels for a candidate."""

    email: str | None = None
    phone: str | None = None

    model_config = ConfigDict(extra="forbid")


class EducationEntry(BaseModel):
    """Structured education history entry."""

    school: str = ""
    major: str | None = None
    degree: str | None = None
    start: str | None = None
    end: str | None = None

    model_config = ConfigDict(extra="forbid")


class ExperienceEntry(BaseModel):
    """Employment history entry."""

    company: str = ""
    title: str = ""
    start: str | None = None
    end: str | None = None
    employment_type: str | None = None
    summary: str = ""
    bullets: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class CandidateProfile(BaseModel):
    """Organisation-scoped candidate document.

    ``signals`` carries numeric facts recorded elsewhere in the hiring
    process (portfolio review, interview debriefs, reference checks) that the
    ranking engine may use as tie-breaking factors.
    """

    candidate_id: str
    org_id: str | None = None
    name: str | None = None
    headline: str | None = None
    summary: str | None = None
    location: str | None = None
    contact: ContactInfo = Field(default_factory=ContactInfo)
    education: list[EducationEntry] = Field(default_factory=list)
    experiences: list[ExperienceEntry] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    certifications: list[str] = Field(default_factory=list)
    years_experience: float | None = None
    signals: dict[str, float] = Field(default_factory=dict)
    notes: str | None = None

    model_config = ConfigDict(extra="allow")
