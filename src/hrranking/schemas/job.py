"""Job posting schema and its scorable criteria."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class JobCriterion(BaseModel):
    """One scorable dimension of a job requirement."""

    id: str
    name: str = ""
    description: str = ""
    max_score: float = 100.0
    weight: float | None = None
    keywords: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def label(self) -> str:
        return self.name or self.id


class JobDescription(BaseModel):
    """Organisation-scoped job posting."""

    job_id: str
    org_id: str | None = None
    title: str = ""
    description: str = ""
    requirements_text: list[str] = Field(default_factory=list)
    criteria: list[JobCriterion] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")
