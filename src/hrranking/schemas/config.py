"""Pydantic configuration schema for CLI YAML input."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class CoreConfig(BaseModel):
    thresholds: dict[str, float] | None = None

    model_config = ConfigDict(extra="forbid")


class EvaluatorSettings(BaseModel):
    criterion_fan_out: int | None = None
    scorer_timeout_seconds: float | None = None
    insights: dict[str, float] | None = None

    model_config = ConfigDict(extra="forbid")


class BatchSettings(BaseModel):
    default_concurrency: int | None = None

    model_config = ConfigDict(extra="forbid")


class RankingSettings(BaseModel):
    balanced_penalty: float | None = None

    model_config = ConfigDict(extra="forbid")


class ScorerSettings(BaseModel):
    endpoint: str | None = None
    api_key: str | None = None
    model: str | None = None
    timeout_seconds: float | None = None
    min_similarity: float | None = None

    model_config = ConfigDict(extra="forbid")


class AppConfig(BaseModel):
    core: CoreConfig = Field(default_factory=CoreConfig)
    evaluator: EvaluatorSettings = Field(default_factory=EvaluatorSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    ranking: RankingSettings = Field(default_factory=RankingSettings)
    scorer: ScorerSettings = Field(default_factory=ScorerSettings)

    model_config = ConfigDict(extra="forbid")

    def to_settings(self) -> dict[str, Any]:
        settings: dict[str, Any] = {}
        for section in ("core", "evaluator", "batch", "ranking", "scorer"):
            values = getattr(self, section).model_dump(exclude_none=True)
            if values:
                settings[section] = values
        return settings


def load_config(raw: Any) -> AppConfig:
    if not isinstance(raw, dict):
        raise ValidationError.from_exception_data(
            "AppConfig",
            [{"type": "dict_type", "loc": ("config",), "input": raw}],
        )
    return AppConfig.model_validate(raw)
