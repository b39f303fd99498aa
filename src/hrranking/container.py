"""Dependency injection container for the evaluation engine."""

from __future__ import annotations

from typing import Any

from dependency_injector import containers, providers

from .core import (
    BatchConfig,
    BatchOrchestrator,
    Evaluator,
    EvaluatorConfig,
    HTTPScorer,
    KeywordScorer,
    KeywordScorerConfig,
    RankingConfig,
    RankingEngine,
    ScoreAggregator,
)
from .pipeline import EvaluationPipeline
from .stores import InMemoryCandidateStore, InMemoryEvaluationStore, InMemoryJobStore

DEFAULT_SCORER_TIMEOUT = 10.0


class EngineContainer(containers.DeclarativeContainer):
    """Dependency-injector container definition."""

    candidate_store = providers.Singleton(InMemoryCandidateStore)
    job_store = providers.Singleton(InMemoryJobStore)
    evaluation_store = providers.Singleton(InMemoryEvaluationStore)

    tier_thresholds = providers.Object(None)
    evaluator_config = providers.Singleton(EvaluatorConfig)
    batch_config = providers.Singleton(BatchConfig)
    ranking_config = providers.Singleton(RankingConfig)
    keyword_config = providers.Singleton(KeywordScorerConfig)

    scorer = providers.Singleton(KeywordScorer, config=keyword_config)

    aggregator = providers.Singleton(ScoreAggregator, thresholds=tier_thresholds)

    evaluator = providers.Singleton(
        Evaluator,
        scorer=scorer,
        candidates=candidate_store,
        aggregator=aggregator,
        store=evaluation_store,
        config=evaluator_config,
    )

    orchestrator = providers.Singleton(
        BatchOrchestrator,
        evaluator=evaluator,
        jobs=job_store,
        config=batch_config,
    )

    ranking_engine = providers.Singleton(RankingEngine, config=ranking_config)

    pipeline = providers.Factory(
        EvaluationPipeline,
        orchestrator=orchestrator,
        ranking=ranking_engine,
        candidates=candidate_store,
        jobs=job_store,
        evaluations=evaluation_store,
    )


def create_container(*, settings: dict[str, Any] | None = None) -> EngineContainer:
    """Instantiate container with optional overrides."""

    container = EngineContainer()

    if not settings:
        return container

    core_settings = settings.get("core", {}) if isinstance(settings, dict) else {}
    if core_settings.get("thresholds"):
        container.tier_thresholds.override(providers.Object(dict(core_settings["thresholds"])))

    if "evaluator" in settings:
        evaluator_config = EvaluatorConfig(**settings["evaluator"])
        container.evaluator_config.override(providers.Object(evaluator_config))

    if "batch" in settings:
        container.batch_config.override(providers.Object(BatchConfig(**settings["batch"])))

    if "ranking" in settings:
        container.ranking_config.override(providers.Object(RankingConfig(**settings["ranking"])))

    scorer_settings = dict(settings.get("scorer", {}))
    if "min_similarity" in scorer_settings:
        keyword_config = KeywordScorerConfig(min_similarity=scorer_settings.pop("min_similarity"))
        container.keyword_config.override(providers.Object(keyword_config))

    endpoint = scorer_settings.get("endpoint")
    if endpoint:
        container.scorer.override(
            providers.Singleton(
                HTTPScorer,
                endpoint,
                scorer_settings.get("api_key"),
                timeout=scorer_settings.get("timeout_seconds") or DEFAULT_SCORER_TIMEOUT,
                model=scorer_settings.get("model"),
            )
        )

    return container
