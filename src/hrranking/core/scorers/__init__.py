"""Built-in criterion scorers."""

from .http import HTTPScorer, build_scoring_payload
from .keyword import KeywordScorer, KeywordScorerConfig

__all__ = ["HTTPScorer", "KeywordScorer", "KeywordScorerConfig", "build_scoring_payload"]
