"""
Sentiment scoring package.

Validates classifier output, wraps the classifier with retries and a
circuit breaker, and drives batch scoring of unscored messages.
"""

from .circuit_breaker import CircuitBreaker, ai_circuit_breaker
from .classifier_client import ClassificationBatch, ClassifierClient
from .service import BatchScorer, BatchScoreSummary, batch_scorer
from .validator import ScoreValidator, score_validator

__all__ = [
    "BatchScoreSummary",
    "BatchScorer",
    "CircuitBreaker",
    "ClassificationBatch",
    "ClassifierClient",
    "ScoreValidator",
    "ai_circuit_breaker",
    "batch_scorer",
    "score_validator",
]
