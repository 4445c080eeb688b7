"""Domain package for the team health feature."""

from .models import (
    BurnoutRisk,
    Channel,
    ClassificationItem,
    InsightSource,
    Message,
    Outcome,
    RunStatus,
    ScoreResult,
    SentimentHistogram,
    TrendAnalysis,
    WeeklyInsight,
    WeeklyMetrics,
    WeeklyReport,
)

__all__ = [
    "BurnoutRisk",
    "Channel",
    "ClassificationItem",
    "InsightSource",
    "Message",
    "Outcome",
    "RunStatus",
    "ScoreResult",
    "SentimentHistogram",
    "TrendAnalysis",
    "WeeklyInsight",
    "WeeklyMetrics",
    "WeeklyReport",
]
